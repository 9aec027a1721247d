"""
Shared pytest fixtures: an app bound to a scratch sqlite database
"""
import pytest

from rent_application.app import create_app


@pytest.fixture
def app(tmp_path):
    app = create_app('testing', test_config={
        'DATABASE_PATH': tmp_path / 'rent_test.db',
        'LOG_DIR': tmp_path / 'logs',
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def property_and_tenant(app):
    from rent_application import database
    property_id = database.create_property('12 MG Road, Bengaluru', '2BHK first floor')
    tenant_id = database.create_tenant('Asha Rao', '98450 12345')
    return property_id, tenant_id
