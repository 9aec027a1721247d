"""
API Routes for Rent Management
Properties, tenants, tenancies, rent payments and dashboard
"""

from flask import Blueprint, request, jsonify
from werkzeug.exceptions import HTTPException
import logging
from . import database
from . import tenancy_management
from .rent_accounting.core.errors import (
    InvalidPaymentUpdate,
    InvalidScheduleInput,
    RecordNotFound,
    StoreUnavailable,
    TenancyConflict,
)
from .rent_accounting.core.models import RentRecord
from .rent_accounting.utils.date_utils import parse_date, to_date
from .rent_accounting.utils.payments import (
    apply_update,
    mark_paid,
    mark_partial,
    outstanding_amount,
    total_outstanding,
)
from .rent_management.schedule_refresh import run_daily_schedule_refresh

logger = logging.getLogger(__name__)

# Create API blueprint
api_bp = Blueprint('api', __name__, url_prefix='/api')


# ============ ERROR HANDLING ============
@api_bp.errorhandler(InvalidScheduleInput)
@api_bp.errorhandler(InvalidPaymentUpdate)
def handle_invalid_input(e):
    logger.warning(f"⚠️ Rejected input: {e}")
    return jsonify({'success': False, 'error': str(e)}), 400


@api_bp.errorhandler(RecordNotFound)
def handle_not_found(e):
    return jsonify({'success': False, 'error': str(e)}), 404


@api_bp.errorhandler(TenancyConflict)
def handle_conflict(e):
    logger.warning(f"⚠️ {e}")
    return jsonify({'success': False, 'error': str(e)}), 409


@api_bp.errorhandler(StoreUnavailable)
def handle_store_unavailable(e):
    logger.error(f"❌ Store unavailable: {e}")
    return jsonify({'success': False, 'error': str(e), 'retry': True}), 503


@api_bp.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception(f"❌ Unhandled error on {request.method} {request.path}: {e}")
    return jsonify({'success': False, 'error': str(e)}), 500


def _payload():
    data = request.get_json(silent=True)
    # only a JSON object carries fields
    return data if isinstance(data, dict) else {}


def _as_of():
    """Evaluation date from ?as_of= or the JSON body; today when absent"""
    value = request.args.get('as_of') or _payload().get('as_of')
    try:
        return to_date(value)
    except (ValueError, TypeError) as e:
        raise InvalidScheduleInput(f"Invalid as_of date {value!r}") from e


def _record_json(record: RentRecord):
    data = record.to_dict()
    data['outstanding_amount'] = float(outstanding_amount(record))
    return data


# ============ PROPERTIES ============
@api_bp.route('/properties', methods=['GET'])
def get_properties():
    include_inactive = request.args.get('include_inactive', '').lower() in ('1', 'true', 'yes')
    properties = database.list_properties(include_inactive=include_inactive)
    logger.info(f"📋 GET /api/properties - {len(properties)} properties")
    return jsonify({'success': True, 'properties': properties})


@api_bp.route('/properties', methods=['POST'])
def create_property():
    data = _payload()
    address = (data.get('address') or '').strip()
    if not address:
        return jsonify({'success': False, 'error': 'Address is required'}), 400
    property_id = database.create_property(address, data.get('details', ''))
    logger.info(f"✅ Property created: property_id={property_id}")
    return jsonify({'success': True, 'property_id': property_id}), 201


@api_bp.route('/properties/<int:property_id>', methods=['GET'])
def get_property(property_id):
    prop = database.get_property(property_id)
    if not prop:
        return jsonify({'success': False, 'error': 'Property not found'}), 404
    active = database.get_active_tenancy(property_id)
    prop['tenancy'] = active.to_dict() if active else None
    return jsonify({'success': True, 'property': prop})


@api_bp.route('/properties/<int:property_id>', methods=['PUT'])
def update_property(property_id):
    if not database.get_property(property_id):
        return jsonify({'success': False, 'error': 'Property not found'}), 404
    database.update_property(property_id, _payload())
    return jsonify({'success': True, 'property': database.get_property(property_id)})


@api_bp.route('/properties/<int:property_id>', methods=['DELETE'])
def delete_property(property_id):
    soft_delete = tenancy_management.delete_property(property_id, as_of=_as_of())
    return jsonify({'success': True, 'soft_delete': soft_delete})


@api_bp.route('/properties/<int:property_id>/tenancies', methods=['GET'])
def get_property_tenancies(property_id):
    """Active tenancy plus ended tenancies (most recent first) for a property"""
    if not database.get_property(property_id):
        return jsonify({'success': False, 'error': 'Property not found'}), 404
    tenancies = database.list_tenancies(property_id=property_id)
    return jsonify({
        'success': True,
        'active': [t.to_dict() for t in tenancies if t.is_active],
        'ended': [t.to_dict() for t in tenancies if not t.is_active],
    })


# ============ TENANTS ============
@api_bp.route('/tenants', methods=['GET'])
def get_tenants():
    return jsonify({'success': True, 'tenants': database.list_tenants()})


@api_bp.route('/tenants', methods=['POST'])
def create_tenant():
    data = _payload()
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'success': False, 'error': 'Tenant name is required'}), 400
    tenant_id = database.create_tenant(name, data.get('phone', ''), data.get('id_proof', ''), data.get('notes', ''))
    logger.info(f"✅ Tenant created: tenant_id={tenant_id}")
    return jsonify({'success': True, 'tenant_id': tenant_id}), 201


@api_bp.route('/tenants/<int:tenant_id>', methods=['GET'])
def get_tenant(tenant_id):
    tenant = database.get_tenant(tenant_id)
    if not tenant:
        return jsonify({'success': False, 'error': 'Tenant not found'}), 404
    return jsonify({'success': True, 'tenant': tenant})


@api_bp.route('/tenants/<int:tenant_id>', methods=['PUT'])
def update_tenant(tenant_id):
    if not database.get_tenant(tenant_id):
        return jsonify({'success': False, 'error': 'Tenant not found'}), 404
    database.update_tenant(tenant_id, _payload())
    return jsonify({'success': True, 'tenant': database.get_tenant(tenant_id)})


# ============ TENANCIES ============
@api_bp.route('/tenancies', methods=['POST'])
def create_tenancy():
    """Create a tenancy; rent records for already-completed periods are generated"""
    data = _payload()
    missing = [k for k in ('property_id', 'tenant_id', 'start_date', 'monthly_rent') if data.get(k) in (None, '')]
    if missing:
        return jsonify({'success': False, 'error': f"Missing fields: {', '.join(missing)}"}), 400

    tenancy, generated = tenancy_management.create_tenancy(data, as_of=_as_of())
    return jsonify({'success': True, 'tenancy': tenancy.to_dict(), 'rent_records_created': generated}), 201


@api_bp.route('/tenancies/<int:tenancy_id>', methods=['GET'])
def get_tenancy(tenancy_id):
    tenancy = database.get_tenancy(tenancy_id)
    if not tenancy:
        return jsonify({'success': False, 'error': 'Tenancy not found'}), 404
    return jsonify({'success': True, 'tenancy': tenancy.to_dict()})


@api_bp.route('/tenancies/<int:tenancy_id>', methods=['PUT'])
def update_tenancy(tenancy_id):
    """Edit a tenancy; a new start date or rent re-syncs pending rent records"""
    tenancy, plan = tenancy_management.update_tenancy(tenancy_id, _payload(), as_of=_as_of())
    return jsonify({'success': True, 'tenancy': tenancy.to_dict(), 'rent_schedule': plan.to_dict()})


@api_bp.route('/tenancies/<int:tenancy_id>/end', methods=['POST'])
def end_tenancy(tenancy_id):
    tenancy = tenancy_management.end_tenancy(tenancy_id, as_of=_as_of())
    return jsonify({'success': True, 'tenancy': tenancy.to_dict()})


# ============ RENT PAYMENTS ============
@api_bp.route('/tenancies/<int:tenancy_id>/rent_payments', methods=['GET'])
def get_rent_payments(tenancy_id):
    if not database.get_tenancy(tenancy_id):
        return jsonify({'success': False, 'error': 'Tenancy not found'}), 404
    records = database.SqlitePaymentStore().find(tenancy_id)
    records.sort(key=lambda r: r.period_start, reverse=True)
    return jsonify({
        'success': True,
        'rent_payments': [_record_json(r) for r in records],
        'total_outstanding': float(total_outstanding(records)),
    })


@api_bp.route('/rent_payments/outstanding', methods=['GET'])
def get_outstanding_payments():
    """Pending and partial rent across all tenancies"""
    rows = database.list_outstanding_payments()
    payments = []
    for row in rows:
        entry = _record_json(row['record'])
        entry.update({k: v for k, v in row.items() if k != 'record'})
        payments.append(entry)
    return jsonify({
        'success': True,
        'rent_payments': payments,
        'total_outstanding': float(total_outstanding(row['record'] for row in rows)),
    })


def _load_record(rent_id) -> RentRecord:
    record = database.get_rent_payment(rent_id)
    if record is None:
        raise RecordNotFound(f"Rent record {rent_id} not found")
    return record


@api_bp.route('/rent_payments/<int:rent_id>/mark_paid', methods=['POST'])
def mark_rent_paid(rent_id):
    record = mark_paid(_load_record(rent_id), paid_on=_as_of())
    database.save_rent_payment(record)
    logger.info(f"💰 Rent record {rent_id} marked paid on {record.paid_date}")
    return jsonify({'success': True, 'rent_payment': _record_json(record)})


@api_bp.route('/rent_payments/<int:rent_id>/mark_partial', methods=['POST'])
def mark_rent_partial(rent_id):
    data = _payload()
    if data.get('amount_paid') in (None, ''):
        return jsonify({'success': False, 'error': 'Please enter the paid amount for partial payment'}), 400
    record = mark_partial(_load_record(rent_id), data['amount_paid'], data.get('remarks'))
    database.save_rent_payment(record)
    logger.info(f"💵 Rent record {rent_id} partially paid: {record.amount_paid} of {record.amount_due}")
    return jsonify({'success': True, 'rent_payment': _record_json(record)})


@api_bp.route('/rent_payments/<int:rent_id>', methods=['PUT'])
def update_rent_payment(rent_id):
    data = _payload()
    try:
        paid_date = parse_date(data.get('paid_date'))
    except (ValueError, TypeError) as e:
        raise InvalidPaymentUpdate(f"Invalid paid date {data.get('paid_date')!r}") from e
    record = apply_update(
        _load_record(rent_id),
        status=data.get('status'),
        amount_paid=data.get('amount_paid'),
        paid_date=paid_date,
        remarks=data.get('remarks'),
    )
    database.save_rent_payment(record)
    return jsonify({'success': True, 'rent_payment': _record_json(record)})


@api_bp.route('/rent_schedule/refresh', methods=['POST'])
def refresh_rent_schedules():
    created = run_daily_schedule_refresh(as_of=_as_of())
    return jsonify({'success': True, 'rent_records_created': created})


# ============ DASHBOARD ============
@api_bp.route('/dashboard', methods=['GET'])
def get_dashboard_metrics():
    counts = database.count_rows()
    outstanding = total_outstanding(row['record'] for row in database.list_outstanding_payments())
    return jsonify({
        'success': True,
        'metrics': {
            'total_properties': counts['properties'],
            'occupied_properties': counts['occupied'],
            'vacant_properties': counts['properties'] - counts['occupied'],
            'total_tenants': counts['tenants'],
            'total_pending_rent': float(outstanding),
        },
    })
