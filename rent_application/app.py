"""
Rent Management Application
Flask application factory, logging and blueprint registration
"""

from flask import Flask, jsonify
import click
from flask_cors import CORS
import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Import configuration
from rent_application.config import Config, config

# Import blueprints
from rent_application.api import api_bp
from rent_application.rent_management.schedule_refresh import run_daily_schedule_refresh

# Import database
from rent_application import database


def setup_logging(log_dir: Path):
    """Setup application logging"""
    log_dir.mkdir(parents=True, exist_ok=True)

    log_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Replace handlers from an earlier factory call instead of stacking them
    for handler in list(root_logger.handlers):
        if getattr(handler, '_rent_app_handler', False):
            root_logger.removeHandler(handler)
            handler.close()

    # File handler with rotation
    log_file = log_dir / 'rent_app.log'
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=Config.LOG_MAX_BYTES,
        backupCount=Config.LOG_BACKUP_COUNT
    )
    file_handler.setFormatter(log_formatter)
    file_handler.setLevel(logging.DEBUG)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    console_handler.setLevel(logging.INFO)

    for handler in (file_handler, console_handler):
        handler._rent_app_handler = True
        root_logger.addHandler(handler)

    # Werkzeug request lines are noisy at DEBUG
    logging.getLogger('werkzeug').setLevel(logging.WARNING)

    return root_logger


def create_app(config_name=None, test_config=None):
    """Application factory pattern"""
    app = Flask(__name__)

    # Load configuration
    config_name = config_name or os.environ.get('FLASK_ENV', 'default')
    app.config.from_object(config.get(config_name, config['default']))
    if test_config:
        app.config.update(test_config)

    # Setup logging
    logger = setup_logging(Path(app.config['LOG_DIR']))
    logger.info("🚀 Initializing Rent Management Application...")

    # Initialize CORS
    cors_origins = app.config.get('CORS_ORIGINS', ['*'])
    if isinstance(cors_origins, str):
        cors_origins = cors_origins.split(',')

    CORS(app,
         resources={r"/api/*": {"origins": cors_origins, "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"], "allow_headers": ["Content-Type"]}},
         supports_credentials=True)

    # Initialize database
    database.configure(app.config['DATABASE_PATH'])
    database.init_database()
    logger.info(f"✅ Database ready at {app.config['DATABASE_PATH']}")

    # Register blueprints
    app.register_blueprint(api_bp)
    logger.info("✅ Blueprints registered")

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    # Daily job: flask --app rent_application.app:create_app refresh-rent-schedules
    @app.cli.command('refresh-rent-schedules')
    @click.option('--as-of', default=None, help='Evaluation date (YYYY-MM-DD), defaults to today')
    def refresh_rent_schedules_command(as_of):
        created = run_daily_schedule_refresh(as_of=as_of)
        click.echo(f"{created} rent record(s) created")

    logger.info("✅ Application created successfully")
    return app


if __name__ == '__main__':
    app = create_app()
    logger = logging.getLogger(__name__)

    logger.info("══════════════════════════════════════════════════════════════")
    logger.info("   🏠 Rent Management System - Starting Server")
    logger.info("══════════════════════════════════════════════════════════════")
    logger.info(f"📍 API Endpoint: http://{Config.API_HOST}:{Config.API_PORT}/api/")
    logger.info("   - /api/properties - Properties")
    logger.info("   - /api/tenancies - Tenancies and rent schedules")
    logger.info("   - /api/dashboard - Dashboard metrics")
    logger.info(f"📝 Logs: {Config.LOG_DIR}/rent_app.log")
    logger.info("══════════════════════════════════════════════════════════════")

    app.run(
        debug=app.config['DEBUG'],
        host=Config.API_HOST,
        port=Config.API_PORT
    )
