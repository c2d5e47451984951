import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy


# Initialize extensions
db = SQLAlchemy()


def configure_logging(app):
    """Configure application logging"""

    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'restorekeeper.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=[console_handler, file_handler])

    # Configure Flask app logger
    app.logger.setLevel(log_level)
    app.logger.addHandler(console_handler)
    app.logger.addHandler(file_handler)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def register_error_handlers(app):
    """Map backup domain errors to JSON responses"""
    from restorekeeper.backup.errors import (
        BackupError, ValidationError, NotFoundError, ConflictError
    )

    status_codes = [
        (ValidationError, 400),
        (NotFoundError, 404),
        (ConflictError, 409),
    ]

    @app.errorhandler(BackupError)
    def handle_backup_error(error):
        for error_class, status in status_codes:
            if isinstance(error, error_class):
                return jsonify({'error': str(error)}), status

        app.logger.error(f"Backup operation failed: {error}")
        return jsonify({'error': str(error)}), 500


def create_app(config_name=None, config_overrides=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from restorekeeper.config import config
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    # Configure logging
    configure_logging(app)

    # Ensure required directories exist
    os.makedirs(app.config['REPOSITORY_DIR'], exist_ok=True)
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    if database_uri.startswith('sqlite:///') and database_uri != 'sqlite:///:memory:':
        os.makedirs(os.path.dirname(database_uri.replace('sqlite:///', '')), exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    # Register blueprints
    from restorekeeper.routes import jobs_routes, restore_points_routes
    app.register_blueprint(jobs_routes.bp)
    app.register_blueprint(restore_points_routes.bp)

    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    # Create database schema
    from restorekeeper import models
    with app.app_context():
        db.create_all()

    # Initialize and start scheduler
    if app.config.get('SCHEDULER_ENABLED', False):
        from restorekeeper.scheduler import init_scheduler, start_scheduler, sync_backup_jobs, stop_scheduler
        import atexit

        app.logger.info("Initializing scheduler in this process...")
        init_scheduler(app)
        start_scheduler()

        # Sync backup jobs from database to scheduler
        with app.app_context():
            sync_backup_jobs()

        # Register cleanup function to stop scheduler on app shutdown
        atexit.register(stop_scheduler)
        app.logger.info("Scheduler initialized and started successfully")
    else:
        app.logger.info("Scheduler disabled by configuration")

    return app
