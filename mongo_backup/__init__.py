import os
import atexit
import logging
import weakref
from logging.handlers import RotatingFileHandler
from flask import Flask


# Apps whose MongoClient is closed at interpreter exit
_open_apps = weakref.WeakSet()


def _close_mongo_clients():
    from mongo_backup.database import close_mongo_client

    for app in list(_open_apps):
        close_mongo_client(app)


atexit.register(_close_mongo_clients)


def configure_logging(app):
    """Configure application logging"""

    # Create logs directory if it doesn't exist
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
        os.path.join(log_dir, 'mongo-backup.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Handlers live on the root logger only. app.logger is the parent of
    # every mongo_backup.* logger, so records reach the root exactly once.
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, 'mongo_backup_handler', False):
            root_logger.removeHandler(handler)
            handler.close()

    for handler in (console_handler, file_handler):
        handler.mongo_backup_handler = True
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    app.logger.setLevel(log_level)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None, config_overrides=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from mongo_backup.config import config
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    # Configure logging
    configure_logging(app)

    if not app.config.get('S3_BUCKET_NAME'):
        app.logger.warning("S3_BUCKET_NAME is not set - backups will fail until it is configured")

    # Register blueprints
    from mongo_backup.routes import backup_routes
    app.register_blueprint(backup_routes.bp)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    # Initialize and start scheduler (only in designated worker or development child process)
    from mongo_backup.scheduler import init_scheduler, start_scheduler, stop_scheduler

    # Determine if this process should initialize the scheduler
    is_reloader_child = os.environ.get('WERKZEUG_RUN_MAIN') == 'true'
    is_development = app.config.get('DEBUG', False)
    is_scheduler_worker = os.environ.get('SCHEDULER_WORKER', 'true').lower() == 'true'

    # Scheduler initialization logic:
    # - Testing: never
    # - Development mode: Only in Flask reloader child process (not parent)
    # - Production mode: Only in designated scheduler worker (SCHEDULER_WORKER=true)
    if app.config.get('TESTING', False):
        should_init_scheduler = False
    elif is_development:
        should_init_scheduler = is_reloader_child
        app.logger.info(f"Development mode: is_reloader_child={is_reloader_child}")
    else:
        should_init_scheduler = is_scheduler_worker
        app.logger.info(f"Production mode: is_scheduler_worker={is_scheduler_worker}")

    if should_init_scheduler:
        app.logger.info("Initializing scheduler in this process...")
        init_scheduler(app)
        start_scheduler()

        # Register cleanup function to stop scheduler on app shutdown
        atexit.register(stop_scheduler)
        app.logger.info("Scheduler initialized and started successfully")
    else:
        app.logger.info("Scheduler initialization skipped in this process (not designated scheduler worker)")

    _open_apps.add(app)

    return app
