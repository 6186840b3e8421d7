"""GeoAttend - Application Factory."""
import logging
import os
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import redis

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)

EVENTS_EXTENSION = 'attendance_events'


def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from geoattend.config import get_config, resolve_database_uri
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    app.config['SQLALCHEMY_DATABASE_URI'] = resolve_database_uri(app.config)

    # Setup logging
    setup_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]), supports_credentials=True)

    # Attendance event fan-out
    setup_events(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'GeoAttend',
            'version': '1.0.0',
            'persistence_backend': app.config['PERSISTENCE_BACKEND']
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from geoattend.api.classes import classes_bp
    from geoattend.api.attendance import attendance_bp

    app.register_blueprint(classes_bp, url_prefix='/api/classes')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from geoattend.utils.helpers import handle_error, error_response
    from geoattend.utils.validators import ValidationError
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(ValidationError)
    def validation_error(error):
        return error_response(str(error), 400)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error('Unhandled error: %s', error)
        return handle_error('Internal server error', 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'))
    logging.getLogger('geoattend').setLevel(level)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        logging.getLogger('geoattend').addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('GeoAttend startup')

    if app.config.get('PERSISTENCE_BACKEND') == 'local':
        app.logger.warning(
            'Using local fallback storage: attendance uniqueness is only '
            'enforced within this database, not across installations'
        )


def setup_events(app: Flask) -> None:
    """Create the attendance event bus, publishing to Redis when configured."""
    from geoattend.services.event_service import AttendanceEventBus

    redis_client = None
    if app.config.get('REDIS_URL'):
        redis_client = redis.Redis.from_url(app.config['REDIS_URL'])

    app.extensions[EVENTS_EXTENSION] = AttendanceEventBus(
        redis_client=redis_client,
        channel=app.config['ATTENDANCE_EVENT_CHANNEL']
    )


def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models
        from geoattend.models import ClassSession, AttendanceRecord  # noqa: F401


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('sweep-classes')
    def sweep_classes():
        """End active classes whose check-in window has closed."""
        from geoattend.services.lifecycle_service import ClassLifecycleService

        ended = ClassLifecycleService(app).sweep()
        click.echo(f'Ended {len(ended)} class(es).')
