from flask import Flask, jsonify
import os
from werkzeug.utils import import_string
from .extensions import db, bcrypt, login_manager, migrate, mail
from .errors import BusLinkError, IntegrityViolation


def create_app(config_class='config.DevelopmentConfig'):
    app = Flask(__name__)
    if isinstance(config_class, str):
        config_class = import_string(config_class)
    app.config.from_object(config_class)
    if hasattr(config_class, 'init_app'):
        config_class.init_app(app)

    # Initialize extensions
    db.init_app(app)
    bcrypt.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(os.path.dirname(__file__), '..', 'migrations'))
    mail.init_app(app)

    # Import models to ensure they are registered with SQLAlchemy
    with app.app_context():
        from buslink.auth import models as auth_models  # noqa: F401
        from buslink.catalog import models as catalog_models  # noqa: F401
        from buslink.booking import models as booking_models  # noqa: F401
        from buslink.tracking import models as tracking_models  # noqa: F401

    # Core services, shared by every request of this process
    from buslink.storage import build_store
    from buslink.realtime.registry import SubscriptionRegistry
    from buslink.booking.services import BookingAdmissionController
    from buslink.tracking.services import LocationHub
    from buslink.notifications.mail import notify_owner_of_booking

    app.store = build_store(app)
    app.registry = SubscriptionRegistry(queue_size=app.config['REALTIME_QUEUE_SIZE'])
    app.bookings = BookingAdmissionController(
        app.store, app.registry,
        notifier=notify_owner_of_booking if app.config.get('BOOKING_EMAIL_NOTIFICATIONS') else None,
    )
    app.locations = LocationHub(app.store, app.registry)

    # Register blueprints
    from buslink.auth.routes import auth_bp
    from buslink.catalog import bp as catalog_bp
    from buslink.booking.routes import booking_bp
    from buslink.tracking.routes import tracking_bp
    from buslink.realtime.routes import realtime_bp
    from buslink.main.health import health_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(booking_bp, url_prefix='/api')
    app.register_blueprint(tracking_bp, url_prefix='/api')
    app.register_blueprint(realtime_bp, url_prefix='/realtime')
    app.register_blueprint(health_bp)

    @app.errorhandler(BusLinkError)
    def handle_buslink_error(error):
        if isinstance(error, IntegrityViolation):
            app.logger.critical('Integrity violation: %s', error.message)
        return jsonify(error.to_dict()), error.status_code

    return app
