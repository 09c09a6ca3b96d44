from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate
from .config import Config
import logging
import logging.config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize logging
    logging.config.dictConfig(app.config['LOGGING'])

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)
    login_manager.login_view = 'auth.login'

    # Payment gateway, configured explicitly instead of through stripe.api_key
    from .utils.stripe_gateway import GatewayConfig, StripeGateway
    app.extensions['payment_gateway'] = StripeGateway(GatewayConfig.from_app_config(app.config))

    # Register blueprints
    from .routes.main import main_bp
    from .routes.auth import auth_bp
    from .routes.courses import courses_bp
    from .routes.admin import admin_bp
    from .routes.payment import payment_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(courses_bp, url_prefix='/courses')
    app.register_blueprint(admin_bp, url_prefix='/admin/courses')
    app.register_blueprint(payment_bp, url_prefix='/payment')

    from .errors import register_error_handlers
    register_error_handlers(app)

    from .cli import register_commands
    register_commands(app)

    # Create database tables
    with app.app_context():
        from .models import user, course, enrollment, payment, subscription  # noqa: F401
        db.create_all()

    return app
