from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager, current_user
from flask_migrate import Migrate

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()

def create_app(config_overrides=None):
    app = Flask(__name__)

    # Configuration
    from storefront.config import load_settings
    app.config.update(load_settings().to_flask_config())
    if config_overrides:
        app.config.update(config_overrides)

    # Setup logging
    from storefront.logging_config import setup_logging
    setup_logging(app)

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)

    from storefront.models import User
    from storefront.services.authenticator import load_user_from_request

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    login_manager.request_loader(load_user_from_request)

    # New Relic Custom Attributes for User Tracking
    @app.before_request
    def add_newrelic_user_attributes():
        """Add user information as custom attributes to New Relic for error tracking"""
        import newrelic.agent

        if current_user.is_authenticated:
            newrelic.agent.add_custom_attribute('enduser.id', str(current_user.id))
            newrelic.agent.add_custom_attribute('userId', str(current_user.id))
            newrelic.agent.add_custom_attribute('userRole', current_user.role)

    from storefront.errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from storefront.routes import main, auth, products, cart, orders, admin
    app.register_blueprint(main.bp)
    app.register_blueprint(auth.bp)
    app.register_blueprint(products.bp)
    app.register_blueprint(cart.bp)
    app.register_blueprint(orders.bp)
    app.register_blueprint(admin.bp)

    return app
