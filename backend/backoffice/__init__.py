# backend/backoffice/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    # Overrides must land before the engine is created
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.customers import customers_bp
    from .routes.products import products_bp
    from .routes.orders import orders_bp
    from .routes.returns import returns_bp

    app.register_blueprint(customers_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(returns_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
