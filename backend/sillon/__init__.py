# backend/sillon/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Stock movements and ledger events are append-only
    from .db_guards import register_immutability_listeners
    register_immutability_listeners()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.orders import orders_bp, order_items_bp
    from .routes.payouts import payouts_bp, settlements_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(order_items_bp)
    app.register_blueprint(payouts_bp)
    app.register_blueprint(settlements_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
