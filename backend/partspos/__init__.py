# backend/partspos/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.quotations import quotations_bp
    from .routes.credits import credits_bp
    from .routes.payments import payments_bp
    from .routes.movements import movements_bp
    from .routes.withdrawals import withdrawals_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(quotations_bp)
    app.register_blueprint(credits_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(movements_bp)
    app.register_blueprint(withdrawals_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
