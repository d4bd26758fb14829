# backend/hirepay/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.purchases import purchases_bp
    from .routes.payments import payments_bp
    from .routes.wallet import wallet_bp
    from .routes.stock import stock_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(stock_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
