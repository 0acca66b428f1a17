# backend/stockflow/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate, install_sqlite_transaction_hooks


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Applied before extensions bind so the engine sees the override
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    with app.app_context():
        install_sqlite_transaction_hooks(db.engine)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.transfers import transfers_bp
    from .routes.adjustments import adjustments_bp
    from .routes.stock_alerts import stock_alerts_bp

    app.register_blueprint(transfers_bp)
    app.register_blueprint(adjustments_bp)
    app.register_blueprint(stock_alerts_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
