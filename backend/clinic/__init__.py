# backend/clinic/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.visits import visits_bp
    from .routes.payments import payments_bp
    from .routes.queue import queue_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(visits_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(queue_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
