# backend/kosbook/__init__.py
from flask import Flask, request

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
    from .routes.auth import auth_bp
    from .routes.bookings import adminkos_bookings_bp, bookings_bp
    from .routes.payments import payments_bp
    from .routes.midtrans import midtrans_bp  # Gateway webhook (both notification URLs)
    from .routes.cron import cron_bp  # Scheduled cleanup
    from .routes.ledger import ledger_bp
    from .routes.payouts import payouts_bp, superadmin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(adminkos_bookings_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(midtrans_bp)
    app.register_blueprint(cron_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(payouts_bp)
    app.register_blueprint(superadmin_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            app.config.get("APP_BASE_URL"),
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
