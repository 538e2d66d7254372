"""Application factory for the RMS service."""

from typing import Any, Mapping, Optional

from flask import Flask

from .app_logging import setup_logger
from .auth import Auth
from .models import db
from .routes import blueprint


def create_web_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Initialize and configure the RMS application."""
    app = Flask('rms')
    app.config.from_object('rms.config')
    if overrides:
        app.config.update(overrides)
    if not app.testing:
        setup_logger(app.config['LOG_LEVEL'], app.config['LOG_FORMAT'])

    Auth(app)  # Resolves the current user of every request.
    app.register_blueprint(blueprint)

    with app.app_context():
        db.create_all()
    return app
