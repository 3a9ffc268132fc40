from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from .logging_setup import start_log
from .config_loader import initialize_app_config
from .errors import NotFoundError, register_error_handlers
from .db import bp as bp_dbstatus, db_cleanup
from .maps import bp as bp_maps
from .search import bp as bp_search
from .trails import bp as bp_trails
from .user_lists import bp as bp_user_lists
from .user_login import bp as bp_auth

# LOG_LEVEL, FLASK_ENV and DB settings may come from backend/.env
DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(DOTENV_PATH, override=False)

log = logging.getLogger(__name__)


def create_app(config: Optional[Mapping[str, Any]] = None, *, configure_logging: bool = True) -> Flask:
    """Build the trail API app; ``config`` overrides values read from config/appconfig.json."""

    if configure_logging:
        dev = os.getenv("FLASK_ENV") == "development"
        start_log(app_name="trailwander", level=logging.DEBUG if dev else None)

    app = Flask(__name__)

    # the React frontend is served from another origin during development
    CORS(app)

    initialize_app_config(app)
    if config:
        app.config.update(config)

    app.register_blueprint(bp_auth)
    app.register_blueprint(bp_search)
    app.register_blueprint(bp_maps)
    app.register_blueprint(bp_trails)
    app.register_blueprint(bp_user_lists)
    app.register_blueprint(bp_dbstatus)

    register_error_handlers(app)

    @app.teardown_appcontext
    def _db_cleanup(exc):
        """Hand the request session back to the pool."""
        db_cleanup(exc)

    @app.errorhandler(404)
    def _not_found(_e):
        err = NotFoundError()
        return err.to_dict(), err.status

    log.info("Flask app created env=%s", os.getenv("FLASK_ENV") or "production")
    return app
