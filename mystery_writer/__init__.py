from __future__ import annotations

import os
from pathlib import Path

from flask import Flask
from dotenv import load_dotenv

from .config import Config
from .extensions import csrf, db, migrate
from .db_utils import ensure_database_schema
from .task_queue import SequentialTaskQueue


BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    if "MANUSCRIPT_EXPORT_DIR" not in app.config:
        export_dir = os.environ.get("MANUSCRIPT_EXPORT_DIR")
        app.config["MANUSCRIPT_EXPORT_DIR"] = export_dir or str(BASE_DIR / "instance" / "exports")

    register_extensions(app)
    register_blueprints(app)
    register_completion_queue(app)

    with app.app_context():
        ensure_database_schema()

    return app


def register_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)


def register_blueprints(app: Flask) -> None:
    from .main import bp as main_bp
    from .novels import bp as novels_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(novels_bp)


def register_completion_queue(app: Flask) -> None:
    from .services.completions import QUEUE_EXTENSION_KEY

    queue = SequentialTaskQueue(
        drain_interval=app.config.get("COMPLETION_DRAIN_INTERVAL") or 1.0,
    )
    app.extensions[QUEUE_EXTENSION_KEY] = queue
    if app.config.get("COMPLETION_QUEUE_AUTOSTART", True):
        queue.start()


__all__ = ["create_app", "db"]
