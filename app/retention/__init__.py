import logging

from flask import Flask
from dotenv import load_dotenv

from app.retention.config import load_config
from app.retention.db import init_db


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres/MySQL in production (not sqlite).")
        if app.config.get("MIN_REMOVAL_DAYS", 0) < 1:
            raise RuntimeError("MIN_REMOVAL_DAYS must be a positive number of days in production.")

    init_db(app)

    logging.getLogger(__name__).info("create_app() complete; env=%s", env or "(unset)")

    return app
