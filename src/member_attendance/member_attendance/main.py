from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from flask import Flask, send_from_directory

from config import get_settings_module

from .attendance.controller import register as register_attendance
from .common.logging_setup import configure_logging
from .container import Container, build_container
from .core.constants import DEFAULT_PAGE_LIMIT, QR_URL_PREFIX
from .database.bootstrap import apply_schema, list_tables
from .http.responses import register_error_handlers
from .members.controller import register as register_members
from .reports.controller import register as register_reports

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[3] / "database" / "schema.sql"


def _register_cli(app: Flask, container: Container, db_config: dict) -> None:
    @app.cli.command("init-db")
    def init_db_command():
        """Create the database and apply schema.sql."""
        apply_schema(db_config, schema_path=SCHEMA_PATH)
        click.echo(f"Schema ready (tables={len(list_tables(db_config))})")

    @app.cli.command("reconcile-presence")
    def reconcile_presence_command():
        """Recompute every member's presence flag from the attendance ledger."""
        corrected = container.presence.reconcile_presence()
        if corrected:
            click.echo(f"Corrected {len(corrected)} member(s): {', '.join(corrected)}")
        else:
            click.echo("All presence flags are consistent")

    @app.cli.command("issue-token")
    @click.argument("admin_id")
    @click.option("--role", type=click.Choice(["admin", "superadmin"]), default="admin")
    def issue_token_command(admin_id: str, role: str):
        """Print a bearer token for an admin."""
        click.echo(container.tokens.issue_token(admin_id, role))


def create_app(settings_module: Optional[str] = None, *, container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = settings_module or get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = dict(getattr(settings, "DB_CONFIG"))
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.config["DEFAULT_PAGE_LIMIT"] = int(getattr(settings, "DEFAULT_PAGE_LIMIT", DEFAULT_PAGE_LIMIT))
    qr_code_dir = Path(getattr(settings, "QR_CODE_DIR", "qr-codes")).resolve()
    qr_url_prefix = str(getattr(settings, "QR_URL_PREFIX", QR_URL_PREFIX)).rstrip("/")

    # Under test the package logger keeps propagating so pytest can capture it.
    if not app.config["TESTING"]:
        configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    logger.info(
        "settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    if container is None:
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config, schema_path=SCHEMA_PATH)
            logger.info("Schema ready (tables=%d)", len(list_tables(db_config)))

        container = build_container(
            db_config=db_config,
            qr_code_dir=str(qr_code_dir),
            qr_url_prefix=qr_url_prefix,
            secret_key=app.secret_key,
            token_max_age_seconds=int(getattr(settings, "TOKEN_MAX_AGE_SECONDS", 24 * 3600)),
        )

    @app.route(f"{qr_url_prefix}/<path:filename>", methods=["GET"], endpoint="qr_code_file")
    def qr_code_file(filename: str):
        return send_from_directory(qr_code_dir, filename)

    register_error_handlers(app)
    register_members(app, container)
    register_attendance(app, container)
    register_reports(app, container)
    _register_cli(app, container, db_config)

    app.extensions["member_attendance"] = container
    return app
