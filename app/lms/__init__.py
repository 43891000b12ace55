import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, request
from flask_cors import CORS

from app.lms.config import load_config
from app.lms.db import init_db, teardown_db_session
from app.lms.errors import register_error_handlers
from app.lms.realtime import init_realtime
from app.lms.routes import bp as routes_bp
from app.lms.auth import bp as auth_bp, load_current_user
from app.lms.modules.enrollments.api import bp as enrollments_bp
from app.lms.modules.fees.api import bp as fees_bp
from app.lms.modules.attendance.api import bp as attendance_bp, lock_attendance_command
from app.lms.modules.assignments.api import bp as assignments_bp
from app.lms.modules.daily_tasks.api import bp as daily_tasks_bp
from app.lms.modules.live_classes.api import bp as live_classes_bp
from app.lms.modules.chat.api import bp as chat_bp, tasks_bp as task_chat_bp
from app.lms.modules.settings.api import bp as settings_bp
from app.lms.modules.stats.api import bp as stats_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.url_map.strict_slashes = False

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage config check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    CORS(app, resources={r"/api/*": {"origins": app.config["CLIENT_URLS"]}}, supports_credentials=True)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(enrollments_bp, url_prefix="/api/enrollments")
    app.register_blueprint(fees_bp, url_prefix="/api/fees")
    app.register_blueprint(attendance_bp, url_prefix="/api/attendance")
    app.register_blueprint(assignments_bp, url_prefix="/api/assignments")
    app.register_blueprint(daily_tasks_bp, url_prefix="/api/daily-tasks")
    app.register_blueprint(live_classes_bp, url_prefix="/api/live-class")
    app.register_blueprint(chat_bp, url_prefix="/api/chat")
    app.register_blueprint(task_chat_bp, url_prefix="/api/tasks")
    app.register_blueprint(settings_bp, url_prefix="/api/settings")
    app.register_blueprint(stats_bp, url_prefix="/api/stats")

    def _load_user_wrapper():
        if request.path.startswith(("/api/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    register_error_handlers(app)
    init_realtime(app)
    app.cli.add_command(lock_attendance_command)

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
