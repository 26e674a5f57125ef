import os
import subprocess
from flask import Flask, jsonify
from sqlalchemy import text

from challengeflow.config import Config
from challengeflow.errors import ChallengeFlowError
from challengeflow.extensions import db, migrate, cors, login_manager
from challengeflow.segments.segment_participations import participations_bp
from challengeflow.segments.segment_moderation import moderation_bp
from challengeflow.segments.segment_ledger import ledger_bp
from challengeflow.segments.segment_review_policy import review_policy_bp
from challengeflow.segments.segment_notification_dispatcher import dispatcher_bp
from challengeflow.segments.segment_maintenance import maintenance_bp
from challengeflow.services.adjudication import build_client
from challengeflow.services.participations import ADJUDICATION_EXTENSION


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    env = (app.config.get("ENV") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (app.config.get("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16 or secret == "dev-secret":
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    # Ensure instance dir exists for the default SQLite path
    os.makedirs(Config.INSTANCE_DIR, exist_ok=True)

    # CORS configuration
    cors_origins = (app.config.get("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Registers the bearer-token request loader
    from challengeflow import auth  # noqa: F401

    if ADJUDICATION_EXTENSION not in app.extensions:
        app.extensions[ADJUDICATION_EXTENSION] = build_client(app.config)

    # Register API routes
    app.register_blueprint(participations_bp)
    app.register_blueprint(moderation_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(review_policy_bp)
    app.register_blueprint(dispatcher_bp)
    app.register_blueprint(maintenance_bp)

    @app.errorhandler(ChallengeFlowError)
    def _challengeflow_error(e: ChallengeFlowError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status_code

    # Health check
    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            db.session.execute(text("SELECT 1"))
        except Exception:
            db_state = "fail"
        return jsonify({
            "ok": True,
            "service": "challengeflow-backend",
            "env": env,
            "db": db_state,
        })

    @app.get("/api/version")
    def version():
        def _get_alembic_head() -> str:
            try:
                from alembic.config import Config as AlembicConfig
                from alembic.script import ScriptDirectory
                migrations_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "migrations"))
                cfg = AlembicConfig(os.path.join(migrations_dir, "alembic.ini"))
                cfg.set_main_option("script_location", migrations_dir)
                script = ScriptDirectory.from_config(cfg)
                heads = script.get_heads()
                return heads[0] if heads else "unknown"
            except Exception:
                return "unknown"

        def _get_git_sha() -> str:
            try:
                repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
                out = subprocess.check_output(["git", "rev-parse", "HEAD"], cwd=repo_root, stderr=subprocess.DEVNULL)
                return out.decode().strip()
            except Exception:
                return "unknown"

        return jsonify({
            "ok": True,
            "alembic_head": _get_alembic_head(),
            "git_sha": _get_git_sha(),
        })

    app.logger.info("challengeflow backend ready (env=%s)", env)
    return app
