import os


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _csv_env(name: str) -> list[str]:
    raw = os.getenv(name) or ""
    return [x.strip().lower() for x in raw.split(",") if x.strip()]


class Config:
    # Base directory of the backend (one level above this package)
    BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    INSTANCE_DIR = os.path.join(BACKEND_DIR, "instance")

    ENV = (os.getenv("CHALLENGEFLOW_ENV", "dev") or "dev").strip().lower()
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")

    _default_sqlite_path = os.path.join(INSTANCE_DIR, "challengeflow.db").replace("\\", "/")
    _db_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL") or f"sqlite:///{_default_sqlite_path}"
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS: comma-separated origins for web builds
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    # Automated analysis
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    ADJUDICATION_TIMEOUT_SECONDS = _float_env("ADJUDICATION_TIMEOUT_SECONDS", 60.0)
    ADJUDICATION_MAX_ATTEMPTS = _int_env("ADJUDICATION_MAX_ATTEMPTS", 3)
    ADJUDICATION_BACKOFF_SECONDS = _float_env("ADJUDICATION_BACKOFF_SECONDS", 1.0)
    # A timed-out analyzer call keeps its worker until its own HTTP timeout ends.
    ADJUDICATION_MAX_WORKERS = _int_env("ADJUDICATION_MAX_WORKERS", 16)

    # Outcome policy
    CONFIDENCE_THRESHOLD_LOW = _int_env("CONFIDENCE_THRESHOLD_LOW", 50)
    CONFIDENCE_THRESHOLD_HIGH = _int_env("CONFIDENCE_THRESHOLD_HIGH", 80)
    AUTO_APPROVE_CATEGORIES = _csv_env("AUTO_APPROVE_CATEGORIES")

    # Participations stuck in pending-analysis longer than this go to manual review
    STALE_ANALYSIS_SECONDS = _int_env("STALE_ANALYSIS_SECONDS", 600)

    # Development convenience: create missing tables on first request. Use migrations in production.
    AUTO_CREATE_TABLES = ENV not in ("prod", "production")
