# config.py
import os
from datetime import timedelta

from sqlalchemy.pool import StaticPool


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value, default, *, minimum=None, maximum=None):
    """
    Parse an integer setting, falling back to ``default`` on garbage input.

    Values outside the optional bounds are clamped rather than rejected.
    """
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if minimum is not None and number < minimum:
        number = minimum
    if maximum is not None and number > maximum:
        number = maximum
    return number


class Config:
    # SECRET_KEY must be set via environment variable for security
    # Generate with: python -c "import secrets; print(secrets.token_hex(32))"
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Only require SECRET_KEY in production mode
    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    # For development, use a default but it's not secure
    if not SECRET_KEY and not _is_testing:
        import warnings

        warnings.warn(
            "SECRET_KEY not set. Using default for development only. "
            "This is insecure and should not be used in production. "
            "Set SECRET_KEY environment variable or generate with: "
            'python -c "import secrets; print(secrets.token_hex(32))"',
            UserWarning,
        )
        SECRET_KEY = "dev-secret-key-change-in-production"

    # Set a default for testing (will be overridden by TestingConfig)
    if not SECRET_KEY:
        SECRET_KEY = "test-secret-key-placeholder"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Bulk user import configuration
    BULK_IMPORT_ENABLED = _coerce_bool(os.environ.get("BULK_IMPORT_ENABLED"), default=True)
    BULK_IMPORT_MAX_ROWS = _parse_int(os.environ.get("BULK_IMPORT_MAX_ROWS"), 100, minimum=1, maximum=1000)
    BULK_IMPORT_RATE_LIMIT_MAX = _parse_int(os.environ.get("BULK_IMPORT_RATE_LIMIT_MAX"), 5, minimum=1)
    BULK_IMPORT_RATE_LIMIT_WINDOW_SECONDS = _parse_int(
        os.environ.get("BULK_IMPORT_RATE_LIMIT_WINDOW_SECONDS"), 300, minimum=1
    )
    # 0 disables the batch deadline
    BULK_IMPORT_TIMEOUT_SECONDS = _parse_int(os.environ.get("BULK_IMPORT_TIMEOUT_SECONDS"), 0, minimum=0)
    BULK_IMPORT_PASSWORD_LENGTH = _parse_int(os.environ.get("BULK_IMPORT_PASSWORD_LENGTH"), 16, minimum=12, maximum=128)
    BULK_IMPORT_MAX_UPLOAD_MB = _parse_int(os.environ.get("BULK_IMPORT_MAX_UPLOAD_MB"), 5, minimum=1, maximum=50)
    BULK_IMPORT_SEND_WELCOME_EMAIL = _coerce_bool(os.environ.get("BULK_IMPORT_SEND_WELCOME_EMAIL"), default=True)
    PUBLIC_APP_URL = os.environ.get("PUBLIC_APP_URL", "http://localhost:8080")

    # Bearer token authentication
    AUTH_TOKEN_MAX_AGE_SECONDS = _parse_int(os.environ.get("AUTH_TOKEN_MAX_AGE_SECONDS"), 3600, minimum=60)

    # One-time passcodes for forced password changes
    OTP_EXPIRY_MINUTES = _parse_int(os.environ.get("OTP_EXPIRY_MINUTES"), 10, minimum=1, maximum=60)
    OTP_RATE_LIMIT_MAX = _parse_int(os.environ.get("OTP_RATE_LIMIT_MAX"), 3, minimum=1)
    OTP_RATE_LIMIT_WINDOW_SECONDS = _parse_int(os.environ.get("OTP_RATE_LIMIT_WINDOW_SECONDS"), 600, minimum=1)
    # Wrong guesses allowed against one code before it is discarded
    OTP_MAX_ATTEMPTS = _parse_int(os.environ.get("OTP_MAX_ATTEMPTS"), 5, minimum=1)
    OTP_VERIFY_RATE_LIMIT_MAX = _parse_int(os.environ.get("OTP_VERIFY_RATE_LIMIT_MAX"), 10, minimum=1)

    MAX_CONTENT_LENGTH = BULK_IMPORT_MAX_UPLOAD_MB * 1024 * 1024

    # Session configuration
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"


class DevelopmentConfig(Config):
    DEBUG = True
    # Get the project root directory (parent of config directory)
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (3 slashes for absolute path)
    db_path = os.path.join(instance_path, "planivo_dev.db")
    db_path_normalized = db_path.replace("\\", "/")
    db_uri = f"sqlite:///{db_path_normalized}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    BULK_IMPORT_SEND_WELCOME_EMAIL = True
    SQLALCHEMY_ENGINE_OPTIONS = {
        # One shared connection so every session sees the same in-memory database
        "poolclass": StaticPool,
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    SESSION_COOKIE_SECURE = True
