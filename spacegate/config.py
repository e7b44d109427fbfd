import os


def _int_env(name, default=0):
    value = os.environ.get(name, "")
    return int(value) if value.strip() else default


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Roles ---
    # Ordered role table. When ROLES is None the YAML file is loaded instead.
    ROLES = None
    ROLES_FILE = os.environ.get("ROLES_FILE", "config.yml")

    # --- Tokens ---
    # Max bearer token age in seconds. 0 disables expiry.
    TOKEN_MAX_AGE = _int_env("TOKEN_MAX_AGE", 0)

    # --- Passwords ---
    PASSWORD_HASH_METHOD = os.environ.get("PASSWORD_HASH_METHOD", "scrypt")
    PASSWORD_MIN_LENGTH = 8
    PASSWORD_MAX_LENGTH = 32

    # --- Paging ---
    PAGE_SIZE = 50

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///spacegate.db"
    ROLES_FILE = os.environ.get("ROLES_FILE", "config.example.yml")


class TestConfig(Config):
    """Testing: in-memory SQLite, inline role table."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    TOKEN_MAX_AGE = 0
    PASSWORD_HASH_METHOD = "pbkdf2:sha256:1000"  # fast hashing for tests
    ROLES = [
        {
            "name": "Admin",
            "level": 100,
            "permissions": {
                "promote": True,
                "wave": True,
                "manage": True,
                "spaces": True,
                "spaces_manage": True,
                "services": True,
                "services_manage": True,
            },
        },
        {
            "name": "Moderator",
            "level": 90,
            "permissions": {"wave": True, "spaces": True, "spaces_manage": True},
        },
        {
            "name": "Spaces",
            "level": 10,
            "permissions": {"spaces": True, "services": True},
        },
        {"name": "Default", "level": 0},
    ]

    @staticmethod
    def validate():
        """Skip validation in test mode, everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
