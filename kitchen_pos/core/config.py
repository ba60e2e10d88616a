import os

from dotenv import load_dotenv

# Loads .env from the project root
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./kitchen_pos.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
SQL_ECHO = os.getenv("SQL_ECHO", "").strip().lower() in _TRUTHY
SQLITE_BUSY_TIMEOUT_SECONDS = float(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "30"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

# Auth (JWT)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-only-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

ONBOARDING_API_TOKEN = os.getenv("ONBOARDING_API_TOKEN", "").strip()

# Identity provider
IDENTITY_PROVIDER = os.getenv("IDENTITY_PROVIDER", "local").strip().lower()
SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip().rstrip("/")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
IDENTITY_HTTP_TIMEOUT_SECONDS = float(os.getenv("IDENTITY_HTTP_TIMEOUT_SECONDS", "10"))
GENERATED_PASSWORD_LENGTH = int(os.getenv("GENERATED_PASSWORD_LENGTH", "12"))

# Business rules
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "UTC").strip() or "UTC"
ORDER_NUMBER_MAX_ATTEMPTS = max(1, int(os.getenv("ORDER_NUMBER_MAX_ATTEMPTS", "5")))

# Optional super_admin created at startup
SUPER_ADMIN_EMAIL = os.getenv("SUPER_ADMIN_EMAIL", "").strip().lower()
SUPER_ADMIN_PASSWORD = os.getenv("SUPER_ADMIN_PASSWORD", "").strip()
