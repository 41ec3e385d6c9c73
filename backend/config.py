import os


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "community_connect")
# Multi-document transactions need a replica set; standalone servers run the
# same flows as sequential writes.
MONGO_TRANSACTIONS = _flag("MONGO_TRANSACTIONS")

# JWT config
SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
REFRESH_SECRET_KEY = os.getenv("REFRESH_SECRET_KEY", SECRET_KEY + "-refresh")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# HTTP
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
API_PREFIX = "/api/v1"
LEGACY_ROUTES = _flag("LEGACY_ROUTES", "1")
AUTH_RATE_LIMIT = int(os.getenv("AUTH_RATE_LIMIT", "50"))
AUTH_RATE_WINDOW = int(os.getenv("AUTH_RATE_WINDOW", "60"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "")

# Uploads
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
ALLOWED_UPLOAD_TYPES = {"image/jpeg": ".jpg", "image/png": ".png", "image/gif": ".gif"}

# Domain
DEFAULT_TRUST_SCORE = 5.0
NOTIFICATION_LIMIT = 30


def is_production() -> bool:
    return ENVIRONMENT == "production"
