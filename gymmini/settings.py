import os
from dotenv import load_dotenv

# switch environments with GYM_ENV (dev, test, prod)
GYM_ENV = os.getenv("GYM_ENV", "dev")
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), f".env.{GYM_ENV}"))

# Fetch from OS env (Docker runtime injects this way)
MONGO_URI = os.getenv("MONGO_URI", "mongodb://mongo:27017")
MONGO_DB = os.getenv("MONGO_DB", "gymmini_dev")

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
ACCESS_TOKEN_EXPIRE_MIN = int(os.getenv("ACCESS_TOKEN_EXPIRE_MIN", str(7 * 24 * 60)))

# password given to identities created by an admin; sent with the credentials email
DEFAULT_PASSWORD = os.getenv("DEFAULT_PASSWORD", "password123")

STAFF_CODE_PREFIX = os.getenv("STAFF_CODE_PREFIX", "EMP")
BILLING_CYCLE_DAYS = int(os.getenv("BILLING_CYCLE_DAYS", "30"))
OTP_EXPIRE_MIN = int(os.getenv("OTP_EXPIRE_MIN", "10"))

EMAIL_SERVICE_URL = os.getenv("EMAIL_SERVICE_URL", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "GymMini <noreply@gymmini.com>")
EMAIL_TIMEOUT_S = float(os.getenv("EMAIL_TIMEOUT_S", "10"))

ENVIRONMENT = os.getenv("ENVIRONMENT", "local")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@gymmini.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
