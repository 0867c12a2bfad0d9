import os

from dotenv import load_dotenv

load_dotenv()

APP_NAME = "BashaChai API"
APP_ENV = os.getenv("APP_ENV") or os.getenv("NODE_ENV", "production")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

MONGODB_URI = os.getenv("MONGODB_URI") or os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "BASHACHAI")

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", 60 * 24 * 7))
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "auth-token")

FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
FIREBASE_CLIENT_EMAIL = os.getenv("FIREBASE_CLIENT_EMAIL")
FIREBASE_PRIVATE_KEY = (os.getenv("FIREBASE_PRIVATE_KEY") or "").replace("\\n", "\n")
FIREBASE_SERVICE_ACCOUNT_JSON = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")

BREVO_API_KEY = os.getenv("BREVO_API_KEY")
MAIL_SENDER = os.getenv("MAIL_SENDER", "noreply@bashachai.com")
INQUIRY_RECIPIENT = os.getenv("INQUIRY_RECIPIENT", "bashachai34@gmail.com")

RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", 100))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 15 * 60))
# peers whose X-Forwarded-For / X-Real-IP headers are believed; "*" trusts any peer
TRUSTED_PROXIES = [p.strip() for p in os.getenv("TRUSTED_PROXIES", "").split(",") if p.strip()]

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


def is_development() -> bool:
    return APP_ENV == "development"
