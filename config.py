"""
Application configuration, read once at startup from the environment.
"""

import os

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "bubblycrochet")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))

# Accept the token/adminToken cookies as well as the Authorization header
AUTH_COOKIES = os.getenv("AUTH_COOKIES", "1") == "1"
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "0") == "1"

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "600"))
NOTIFICATION_LIMIT = int(os.getenv("NOTIFICATION_LIMIT", "100"))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8000"))

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@bubblycrochet.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
