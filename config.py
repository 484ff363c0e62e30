"""
Runtime settings for the campus events service.

Everything comes from environment variables so the same build runs locally,
in CI and in deployment.
"""
import os

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-CHANGE-ME-IN-PROD")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "*")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")

PORT = int(os.getenv("PORT", "8000"))

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
