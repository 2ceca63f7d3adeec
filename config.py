# config.py
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv()


def _build_mongo_uri() -> str:
    uri = os.getenv("MONGO_URI")
    if uri:
        return uri

    # Atlas style credentials, same as the old deployment
    user = os.getenv("MONGO_USER")
    password = os.getenv("MONGO_PASSWORD")
    cluster = os.getenv("MONGO_CLUSTER_URL")
    if user and password and cluster:
        return (
            f"mongodb+srv://{quote_plus(user)}:{quote_plus(password)}@{cluster}"
            "/?retryWrites=true&w=majority&appName=cravings"
        )
    return "mongodb://localhost:27017"


class Settings:
    PROJECT_NAME: str = os.getenv("APP_NAME", "Midnight Cravings API")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS: list = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    MONGO_URI: str = _build_mongo_uri()
    MONGO_DB_NAME: str = os.getenv("MONGO_DB_NAME", "midnight_cravings")

    SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "changeme")
    ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))

    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID")
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET")
    RAZORPAY_API_URL: str = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1")
    CURRENCY: str = os.getenv("CURRENCY", "INR")

    SMTP_HOST: str = os.getenv("SMTP_HOST")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", os.getenv("SMTP_USER", ""))
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # Batch checkout historically left stock untouched
    CHECKOUT_DECREMENTS_STOCK: bool = os.getenv("CHECKOUT_DECREMENTS_STOCK", "false").lower() in ("1", "true", "yes")


settings = Settings()
