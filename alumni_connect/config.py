import os
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Settings:
    # -------------------------------------------------------
    # Project
    # -------------------------------------------------------
    PROJECT_NAME: str = "Alumni Connect API"
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # -------------------------------------------------------
    # Database
    # -------------------------------------------------------
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./alumni_connect.db"
    )

    # Hosted Postgres hands out postgres:// but SQLAlchemy needs postgresql://
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

    # Reads only; writes are never retried
    READ_RETRY_ATTEMPTS: int = int(os.getenv("READ_RETRY_ATTEMPTS", 3))
    READ_RETRY_BASE_DELAY: float = float(os.getenv("READ_RETRY_BASE_DELAY", 0.2))

    # Viewers whose connection index stays cached in this process
    INDEX_CACHE_MAX_VIEWERS: int = int(os.getenv("INDEX_CACHE_MAX_VIEWERS", 1024))

    # -------------------------------------------------------
    # Authentication (tokens are issued by Supabase Auth)
    # -------------------------------------------------------
    SUPABASE_JWT_SECRET: str = os.getenv(
        "SUPABASE_JWT_SECRET",
        "local-dev-jwt-secret"   # Only used for local dev
    )
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = os.getenv("JWT_AUDIENCE", "authenticated")

    # -------------------------------------------------------
    # CORS
    # -------------------------------------------------------
    CORS_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    # -------------------------------------------------------
    # Job notification email (Resend)
    # -------------------------------------------------------
    RESEND_API_KEY: str | None = os.getenv("RESEND_API_KEY")
    RESEND_API_URL: str = os.getenv(
        "RESEND_API_URL",
        "https://api.resend.com/emails"
    )
    NOTIFICATION_FROM: str = os.getenv(
        "NOTIFICATION_FROM",
        "Alumni Connect <onboarding@resend.dev>"
    )
    NOTIFICATION_TIMEOUT_SECONDS: float = float(
        os.getenv("NOTIFICATION_TIMEOUT_SECONDS", 10)
    )


# Single instance that is imported everywhere
settings = Settings()
