import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    PROJECT_NAME: str = "Procurement Portal"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgres://postgres:password@db:5432/procurement")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "supersecretkey")
    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 1 day

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Document storage
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_UPLOAD_SIZE: int = int(os.getenv("MAX_UPLOAD_SIZE", str(50 * 1024 * 1024)))  # 50 MB

    # RFP reference numbers look like GPHA-2024-0001
    RFP_REFERENCE_PREFIX: str = os.getenv("RFP_REFERENCE_PREFIX", "GPHA")

    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "100/minute")

    # Per-subscriber buffer for pushed notifications; overflow is dropped
    NOTIFICATION_QUEUE_SIZE: int = int(os.getenv("NOTIFICATION_QUEUE_SIZE", "100"))

    def get_database_url(self):
        url = self.DATABASE_URL
        # Fix for SQLAlchemy compatibility (if using 'postgres://' instead of 'postgresql+psycopg2://')
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+psycopg2://", 1)
        return url

settings = Settings()
