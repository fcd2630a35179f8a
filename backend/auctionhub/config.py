"""Application settings and validation."""

import os
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_JWT_SECRET = "change_me_for_prod"


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_DAYS: int
    DATABASE_URL: str
    PORT: int
    LOG_LEVEL: str
    MAX_UPLOAD_BYTES: int
    UPLOAD_DIR: Path
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    BID_CANCEL_WINDOW_SECONDS: int
    VERIFICATION_CODE_TTL_MINUTES: int
    AUTH_RATE_LIMIT_MAX: int
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int
    REDIS_URL: str
    RESEND_API_KEY: str
    EMAIL_FROM: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_DAYS = _int_env("JWT_EXPIRE_DAYS", 7)
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BACKEND_ROOT / 'auction.db'}")
        self.PORT = _int_env("PORT", 5000)
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.MAX_UPLOAD_BYTES = _int_env("MAX_UPLOAD_BYTES", 5 * 1024 * 1024)  # 5 MB default
        self.UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BACKEND_ROOT / "uploads"))).expanduser()
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.BID_CANCEL_WINDOW_SECONDS = _int_env("BID_CANCEL_WINDOW_SECONDS", 5 * 60)
        self.VERIFICATION_CODE_TTL_MINUTES = _int_env("VERIFICATION_CODE_TTL_MINUTES", 10)
        self.AUTH_RATE_LIMIT_MAX = _int_env("AUTH_RATE_LIMIT_MAX", 5)
        self.AUTH_RATE_LIMIT_WINDOW_SECONDS = _int_env("AUTH_RATE_LIMIT_WINDOW_SECONDS", 15 * 60)
        self.REDIS_URL = os.getenv("REDIS_URL", "").strip()
        self.RESEND_API_KEY = os.getenv("RESEND_API_KEY", "").strip()
        self.EMAIL_FROM = os.getenv("EMAIL_FROM", "AuctionHub <noreply@auctionhub.com>")
        self._validate()

    @property
    def is_dev(self) -> bool:
        return self.ENV in ("dev", "development")

    def _validate(self):
        if not self.is_dev and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == DEFAULT_JWT_SECRET:
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.BID_CANCEL_WINDOW_SECONDS < 0:
            raise RuntimeError("BID_CANCEL_WINDOW_SECONDS must be >= 0")


settings = Settings()
