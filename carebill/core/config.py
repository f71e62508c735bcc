# carebill/core/config.py
import os
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "CareBill Hospital CRM")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- MySQL ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "carebill_user")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "carebill")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "carebill")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # Full URL override (sqlite for local runs, etc.)
    SQLALCHEMY_DATABASE_URI: str = os.getenv(
        "DATABASE_URL",
        f"mysql+{DB_DRIVER}://{quote_plus(MYSQL_USER)}:{quote_plus(MYSQL_PASSWORD)}"
        f"@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DB}",
    )

    # Wall-clock used for "today" in billing
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")

    # ---------- Billing ----------
    # read-modify-write retries on a concurrent bill update
    BILLING_TX_RETRIES: int = int(os.getenv("BILLING_TX_RETRIES", "3"))
    INVOICE_PREFIX: str = os.getenv("INVOICE_PREFIX", "INV-")

    # Nightly room billing
    ROOM_BILLING_INCLUDE_TODAY: bool = _flag("ROOM_BILLING_INCLUDE_TODAY")
    ROOM_RATE_FALLBACK_TO_BED: bool = _flag("ROOM_RATE_FALLBACK_TO_BED",
                                            "true")
    ROOM_BILLING_CASE_TIMEOUT_SECONDS: float = float(
        os.getenv("ROOM_BILLING_CASE_TIMEOUT_SECONDS", "60") or 0)

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")


settings = Settings()
