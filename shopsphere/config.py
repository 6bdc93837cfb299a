import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

CURRENCY = "NGN"
DEFAULT_PAYSTACK_BASE_URL = "https://api.paystack.co"


def paystack_base_url() -> str:
    return os.getenv("PAYSTACK_BASE_URL", DEFAULT_PAYSTACK_BASE_URL).rstrip("/")


def is_development() -> bool:
    return os.getenv("APP_ENV", "production").lower() == "development"
