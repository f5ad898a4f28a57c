import os

from dotenv import load_dotenv

load_dotenv(encoding="utf-8")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./crm.db"

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

PORT = int(os.getenv("PORT") or "5000")

CORS_ORIGINS = [
    o.strip()
    for o in (os.getenv("CORS_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

# ─── Delivery simulation ──────────────────────────────────────────
VENDOR_API_URL = (os.getenv("VENDOR_API_URL") or f"http://localhost:{PORT}").rstrip("/")
RECEIPT_CALLBACK_URL = os.getenv("RECEIPT_CALLBACK_URL") or f"http://localhost:{PORT}/api/delivery/receipt"

SEND_DELAY_MAX_SECONDS = _float_env("SEND_DELAY_MAX_SECONDS", 10.0)
RECEIPT_DELAY_MIN_SECONDS = _float_env("RECEIPT_DELAY_MIN_SECONDS", 1.0)
RECEIPT_DELAY_MAX_SECONDS = _float_env("RECEIPT_DELAY_MAX_SECONDS", 6.0)
VENDOR_SUCCESS_RATE = _float_env("VENDOR_SUCCESS_RATE", 0.9)
COMPLETION_DEADLINE_SECONDS = _float_env("COMPLETION_DEADLINE_SECONDS", 15.0)
HTTP_TIMEOUT_SECONDS = _float_env("HTTP_TIMEOUT_SECONDS", 10.0)

# ─── Text generation ──────────────────────────────────────────────
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY") or ""
LLM_MODEL = os.getenv("LLM_MODEL") or "claude-3-5-haiku-latest"
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS") or "1024")
