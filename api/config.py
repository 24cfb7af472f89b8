from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

# =========================
# Config & Initialization
# =========================
BASE_DIR = os.path.dirname(os.path.abspath(__file__))     # api/
ROOT_DIR = os.path.dirname(BASE_DIR)                      # project root

# Load root .env first, then any CWD .env.
load_dotenv(os.path.join(ROOT_DIR, ".env"))
load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


APP_NAME = os.getenv("APP_NAME", "Estait API")
APP_VERSION = os.getenv("APP_VERSION", "0.3.0")
PORT = int(os.getenv("PORT", "5050"))
DEBUG = _flag("DEBUG", "true")
FLASK_SECRET = os.getenv("FLASK_SECRET", "estait_dev_secret")

# Public base URL used to build OAuth redirect URIs.
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5050").rstrip("/")

# Secret for at-rest token encryption.
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "default-dev-key-replace-in-production")

# === CRM providers ===
WISEAGENT_CLIENT_ID = os.getenv("WISEAGENT_CLIENT_ID", "")
WISEAGENT_CLIENT_SECRET = os.getenv("WISEAGENT_CLIENT_SECRET", "")
FOLLOWUPBOSS_CLIENT_ID = os.getenv("FOLLOWUPBOSS_CLIENT_ID", "")
FOLLOWUPBOSS_CLIENT_SECRET = os.getenv("FOLLOWUPBOSS_CLIENT_SECRET", "")
REALGEEKS_CLIENT_ID = os.getenv("REALGEEKS_CLIENT_ID", "")
REALGEEKS_CLIENT_SECRET = os.getenv("REALGEEKS_CLIENT_SECRET", "")
CRM_HTTP_TIMEOUT_SECS = float(os.getenv("CRM_HTTP_TIMEOUT_SECS", "20"))

# === Stripe ===
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_PRICE_BASIC = os.getenv("STRIPE_PRICE_BASIC", "")
STRIPE_PRICE_PROFESSIONAL = os.getenv("STRIPE_PRICE_PROFESSIONAL", "")
STRIPE_PRICE_ENTERPRISE = os.getenv("STRIPE_PRICE_ENTERPRISE", "")

# === MLS (RapidAPI property search) ===
MLS_API_KEY = os.getenv("MLS_API_KEY", "")
MLS_API_HOST = os.getenv("MLS_API_HOST", "realty-mole-property-api.p.rapidapi.com")
MLS_TIMEOUT_SECS = float(os.getenv("MLS_TIMEOUT_SECS", "20"))

# === OpenAI (command interpretation) ===
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

# === Reminders ===
CRON_SECRET = os.getenv("CRON_SECRET", "")
REMINDER_BATCH_LIMIT = int(os.getenv("REMINDER_BATCH_LIMIT", "100"))
REMINDER_WORKERS = int(os.getenv("REMINDER_WORKERS", "8"))

# === Debug console ===
DEBUG_CONSOLE_ENABLED = _flag("DEBUG_CONSOLE_ENABLED", "false")
DEBUG_EVENTS_MAX = int(os.getenv("DEBUG_EVENTS_MAX", "500"))

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger("estait")

# === Optional: Firebase ID token verification for API callers ===
VERIFY_FIREBASE_TOKEN = _flag("VERIFY_FIREBASE_TOKEN", "false")
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID") or None
if VERIFY_FIREBASE_TOKEN:
    from google.oauth2 import id_token
    from google.auth.transport import requests as google_requests
else:
    id_token = None
    google_requests = None
