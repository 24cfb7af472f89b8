from __future__ import annotations

from flask import Blueprint

from config import APP_NAME, APP_VERSION, VERIFY_FIREBASE_TOKEN
from container import current_services
from storage.supabase_store import supabase_enabled
from utils.json_helpers import jok

meta_bp = Blueprint("meta", __name__)


# =========================
# Meta / Health
# =========================
@meta_bp.get("/health")
def health():
    services = current_services()
    return jok(
        {
            "name": APP_NAME,
            "version": APP_VERSION,
            "openai": services.commands.client is not None,
            "stripe": bool(services.billing.api_key),
            "mls": services.mls.client.enabled,
            "supabase": supabase_enabled(),
            "verify_firebase_token": VERIFY_FIREBASE_TOKEN,
        }
    )


@meta_bp.get("/version")
def version():
    return jok({"name": APP_NAME, "version": APP_VERSION})
