from __future__ import annotations

import json
from typing import Any, Dict, Optional

from openai import OpenAI

from config import OPENAI_API_KEY


def build_openai_client(api_key: Optional[str] = OPENAI_API_KEY) -> Optional[OpenAI]:
    """Returns None when no key is configured; callers fall back to offline behaviour."""
    if not api_key:
        return None
    return OpenAI(api_key=api_key)


def function_call_arguments(resp: Any, name: str) -> Optional[Dict[str, Any]]:
    """Pull the parsed arguments of the named function call out of a Responses API result."""
    for item in getattr(resp, "output", None) or []:
        if getattr(item, "type", None) == "function_call" and getattr(item, "name", None) == name:
            return json.loads(item.arguments or "{}")
    return None
