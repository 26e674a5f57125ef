from __future__ import annotations

import json
import re

import requests

GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def generate_json(*, api_key: str, model: str, prompt: str, timeout: float = 30.0) -> dict:
    """Ask Gemini for a JSON answer and return the parsed object.

    Returns {"ok": True, "data": {...}} or {"ok": False, "error": "...", "retryable": bool}.
    """
    if not api_key:
        return {"ok": False, "error": "GEMINI_API_KEY not set", "retryable": False}

    url = f"{GEMINI_BASE}/{model}:generateContent"
    payload = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {"temperature": 0.2, "maxOutputTokens": 500},
    }
    try:
        r = requests.post(url, params={"key": api_key}, json=payload, timeout=timeout)
    except requests.RequestException as e:
        return {"ok": False, "error": f"gemini_exception:{e}", "retryable": True}

    if r.status_code == 429 or r.status_code >= 500:
        return {"ok": False, "error": f"gemini_http_{r.status_code}", "retryable": True}
    if not (200 <= r.status_code < 300):
        return {"ok": False, "error": f"gemini_http_{r.status_code}", "retryable": False}

    try:
        body = r.json() if r.content else {}
    except ValueError:
        return {"ok": False, "error": "gemini_bad_body", "retryable": True}

    text = ""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"] or ""
    except (KeyError, IndexError, TypeError):
        text = ""

    match = _JSON_OBJECT.search(text)
    if not match:
        return {"ok": False, "error": "gemini_unparseable", "retryable": True}
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return {"ok": False, "error": "gemini_unparseable", "retryable": True}
    if not isinstance(data, dict):
        return {"ok": False, "error": "gemini_unparseable", "retryable": True}
    return {"ok": True, "data": data}
