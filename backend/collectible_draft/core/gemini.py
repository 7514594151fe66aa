import base64
import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from collectible_draft.core.config import settings

logger = logging.getLogger(__name__)

# Service endpoint for Gemini API (v1beta)
API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiNotConfigured(ValueError):
    """Raised when no GEMINI_API_KEY is available."""


class GeminiRequestError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def _redact_key(s: str) -> str:
    """
    Redact 'key=...' in URLs or text so we never leak API keys in logs/responses.
    """
    if not s:
        return s
    # Replace key=XXXXX (until & or whitespace)
    return re.sub(r"(key=)([^&\s]+)", r"\1REDACTED", s)


def _api_key(api_key: Optional[str] = None) -> str:
    return (api_key if api_key is not None else settings.GEMINI_API_KEY or "").strip()


def is_configured(api_key: Optional[str] = None) -> bool:
    return bool(_api_key(api_key))


async def _list_models(client: httpx.AsyncClient, api_key: str) -> Dict[str, Any]:
    """
    Calls GET /v1beta/models (ListModels).
    """
    r = await client.get(f"{API_BASE}/models", params={"key": api_key})
    if r.status_code >= 400:
        raise GeminiRequestError(
            f"Gemini ListModels failed: {r.status_code}",
            status_code=r.status_code,
            body=_redact_key(r.text)[:2000],
        )
    return r.json()


def _pick_model_from_list(models_payload: Dict[str, Any]) -> str:
    """
    Picks a model name (e.g. 'models/xxx') that supports generateContent.
    Preference:
      1) Flash models (contains 'flash')
      2) Any model that supports generateContent
    """
    models = models_payload.get("models", []) or []

    def supports_generate(m: Dict[str, Any]) -> bool:
        methods = m.get("supportedGenerationMethods") or []
        return any(str(x).lower() == "generatecontent" for x in methods)

    candidates = [m for m in models if supports_generate(m)]
    if not candidates:
        raise GeminiRequestError("No models found that support generateContent")

    flash = [m for m in candidates if "flash" in (m.get("name", "").lower())]
    chosen = (flash[0] if flash else candidates[0]).get("name")
    if not chosen:
        raise GeminiRequestError("ListModels returned a model entry without a name")
    return chosen


def _normalize_model(name: str) -> str:
    name = (name or "").strip()
    if not name:
        return ""
    return name if name.startswith("models/") else f"models/{name}"


async def _resolve_model_name(client: httpx.AsyncClient, api_key: str, configured: str = "") -> str:
    """
    Uses the configured model when there is one, otherwise asks ListModels.
    """
    configured = _normalize_model(configured)
    if configured:
        return configured
    return _pick_model_from_list(await _list_models(client, api_key))


def _response_text(data: Dict[str, Any]) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        raise GeminiRequestError(f"Unexpected Gemini response shape; raw={json.dumps(data)[:2000]}")
    if not isinstance(parts, list):
        raise GeminiRequestError(f"Unexpected Gemini response shape; raw={json.dumps(data)[:2000]}")
    # non-text parts (and malformed ones) carry nothing to read
    return "".join(p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)).strip()


async def describe_image(
    image_bytes: bytes,
    mime_type: str,
    prompt: str,
    *,
    max_output_tokens: int = 500,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Sends an image plus an instruction to Gemini and returns the model's text.

    - Resolves a model via ListModels when GEMINI_MODEL is not set
    - Re-resolves once if the configured model 404s
    - Redacts the API key from any raised errors
    - No retries: a failed call is reported to the caller as GeminiRequestError
    """
    key = _api_key(api_key)
    if not key:
        raise GeminiNotConfigured("GEMINI_API_KEY is not set")

    payload = {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {"text": prompt},
                    {
                        "inline_data": {
                            "mime_type": mime_type or "image/jpeg",
                            "data": _b64(image_bytes),
                        }
                    },
                ],
            }
        ],
        "generationConfig": {
            "temperature": 0.2,
            "maxOutputTokens": max_output_tokens,
        },
    }

    configured = model if model is not None else settings.GEMINI_MODEL
    try:
        async with httpx.AsyncClient(timeout=settings.VISION_TIMEOUT_SECONDS, transport=transport) as client:
            model_name = await _resolve_model_name(client, key, configured)
            url = f"{API_BASE}/{model_name}:generateContent"
            r = await client.post(url, params={"key": key}, json=payload)

            # Configured model may be gone; fall back to whatever ListModels offers
            if r.status_code == 404 and configured:
                model_name = await _resolve_model_name(client, key)
                url = f"{API_BASE}/{model_name}:generateContent"
                r = await client.post(url, params={"key": key}, json=payload)

            if r.status_code >= 400:
                raise GeminiRequestError(
                    f"Gemini request failed: {r.status_code}",
                    status_code=r.status_code,
                    body=_redact_key(r.text)[:2000],
                )
            data = r.json()
    except httpx.HTTPError as e:
        raise GeminiRequestError(f"Gemini transport error: {_redact_key(str(e))}")
    except ValueError:
        raise GeminiRequestError("Gemini returned a non-JSON body")

    text = _response_text(data)
    if not text:
        raise GeminiRequestError("Gemini returned no content")
    logger.debug("Gemini %s returned %d chars", model_name, len(text))
    return text
