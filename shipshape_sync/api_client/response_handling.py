"""Shared HTTP response helpers for track API interactions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ..errors import (
    AuthenticationError,
    DecodeError,
    ResourceNotFoundError,
    ServerError,
)

LOGGER = logging.getLogger(__name__)

_MAX_ERROR_TEXT = 300

__all__ = [
    "classify_response_status",
    "decode_json_object",
    "extract_error",
]


def classify_response_status(
    response: requests.Response, context: str
) -> Optional[ServerError]:
    """Return the error matching a non-2xx status, or ``None`` on success."""

    status = response.status_code
    if 200 <= status < 300:
        return None
    detail = extract_error(response)

    def with_detail(message: str) -> str:
        return f"{message} | {detail}" if detail else message

    if status in (401, 403):
        message = with_detail(f"{context} rejected credentials (status {status})")
        LOGGER.warning(message)
        return AuthenticationError(message, status_code=status)

    if status == 404:
        message = with_detail(f"{context} not found")
        LOGGER.info(message)
        return ResourceNotFoundError(message, status_code=status)

    message = with_detail(f"{context} request failed (status {status})")
    LOGGER.error(message)
    return ServerError(message, status_code=status)


def decode_json_object(response: requests.Response, context: str) -> Dict[str, Any]:
    """Return the response body as a JSON object or raise :class:`DecodeError`."""

    if not getattr(response, "content", b""):
        raise DecodeError(f"{context} returned an empty body")
    data = _safe_json(response)
    if data is None:
        raise DecodeError(f"{context} returned non-JSON payload")
    if not isinstance(data, dict):
        raise DecodeError(
            f"{context} returned {type(data).__name__}, expected a JSON object"
        )
    return data


def extract_error(response: requests.Response) -> Optional[str]:
    """Server-supplied error detail: JSON message fields, else the raw text."""

    data = _safe_json(response)
    if isinstance(data, dict):
        parts = _collect_error_parts(data)
        return " | ".join(parts) if parts else None
    if data is not None:
        return None
    text = (getattr(response, "text", "") or "").strip()
    if len(text) > _MAX_ERROR_TEXT:
        return text[: _MAX_ERROR_TEXT - 3] + "..."
    return text or None


def _safe_json(response: requests.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError:
        LOGGER.debug("Response from %s is not JSON", getattr(response, "url", "?"))
        return None


def _collect_error_parts(data: Dict[str, Any]) -> List[str]:
    parts: List[str] = []
    for key in ("message", "error", "detail"):
        value = data.get(key)
        if value:
            parts.append(str(value))
    return parts
