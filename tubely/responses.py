"""JSON responses for the HTTP API."""

from __future__ import annotations

import dataclasses
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from werkzeug.wrappers import Response

logger = logging.getLogger(__name__)

_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = int(value.utcoffset().total_seconds())
    if offset == 0:
        return text + "Z"
    sign = "+" if offset > 0 else "-"
    hours, minutes = divmod(abs(offset) // 60, 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def _default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {field.name: getattr(obj, field.name) for field in dataclasses.fields(obj)}
    if isinstance(obj, uuid.UUID):
        return str(obj)
    if isinstance(obj, datetime):
        return _format_time(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_payload(payload: Any) -> bytes:
    """Serialise a payload to compact JSON with HTML-sensitive characters escaped."""
    text = json.dumps(
        payload,
        default=_default,
        ensure_ascii=False,
        allow_nan=False,
        separators=(",", ":"),
    )
    return text.translate(_ESCAPES).encode("utf-8")


def respond_with_json(code: int, payload: Any) -> Response:
    """Build a JSON response; an unencodable payload gives an empty 500."""
    try:
        body = encode_payload(payload)
    except (TypeError, ValueError) as exc:
        logger.error("Error marshalling JSON: %s", exc)
        return Response(b"", status=500, content_type="application/json")
    return Response(body, status=code, content_type="application/json")


def respond_with_error(code: int, msg: str, err: Optional[BaseException]) -> Response:
    """Log the error and build a JSON error response."""
    if err is not None:
        logger.error("%s", err)
    if code > 499:
        logger.error("Responding with 5XX error: %s", msg)
    return respond_with_json(code, {"error": msg})