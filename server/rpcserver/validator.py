"""Transport-level request checks.

Runs before any JSON is parsed.  Each check returns a ``Rejection``
describing the HTTP answer, or ``None`` when the request may proceed.
"""

from __future__ import annotations

import base64
import binascii
import re
import secrets
from dataclasses import dataclass, field
from typing import Mapping

from starlette.responses import JSONResponse, Response

from rpcserver.config import ServerConfig

INVALID_ACCEPT_HEADER_MSG = "Accept header must include application/json"
INVALID_CONTENT_LENGTH_MSG = "Invalid Content-Length header"
INVALID_AUTHORIZATION_MSG = "Invalid Authorization header"

JSON_MEDIA_TYPE = "application/json"

_DIGITS_RE = re.compile(r"\d+", re.ASCII)


@dataclass(slots=True)
class Rejection:
    """An HTTP-level refusal: status code, optional message, extra headers."""

    status: int
    message: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def to_response(self) -> Response:
        if self.message:
            return JSONResponse(
                {"error": self.message}, status_code=self.status, headers=self.headers
            )
        return Response(status_code=self.status, headers=self.headers)


# ── Individual checks ────────────────────────────────────────────────


def _is_json_media_type(value: str) -> bool:
    return value == JSON_MEDIA_TYPE or value.startswith(JSON_MEDIA_TYPE + ";")


def content_type_ok(value: str | None) -> bool:
    return bool(value) and _is_json_media_type(value)


def accept_ok(value: str | None) -> bool:
    if not value:
        return False
    if value == JSON_MEDIA_TYPE:
        return True
    return any(_is_json_media_type(part.strip()) for part in value.split(","))


def parse_content_length(value: str | None) -> int | None:
    """Return the declared length, or ``None`` if absent or malformed."""
    if value is None:
        return None
    value = value.strip()
    if not _DIGITS_RE.fullmatch(value):
        return None
    return int(value)


def _challenge(config: ServerConfig) -> Rejection:
    return Rejection(401, headers={"WWW-Authenticate": f'Basic realm="{config.realm}"'})


def check_auth(headers: Mapping[str, str], config: ServerConfig) -> Rejection | None:
    """Verify ``Authorization: Basic`` credentials when auth is configured."""
    if not config.auth_enabled:
        return None

    header = headers.get("authorization")
    if not header:
        return _challenge(config)

    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "basic" or not token.strip():
        return Rejection(400, INVALID_AUTHORIZATION_MSG)
    try:
        decoded = base64.b64decode(token.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return Rejection(400, INVALID_AUTHORIZATION_MSG)

    username, sep, password = decoded.partition(":")
    if not sep:
        return Rejection(400, INVALID_AUTHORIZATION_MSG)

    # Evaluate both so a wrong username costs the same as a wrong password.
    user_ok = secrets.compare_digest(username.encode(), config.username.encode())
    pass_ok = secrets.compare_digest(password.encode(), config.password.encode())
    if not (user_ok and pass_ok):
        return _challenge(config)
    return None


# ── Entry points ─────────────────────────────────────────────────────


def check_request(
    method: str, target: str, headers: Mapping[str, str], config: ServerConfig
) -> Rejection | None:
    """Apply the header checks in order; the first failure wins.

    *headers* must be looked up by lowercase name (Starlette's ``Headers``
    is case-insensitive already).
    """
    rejection = check_auth(headers, config)
    if rejection is not None:
        return rejection
    if target != config.path:
        return Rejection(404)
    if method != "POST":
        return Rejection(405)
    if not content_type_ok(headers.get("content-type")):
        return Rejection(415)
    if not accept_ok(headers.get("accept")):
        return Rejection(400, INVALID_ACCEPT_HEADER_MSG)
    if parse_content_length(headers.get("content-length")) is None:
        return Rejection(400, INVALID_CONTENT_LENGTH_MSG)
    return None


def check_body_length(body: bytes, headers: Mapping[str, str]) -> Rejection | None:
    """The accumulated body must be exactly as long as declared."""
    if len(body) != parse_content_length(headers.get("content-length")):
        return Rejection(400, INVALID_CONTENT_LENGTH_MSG)
    return None
