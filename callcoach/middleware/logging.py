"""Structured logging middleware for FastAPI requests."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional

from cryptography.fernet import Fernet
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from callcoach.config.settings import settings
from callcoach.utils import AuthenticationError, decode_access_token

logger = logging.getLogger("callcoach.middleware.structured")

COLOR_RESET = "\u001b[0m"
COLOR_GREEN = "\u001b[32m"
COLOR_CYAN = "\u001b[36m"
COLOR_YELLOW = "\u001b[33m"
COLOR_RED = "\u001b[31m"


@dataclass(slots=True)
class CallerSession:
    """Caller identity attached to a request log line."""

    identifier: str
    user_id: str
    expires_at: Optional[datetime]


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one log line per HTTP request with caller, status and duration."""

    _cipher: ClassVar[Optional[Fernet]] = None

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start_time = time.perf_counter()
        log_payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": request.method,
            "url": str(request.url),
            "client_ip": request.client.host if request.client else None,
        }

        caller = self._resolve_caller(request)
        if caller is not None:
            log_payload["session"] = {
                "id": caller.identifier,
                "user_id": caller.user_id,
                "expires_at": caller.expires_at.isoformat(),
            }

        try:
            response = await call_next(request)
        except Exception as exc:
            log_payload["status_code"] = 500
            log_payload["duration_ms"] = self._elapsed_ms(start_time)
            log_payload["error"] = repr(exc)
            logger.exception(self._format_console_message(log_payload))
            raise

        log_payload["status_code"] = response.status_code
        log_payload["duration_ms"] = self._elapsed_ms(start_time)
        logger.info(self._format_console_message(log_payload))
        return response

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.perf_counter() - start_time) * 1000, 2)

    def _resolve_caller(self, request: Request) -> CallerSession | None:
        """Identify the caller from the bearer token, if one decodes."""

        token = self._extract_bearer_token(request)
        if not token:
            return None

        try:
            payload = decode_access_token(token)
        except AuthenticationError:
            logger.debug("Unreadable bearer token on %s", request.url.path)
            return None

        expires_at = payload.exp.astimezone(timezone.utc)
        issued = payload.iat.astimezone(timezone.utc) if payload.iat else None
        fingerprint_source = f"{payload.sub}:{int(issued.timestamp()) if issued else 0}"
        metadata = {
            "session": hashlib.sha256(fingerprint_source.encode("utf-8")).hexdigest(),
            "user_id": payload.sub,
            "expires_at": expires_at.isoformat(),
        }
        return CallerSession(
            identifier=self._encrypt_session_metadata(metadata),
            user_id=payload.sub,
            expires_at=expires_at,
        )

    @classmethod
    def _encrypt_session_metadata(cls, metadata: dict[str, Any]) -> str:
        """Encrypt session metadata into an opaque token."""

        cipher = cls._get_cipher()
        payload_bytes = json.dumps(metadata, default=str, separators=(",", ":")).encode(
            "utf-8"
        )
        return cipher.encrypt(payload_bytes).decode("utf-8")

    @classmethod
    def _get_cipher(cls) -> Fernet:
        """Return a cached Fernet cipher initialised from the JWT secret."""

        if cls._cipher is None:
            secret_bytes = (
                settings.security.jwt_secret_key.get_secret_value().encode("utf-8")
            )
            digest = hashlib.sha256(secret_bytes).digest()
            cls._cipher = Fernet(base64.urlsafe_b64encode(digest))
        return cls._cipher

    @staticmethod
    def _extract_bearer_token(request: Request) -> Optional[str]:
        auth_header = request.headers.get("authorization")
        if not auth_header:
            return None

        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        return token

    @staticmethod
    def _format_console_message(payload: dict[str, Any]) -> str:
        """Return request metadata wrapped with ANSI color codes."""

        status = payload.get("status_code") or 0
        if 200 <= status < 300:
            color = COLOR_GREEN
        elif 400 <= status < 500:
            color = COLOR_YELLOW
        elif status >= 500:
            color = COLOR_RED
        else:
            color = COLOR_CYAN

        session_info = payload.get("session")
        if not isinstance(session_info, dict):
            session_info = {}

        fields = [
            ("method", payload.get("method")),
            ("url", payload.get("url")),
            ("status", payload.get("status_code")),
            ("duration_ms", payload.get("duration_ms")),
            ("client_ip", payload.get("client_ip")),
            ("user_id", session_info.get("user_id")),
            ("session", session_info.get("id")),
            ("session_expires", session_info.get("expires_at")),
        ]
        message = ", ".join(
            f"{name}={value if value is not None else '-'}" for name, value in fields
        )
        return f"{color}{message}{COLOR_RESET}"
