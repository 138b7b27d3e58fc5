"""
Error taxonomy for the relay.

Every error that may reach the HTTP boundary derives from ``RelayError``
and knows its own status code and JSON envelope.  The exception handlers
in ``api.middleware`` turn them into responses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base for all errors surfaced to callers."""

    status_code: int = 500
    default_code: str = "error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[str] = None,
        requires_reauth: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details
        self.requires_reauth = requires_reauth

    def to_envelope(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.requires_reauth:
            body["requiresReauth"] = True
        if self.details:
            body["details"] = self.details
        return body


class ClientInputError(RelayError):
    """Malformed or missing request fields.  Not retried."""

    status_code = 400
    default_code = "invalid-input"


class RegistryError(RelayError):
    """Unknown block, or unknown operation within a known block."""

    status_code = 400
    default_code = "unknown-block"

    def __init__(self, message: str, *, kind: str = "unknown-block") -> None:
        super().__init__(message, code=kind)
        self.kind = kind


class AuthError(RelayError):
    """
    Token missing, invalid or expired-and-unrefreshable.

    ``requires_reauth`` separates "the end user must authorize again"
    from conditions the caller can fix by resending credentials.
    """

    status_code = 401
    default_code = "auth-error"

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        *,
        details: Optional[str] = None,
        requires_reauth: bool = False,
    ) -> None:
        super().__init__(
            message or code.replace("-", " ").capitalize(),
            code=code,
            details=details,
            requires_reauth=requires_reauth,
        )


class UpstreamError(RelayError):
    """The provider API failed for a non-auth reason (or was unreachable)."""

    status_code = 500
    default_code = "upstream-error"
