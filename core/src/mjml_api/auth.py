from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Final

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader, APIKeyQuery, HTTPBasic, HTTPBasicCredentials

from mjml_api.config import AuthConfig, AuthMode

TOKEN_HEADER: Final[str] = "X-Authentication-Token"
TOKEN_QUERY_PARAM: Final[str] = "token"

logger = logging.getLogger(__name__)

# Clients that put ``user:pass@`` in the URL send a regular Basic header.
_basic_scheme = HTTPBasic(auto_error=False)
_token_header_scheme = APIKeyHeader(name=TOKEN_HEADER, auto_error=False)
_token_query_scheme = APIKeyQuery(name=TOKEN_QUERY_PARAM, auto_error=False)


def safe_compare(value: str, secret: str | None) -> bool:
    """Compare a user-supplied string against a secret in constant time.

    The comparison does not exit early on the first differing byte. Operands of
    different byte length never match.
    """

    if secret is None:
        return False
    return secrets.compare_digest(value.encode("utf-8"), secret.encode("utf-8"))


@dataclass(frozen=True)
class Admit:
    pass


@dataclass(frozen=True)
class Reject:
    reason: str


AuthDecision = Admit | Reject


def pick_token(query_token: str | None, header_token: str | None) -> str | None:
    # Query parameter first, then header; empty values count as absent.
    return query_token or header_token or None


class AuthGate:
    """Per-request admission decision for the configured authentication mode."""

    def __init__(self, config: AuthConfig) -> None:
        self._config = config

    @property
    def config(self) -> AuthConfig:
        return self._config

    @property
    def mode(self) -> AuthMode:
        return self._config.mode if self._config.enabled else AuthMode.NONE

    def decide(
        self,
        *,
        basic: HTTPBasicCredentials | None = None,
        token: str | None = None,
    ) -> AuthDecision:
        match self.mode:
            case AuthMode.NONE:
                return Admit()
            case AuthMode.BASIC:
                return self._decide_basic(basic)
            case AuthMode.TOKEN:
                return self._decide_token(token)
            case _:
                raise ValueError(f"Unsupported authentication mode: {self.mode!r}")

    def _decide_basic(self, credentials: HTTPBasicCredentials | None) -> AuthDecision:
        expected = self._config.basic
        if expected.username is None or expected.password is None:
            return Reject("basic credentials not configured")
        if credentials is None:
            return Reject("missing credentials")

        # Evaluate both comparisons so timing does not reveal which factor failed.
        user_ok = safe_compare(credentials.username, expected.username)
        pass_ok = safe_compare(credentials.password, expected.password)
        if user_ok and pass_ok:
            return Admit()
        return Reject("invalid credentials")

    def _decide_token(self, token: str | None) -> AuthDecision:
        secret = self._config.token.secret
        if secret is None:
            return Reject("token secret not configured")
        if token is None:
            return Reject("missing token")
        if not safe_compare(token, secret):
            return Reject("invalid token")
        return Admit()


class AuthRejected(HTTPException):
    """401 with an empty body; the reason is only logged."""

    def __init__(self, reason: str) -> None:
        super().__init__(status_code=401)
        self.reason = reason


async def basic_credentials(request: Request) -> HTTPBasicCredentials | None:
    """Parse Basic credentials only when the gate asks for them.

    ``HTTPBasic`` answers a malformed header with 401 even with
    ``auto_error=False``, which must not affect the other modes.
    """

    gate: AuthGate = request.app.state.auth_gate
    if gate.mode is not AuthMode.BASIC:
        return None
    return await _basic_scheme(request)


async def require_authentication(
    request: Request,
    basic: HTTPBasicCredentials | None = Security(basic_credentials),  # noqa: B008
    query_token: str | None = Security(_token_query_scheme),  # noqa: B008
    header_token: str | None = Security(_token_header_scheme),  # noqa: B008
) -> None:
    """FastAPI dependency guarding the render route."""

    gate: AuthGate = request.app.state.auth_gate
    decision = gate.decide(basic=basic, token=pick_token(query_token, header_token))

    match decision:
        case Admit():
            return None
        case Reject(reason=reason):
            logger.info(f"Rejected {request.method} {request.url.path}: {reason}")
            raise AuthRejected(reason)
