"""Caller authentication for bridge endpoints.

Callers present the wallet provider's access token as a Bearer token. The
token is an ES256 JWT issued by ``privy.io`` for our app id; its ``sub``
claim is the user id every request body must match.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from xbridge_core.exceptions import XBridgeAuthenticationError, XBridgeAuthorizationError
from xbridge_core.logging_config import set_user_context

_logger = logging.getLogger("xbridge.api.authz")

ACCESS_TOKEN_ISSUER = "privy.io"
ACCESS_TOKEN_ALGORITHMS = ["ES256"]

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: str
    session_id: Optional[str] = None


class AccessTokenVerifier:
    def __init__(self, verification_key: str, app_id: str) -> None:
        self._verification_key = verification_key
        self._app_id = app_id

    def verify(self, token: str) -> Principal:
        if not self._verification_key:
            raise XBridgeAuthenticationError("Access token verification is not configured")
        try:
            claims = jwt.decode(
                token,
                self._verification_key,
                algorithms=ACCESS_TOKEN_ALGORITHMS,
                audience=self._app_id,
                issuer=ACCESS_TOKEN_ISSUER,
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise XBridgeAuthenticationError("Access token expired") from e
        except jwt.InvalidTokenError as e:
            _logger.info("Rejected access token: %s", e)
            raise XBridgeAuthenticationError("Invalid access token") from e
        return Principal(user_id=claims["sub"], session_id=claims.get("sid"))


def get_token_verifier() -> AccessTokenVerifier:
    raise NotImplementedError("must be overridden")


async def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    verifier: AccessTokenVerifier = Depends(get_token_verifier),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise XBridgeAuthenticationError("Missing access token")
    principal = verifier.verify(credentials.credentials)
    set_user_context(principal.user_id)
    return principal


def verify_user_match(principal: Principal, user_id: str) -> None:
    if principal.user_id != user_id:
        _logger.warning("User id mismatch for principal %s", principal.user_id)
        raise XBridgeAuthorizationError("User ID mismatch")
