"""Bearer token authentication.

Resolves the Authorization header to a user id. Token issuance belongs to
the identity provider in front of this service; here tokens are only
checked against a ``TokenVerifier``.
"""

import hmac
from abc import ABC, abstractmethod

from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from resumeai.api.errors import ApiError, ErrorCode

bearer_scheme = HTTPBearer(auto_error=False)


class TokenVerifier(ABC):

    @abstractmethod
    async def verify(self, token: str) -> str | None:
        """Return the user id for ``token``, or None when it is not valid."""
        ...


class StaticTokenVerifier(TokenVerifier):
    """Checks tokens against configured "token:user" pairs."""

    def __init__(self, tokens: dict[str, str]):
        self._tokens = dict(tokens)

    async def verify(self, token: str) -> str | None:
        # Compare against every entry so timing does not reveal a prefix match
        match = None
        for valid_token, user_id in self._tokens.items():
            if hmac.compare_digest(token.encode(), valid_token.encode()):
                match = user_id
        return match


async def authenticate(
    credentials: HTTPAuthorizationCredentials | None, verifier: TokenVerifier
) -> str:
    """Return the caller's user id.

    Raises:
        ApiError: 401 AUTH_MISSING_TOKEN or AUTH_INVALID_TOKEN.
    """
    if credentials is None or not credentials.credentials:
        raise ApiError(401, ErrorCode.AUTH_MISSING_TOKEN, "Missing authentication token")

    user_id = await verifier.verify(credentials.credentials)
    if user_id is None:
        raise ApiError(401, ErrorCode.AUTH_INVALID_TOKEN, "Invalid authentication token")
    return user_id
