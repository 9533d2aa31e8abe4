from __future__ import annotations

import logging
from typing import Optional

from .credentials import CredentialStore
from .errors import AuthError, AuthFailure
from .models import UserEntity
from .security import TokenService

logger = logging.getLogger(__name__)


def extract_bearer_token(header_value: Optional[str]) -> str:
    """
    Return the token from an Authorization header value.

    The token is the last whitespace-separated segment, so both
    ``"Bearer <token>"`` and a bare ``"<token>"`` are accepted.

    Raises:
        AuthError(MISSING_TOKEN) if the header is absent or blank.
    """
    if header_value is None or not header_value.strip():
        raise AuthError(AuthFailure.MISSING_TOKEN)
    return header_value.split()[-1]


# PUBLIC_INTERFACE
class RequestAuthenticator:
    """
    Resolves the Authorization header of a request into the authenticated user.

    Nothing is cached between requests and no stored state is modified: the
    token is verified and the user looked up again on every call.
    """

    def __init__(self, tokens: TokenService, credentials: CredentialStore) -> None:
        self._tokens = tokens
        self._credentials = credentials

    # PUBLIC_INTERFACE
    def authenticate(self, header_value: Optional[str]) -> UserEntity:
        """
        Return the user identified by the bearer token in ``header_value``.

        Raises:
            AuthError with reason MISSING_TOKEN, MALFORMED, EXPIRED or UNKNOWN_USER.
        """
        try:
            token = extract_bearer_token(header_value)
            user_id = self._tokens.verify(token)
            user = self._credentials.find_by_id(user_id)
            if user is None:
                raise AuthError(AuthFailure.UNKNOWN_USER)
        except AuthError as e:
            logger.info("Rejected request: %s", e.reason.value)
            raise
        return user
