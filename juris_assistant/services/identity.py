"""Bearer-token authentication against the external auth backend.

The auth backend signs access tokens with a shared secret; a token is
accepted when its signature, expiry and audience verify and it names a
subject.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import jwt

from juris_assistant.core.errors import Unauthenticated

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class UserIdentity:
    """Caller resolved from a bearer token."""
    id: str
    email: Optional[str] = None


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the credential from an `Authorization: Bearer ...` header value."""
    if not authorization:
        raise Unauthenticated("Token de autenticação não fornecido.")
    if not authorization.lower().startswith(BEARER_PREFIX):
        raise Unauthenticated("Token de autenticação não fornecido.")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise Unauthenticated("Token de autenticação não fornecido.")
    return token


class IdentityProvider:
    """Resolves bearer credentials to user identities."""

    def __init__(
        self,
        secret: str,
        audience: Optional[str] = "authenticated",
        algorithms: Sequence[str] = ("HS256",),
    ):
        self.secret = secret
        self.audience = audience
        self.algorithms = list(algorithms)

    def resolve_user(self, credential: str) -> UserIdentity:
        """
        Verify a token and return the identity it names.

        Raises:
            Unauthenticated: If the token is invalid, expired or has no subject
        """
        try:
            claims = jwt.decode(
                credential,
                self.secret,
                algorithms=self.algorithms,
                audience=self.audience,
                options={"require": ["exp", "sub"], "verify_aud": self.audience is not None},
            )
        except jwt.PyJWTError as e:
            logger.info(f"Rejected bearer token: {e}")
            raise Unauthenticated()

        return UserIdentity(id=str(claims["sub"]), email=claims.get("email"))

    def authenticate(self, authorization: Optional[str]) -> UserIdentity:
        """Resolve the user behind an Authorization header value."""
        return self.resolve_user(extract_bearer_token(authorization))
