import logging
import time

import jwt
from pydantic import ValidationError

from pep_portal.client.errors import CacheError, NotAuthenticatedError
from pep_portal.client.storage import LocalStorage
from pep_portal.schemas.auth import TokenClaims

logger = logging.getLogger(__name__)

TOKEN_KEY = "pep_token"


def read_claims(token: str) -> TokenClaims:
    """
    Decode without verifying the signature. The server verifies on every
    call; the client only needs the identity it carries.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
        return TokenClaims.model_validate(payload)
    except (jwt.InvalidTokenError, ValidationError) as exc:
        raise NotAuthenticatedError(f"Invalid token: {exc}") from exc


def _expired(claims: TokenClaims) -> bool:
    return claims.exp is not None and claims.exp <= time.time()


class IdentityProvider:
    """Holds the bearer credential and the identity decoded from it."""

    def __init__(self, storage: LocalStorage | None = None) -> None:
        self.storage = storage
        self._token: str | None = None
        self._claims: TokenClaims | None = None

    def acquire(self, token: str) -> TokenClaims:
        claims = read_claims(token)
        if _expired(claims):
            raise NotAuthenticatedError("Token has expired")
        self._token, self._claims = token, claims
        if self.storage is not None:
            try:
                self.storage.set(TOKEN_KEY, token)
            except CacheError as exc:
                logger.warning("Could not persist token: %s", exc)
        return claims

    def current(self) -> TokenClaims | None:
        if self._token is None and self.storage is not None:
            self._restore()
        if self._claims is not None and _expired(self._claims):
            logger.info("Held token for %s expired", self._claims.employee_id)
            self.clear()
        return self._claims

    @property
    def token(self) -> str | None:
        return self._token if self.current() is not None else None

    def clear(self) -> None:
        self._token = None
        self._claims = None
        if self.storage is not None:
            try:
                self.storage.remove(TOKEN_KEY)
            except CacheError as exc:
                logger.warning("Could not remove stored token: %s", exc)

    def _restore(self) -> None:
        try:
            token = self.storage.get(TOKEN_KEY)
        except CacheError as exc:
            logger.warning("Could not read stored token: %s", exc)
            return
        if not isinstance(token, str):
            return
        try:
            self._claims = read_claims(token)
            self._token = token
        except NotAuthenticatedError as exc:
            logger.warning("Discarding stored token: %s", exc)
