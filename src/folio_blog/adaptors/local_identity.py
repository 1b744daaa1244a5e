"""
An identity provider that runs inside the process: anonymous identities are
random ids, and sessions are restored from Fernet tokens issued with the same
key.
"""
import logging
import uuid
from typing import Any, Callable, List

import pydantic
from cryptography.fernet import Fernet, InvalidToken

from folio_blog.errors import AuthFailure
from folio_blog.models import Identity


class LocalIdentityProvider:
    def __init__(self, key: bytes | str | None = None, *, token_ttl: int | None = None):
        self.fernet = Fernet(key or Fernet.generate_key())
        self.token_ttl = token_ttl
        self.current: Identity | None = None
        self._callbacks: List[Callable[[Identity], Any]] = []

    def issue_token(self, identity: Identity) -> str:
        """Returns a session token that `restore_session` will accept."""
        return self.fernet.encrypt(identity.model_dump_json().encode()).decode()

    async def restore_session(self, token: str) -> Identity:
        try:
            payload = self.fernet.decrypt(token, ttl=self.token_ttl)
        except InvalidToken as e:
            raise AuthFailure("Session token was rejected.") from e
        try:
            identity = Identity.model_validate_json(payload)
        except pydantic.ValidationError as e:
            raise AuthFailure("Session token does not describe an identity.") from e
        self._resolved(identity)
        return identity

    async def create_anonymous_identity(self) -> Identity:
        identity = Identity(uid=uuid.uuid4().hex, anonymous=True)
        self._resolved(identity)
        return identity

    def on_identity_change(self, callback: Callable[[Identity], Any]) -> None:
        self._callbacks.append(callback)

    def _resolved(self, identity: Identity):
        if identity == self.current:
            return
        self.current = identity
        logging.info(f"Signed in as {identity.uid}")
        for callback in list(self._callbacks):
            callback(identity)
