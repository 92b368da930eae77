"""Identity lookup for the chat send path.

Authentication itself belongs to the external identity provider; this
module only answers "who is sending right now, if anyone".
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from flask import has_request_context, request


USER_ID_HEADER = "X-User-Id"


@dataclass(frozen=True)
class Identity:
    """Authenticated user, identified by the provider's subject id."""
    subject: str


class IdentityProvider(ABC):

    @abstractmethod
    def current(self) -> Optional[Identity]:
        """Return the active identity, or None when signed out."""
        pass


class StaticIdentityProvider(IdentityProvider):
    """Single signed-in session, switched by sign_in/sign_out."""

    def __init__(self, subject: Optional[str] = None):
        self._identity = Identity(subject) if subject else None

    def sign_in(self, subject: str) -> Identity:
        self._identity = Identity(subject)
        return self._identity

    def sign_out(self) -> None:
        self._identity = None

    def current(self) -> Optional[Identity]:
        return self._identity


class RequestHeaderIdentityProvider(IdentityProvider):
    """Reads the subject the auth gateway put in the X-User-Id header."""

    def __init__(self, header: str = USER_ID_HEADER):
        self.header = header

    def current(self) -> Optional[Identity]:
        if not has_request_context():
            return None
        subject = request.headers.get(self.header, "").strip()
        return Identity(subject) if subject else None
