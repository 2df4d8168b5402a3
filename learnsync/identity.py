"""
Identity signal consumed by the engine.

Authentication itself happens elsewhere; the engine only needs to know
who the current learner is and whether they are a guest.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

GUEST_ID = "guest"


@dataclass(frozen=True)
class Identity:
    id: str
    is_guest: bool = False

    @classmethod
    def guest(cls) -> Identity:
        return cls(id=GUEST_ID, is_guest=True)

    @property
    def is_authenticated(self) -> bool:
        return not self.is_guest


class IdentityResolver(Protocol):
    """Resolves the current identity, or None when nobody is signed in."""

    async def resolve(self) -> Identity | None: ...


class StaticIdentityResolver:
    """Resolver for a fixed identity (CLI, tests, background jobs)."""

    def __init__(self, identity: Identity | None):
        self.identity = identity

    @classmethod
    def from_settings(cls, user_id: str | None, guest_mode: bool = False) -> StaticIdentityResolver:
        """Guest unless a user id is configured and guest mode is off."""
        if guest_mode or not user_id:
            return cls(Identity.guest())
        return cls(Identity(id=user_id))

    async def resolve(self) -> Identity | None:
        return self.identity
