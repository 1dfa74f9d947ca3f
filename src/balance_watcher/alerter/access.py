"""Authorization policy for bot users and alert recipients."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

# Configuration value that opens the bot to everyone
PUBLIC_ACCESS_SENTINEL = "all"


def normalize_identity(identity: str) -> str:
    """Normalize a username for comparison (``@Alice`` -> ``alice``)."""
    return identity.strip().lstrip("@").lower()


class AccessMode(str, Enum):
    """Who may use the bot."""

    PRIVATE = "private"
    PUBLIC = "public"


@dataclass(frozen=True)
class AccessPolicy:
    """Authorization policy.

    PRIVATE allows only the listed identities; PUBLIC allows everyone,
    including users without a username.

    Attributes:
        mode: Access mode.
        allowed: Normalized identities allowed in PRIVATE mode.
    """

    mode: AccessMode
    allowed: frozenset[str] = frozenset()

    @classmethod
    def public(cls) -> AccessPolicy:
        """Policy that allows every identity."""
        return cls(mode=AccessMode.PUBLIC)

    @classmethod
    def private(cls, identities: Iterable[str]) -> AccessPolicy:
        """Policy that allows only the given identities."""
        return cls(
            mode=AccessMode.PRIVATE,
            allowed=frozenset(normalize_identity(i) for i in identities if i.strip()),
        )

    @classmethod
    def from_allowed_users(cls, users: Iterable[str]) -> AccessPolicy:
        """Build a policy from configured usernames.

        The ``"all"`` entry selects PUBLIC mode.
        """
        users = list(users)
        if any(normalize_identity(user) == PUBLIC_ACCESS_SENTINEL for user in users):
            return cls.public()
        return cls.private(users)

    @property
    def is_public(self) -> bool:
        """Return True in PUBLIC mode."""
        return self.mode is AccessMode.PUBLIC

    def allows(self, identity: str | None) -> bool:
        """Check whether an identity is authorized."""
        if self.is_public:
            return True
        if not identity:
            return False
        return normalize_identity(identity) in self.allowed
