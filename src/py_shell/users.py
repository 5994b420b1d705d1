"""Actors — who is issuing commands, and how far they are trusted.

Every command carries an **actor**: a display name plus a rank.  The
dispatcher never asks "who is this?" beyond that; it only compares
ranks.  Verifying that someone *is* who they claim is the job of the
credential check on ``ActorManager``.

**Actor** — an immutable identity (name + rank).

**ActorManager** — a registry of actors with salted password hashes.
    It always contains the built-in ``system`` actor at SUPER_USER,
    which the shell uses for its own housekeeping commands, and an
    ``anonymous`` actor whose rank is the shell's default user rank.

Why PBKDF2 instead of storing passwords?
    Even a toy credential store should never hold plaintext.  PBKDF2
    with a per-actor salt is in the standard library and good enough
    for an embedded shell; the comparison uses ``hmac.compare_digest``
    so timing does not leak how many bytes matched.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass

from py_shell.ranks import DEFAULT_USER_RANK, RankLevel

SYSTEM_ACTOR_NAME = "system"
ANONYMOUS_ACTOR_NAME = "anonymous"

_HASH_ITERATIONS = 100_000


@dataclass(frozen=True)
class Actor:
    """An identity that can issue commands.

    Frozen so actors can be shared between the input and dispatch
    threads without copying, and used as dict keys.
    """

    name: str
    rank: RankLevel = DEFAULT_USER_RANK

    def __str__(self) -> str:
        """Return ``name (Rank Label)``."""
        return f"{self.name} ({self.rank.label})"


@dataclass(frozen=True)
class _Credential:
    salt: bytes
    digest: bytes


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, _HASH_ITERATIONS)


class ActorManager:
    """Registry of actors and their credentials."""

    def __init__(self, *, default_rank: RankLevel = DEFAULT_USER_RANK) -> None:
        """Create a manager holding only the system and anonymous actors.

        Args:
            default_rank: Rank given to the anonymous actor.

        """
        self._actors: dict[str, Actor] = {}
        self._credentials: dict[str, _Credential] = {}
        self._actors[SYSTEM_ACTOR_NAME] = Actor(SYSTEM_ACTOR_NAME, RankLevel.SUPER_USER)
        self._actors[ANONYMOUS_ACTOR_NAME] = Actor(ANONYMOUS_ACTOR_NAME, default_rank)

    @property
    def system(self) -> Actor:
        """Return the built-in system actor."""
        return self._actors[SYSTEM_ACTOR_NAME]

    @property
    def anonymous(self) -> Actor:
        """Return the actor used when nobody is logged on."""
        return self._actors[ANONYMOUS_ACTOR_NAME]

    def set_default_rank(self, rank: RankLevel) -> None:
        """Change the rank of the anonymous actor."""
        self._actors[ANONYMOUS_ACTOR_NAME] = Actor(ANONYMOUS_ACTOR_NAME, rank)

    def add_actor(self, name: str, rank: RankLevel, password: str) -> Actor:
        """Register a new actor with a password.

        Args:
            name: Display name (case-insensitive, must be unique).
            rank: The actor's access tier.
            password: Plaintext password; only a salted hash is kept.

        Returns:
            The new actor.

        Raises:
            ValueError: If the name is empty or already taken.

        """
        key = name.strip().lower()
        if not key:
            msg = "Actor name must not be empty"
            raise ValueError(msg)
        if key in self._actors:
            msg = f"Actor '{name}' already exists"
            raise ValueError(msg)
        salt = secrets.token_bytes(16)
        actor = Actor(name.strip(), rank)
        self._actors[key] = actor
        self._credentials[key] = _Credential(salt=salt, digest=_hash_password(password, salt))
        return actor

    def get_actor(self, name: str) -> Actor | None:
        """Look up an actor by name (case-insensitive)."""
        return self._actors.get(name.strip().lower())

    def list_actors(self) -> list[Actor]:
        """Return all registered actors sorted by name."""
        return sorted(self._actors.values(), key=lambda a: a.name.lower())

    def check_credentials(self, name: str, password: str) -> bool:
        """Return True if *password* is correct for the named actor.

        The built-in actors have no password and never authenticate.
        """
        credential = self._credentials.get(name.strip().lower())
        if credential is None:
            return False
        return hmac.compare_digest(credential.digest, _hash_password(password, credential.salt))

    def authenticate(self, name: str, password: str) -> Actor | None:
        """Return the actor if the credentials are valid, else None."""
        if not self.check_credentials(name, password):
            return None
        return self.get_actor(name)
