"""Public key and allowed signers entry models."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict


class Key(BaseModel):
    """An SSH public key as published by a source."""

    model_config = ConfigDict(frozen=True)

    algorithm: str
    material: str
    expires_at: Optional[datetime] = None

    @classmethod
    def parse(cls, line: str, expires_at: Optional[datetime] = None) -> "Key":
        """Parse an OpenSSH public key line ``algorithm material [comment]``.

        The comment is dropped. Raises ``ValueError`` if the line is not a key.
        """
        parts = line.split()
        if len(parts) < 2:
            raise ValueError(f"not an SSH public key: {line!r}")
        algorithm, material = parts[0], parts[1]
        try:
            base64.b64decode(material, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"key material is not valid base64: {exc}") from exc
        return cls(algorithm=algorithm, material=material, expires_at=expires_at)

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.algorithm, self.material)

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def __str__(self) -> str:
        return f"{self.algorithm} {self.material}"


class ResolvedEntry(BaseModel):
    """A single ``(principal, key)`` line of the allowed signers file.

    Two entries are equal when principal, algorithm and key material match;
    expiry and the producing source are ignored.
    """

    model_config = ConfigDict(frozen=True)

    principal: str
    key: Key

    @property
    def sort_key(self) -> Tuple[str, str, str]:
        return (self.principal, self.key.algorithm, self.key.material)

    def to_line(self) -> str:
        return f"{self.principal} {self.key}"

    @classmethod
    def parse(cls, line: str) -> "ResolvedEntry":
        """Parse a rendered ``principal algorithm material`` line."""
        principal, _, rest = line.strip().partition(" ")
        if not principal or not rest:
            raise ValueError(f"not an allowed signers entry: {line!r}")
        return cls(principal=principal, key=Key.parse(rest))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResolvedEntry):
            return NotImplemented
        return self.sort_key == other.sort_key

    def __hash__(self) -> int:
        return hash(self.sort_key)

    def __lt__(self, other: "ResolvedEntry") -> bool:
        return self.sort_key < other.sort_key
