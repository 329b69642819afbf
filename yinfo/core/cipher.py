"""
Cipher programs: the decoded signature transform of one player script.

A program is an ordered list of three primitives applied to the
characters of a ciphered signature:

- REVERSE: reverse the whole sequence.
- SPLICE(start, count): remove ``count`` characters at ``start``.
- SWAP(first, second): swap the characters at ``first % len`` and
  ``second % len``.

Applying a program is a pure string transform and never touches the
interpreter. A program only applies to signatures issued alongside the
player script it was extracted from.
"""

import re
import time
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from ..errors import VersionMismatchError

_PLAYER_VERSION_RE = re.compile(r"/s/player/([\w-]+)/")


class CipherOpKind(str, Enum):
    REVERSE = "reverse"
    SPLICE = "splice"
    SWAP = "swap"


class CipherOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: CipherOpKind
    first: int = 0
    second: int = 0

    @classmethod
    def reverse(cls) -> "CipherOperation":
        return cls(kind=CipherOpKind.REVERSE)

    @classmethod
    def splice(cls, start: int, count: int) -> "CipherOperation":
        return cls(kind=CipherOpKind.SPLICE, first=start, second=count)

    @classmethod
    def swap(cls, first: int, second: int) -> "CipherOperation":
        return cls(kind=CipherOpKind.SWAP, first=first, second=second)

    def apply_to(self, chars: list[str]) -> None:
        """Apply this operation to ``chars`` in place."""
        if self.kind == CipherOpKind.REVERSE:
            chars.reverse()
        elif self.kind == CipherOpKind.SPLICE:
            del chars[self.first : self.first + self.second]
        elif chars:
            i = self.first % len(chars)
            j = self.second % len(chars)
            chars[i], chars[j] = chars[j], chars[i]

    def __str__(self):
        if self.kind == CipherOpKind.REVERSE:
            return "REVERSE"
        return f"{self.kind.name}({self.first}, {self.second})"


class CipherProgram(BaseModel):
    """Decoded transform of one player version. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    player_version: str
    operations: tuple[CipherOperation, ...] = ()
    signature_timestamp: int | None = None
    # Source of the throttling-parameter transform, as an anonymous function
    n_function: str | None = None
    # Top-level declarations the n function reads, dependencies first
    n_globals: str | None = None
    built_at: float = Field(default_factory=time.time)

    def apply(self, signature: str, player_version: str | None) -> str:
        """Decipher ``signature``, which was issued for ``player_version``."""
        if player_version != self.player_version:
            raise VersionMismatchError(self.player_version, player_version)
        chars = list(signature)
        for op in self.operations:
            op.apply_to(chars)
        return "".join(chars)

    def describe(self) -> str:
        return " -> ".join(str(op) for op in self.operations) or "identity"


def player_version_from_url(player_url: str) -> str:
    """
    Derive the player version key from a player script URL.

    ``/s/player/3bb1f723/player_ias.vflset/en_US/base.js`` gives
    ``3bb1f723``. URLs without that segment fall back to their path.
    """
    match = _PLAYER_VERSION_RE.search(player_url)
    if match:
        return match.group(1)
    return urlparse(player_url).path or player_url
