"""Deterministic identifier generation.

Identifiers follow the target's UID format: a letter followed by
letters and digits. A generator owns its own seeded random stream, so
the same seed always yields the same sequence.
"""

import random
import re
import string
from typing import List, Set

LETTERS = string.ascii_letters
ALPHANUMERIC = string.ascii_letters + string.digits
UID_LENGTH = 11


class UidGenerator:
    """Seeded source of identifiers.

    Draw all identifiers of a run from one instance, in a fixed order,
    to keep runs reproducible.
    """

    def __init__(self, seed: int, length: int = UID_LENGTH) -> None:
        if length < 1:
            raise ValueError(f"Identifier length must be at least 1, got {length}")
        self.seed = seed
        self.length = length
        self._random = random.Random(seed)
        self._issued: Set[str] = set()

    def _draw(self) -> str:
        first = self._random.choice(LETTERS)
        rest = "".join(
            self._random.choice(ALPHANUMERIC) for _ in range(self.length - 1)
        )
        return first + rest

    def next_uid(self) -> str:
        """Return the next identifier in the stream."""
        uid = self._draw()
        self._issued.add(uid)
        return uid

    def generate(self, count: int) -> List[str]:
        """Return the next ``count`` identifiers."""
        if count < 0:
            raise ValueError(f"Count must not be negative, got {count}")
        return [self.next_uid() for _ in range(count)]

    def generate_unique(self, count: int) -> List[str]:
        """Return ``count`` identifiers never issued before by this generator."""
        if count < 0:
            raise ValueError(f"Count must not be negative, got {count}")
        uids: List[str] = []
        while len(uids) < count:
            uid = self._draw()
            if uid in self._issued:
                continue
            self._issued.add(uid)
            uids.append(uid)
        return uids


def generate(count: int, seed: int, length: int = UID_LENGTH) -> List[str]:
    """Generate ``count`` identifiers from a fresh generator seeded with ``seed``."""
    return UidGenerator(seed, length=length).generate(count)


def is_valid_uid(value: str, length: int = UID_LENGTH) -> bool:
    """Check that ``value`` is a syntactically valid identifier."""
    if not isinstance(value, str):
        return False
    pattern = rf"[A-Za-z][A-Za-z0-9]{{{length - 1}}}"
    return re.fullmatch(pattern, value) is not None
