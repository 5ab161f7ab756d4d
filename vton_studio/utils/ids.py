"""Identifier generators.

An id factory is any callable taking a provenance prefix and returning a
string that is unique for the lifetime of the session.
"""

import itertools
import uuid
from typing import Callable

IdFactory = Callable[[str], str]


def uuid_ids() -> IdFactory:
    """Random ids, e.g. ``upload-person-1f3a9c2e7b10``."""
    def make(prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:12]}"
    return make


def counter_ids(start: int = 1) -> IdFactory:
    """Deterministic ids from a single monotonic counter shared by all prefixes."""
    counter = itertools.count(start)

    def make(prefix: str) -> str:
        return f"{prefix}-{next(counter)}"
    return make
