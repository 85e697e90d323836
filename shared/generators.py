"""
Tracking identifier generation.

Identifiers are ``<prefix><32 hex chars>``: 128 bits drawn from an
:class:`EntropySource`. They are not sequential and contain no timestamp, so
an identifier reveals nothing about send volume or send time.

The entropy source is a strategy. ``SystemEntropySource`` (the OS CSPRNG via
``secrets``) is the normal path. ``FallbackEntropySource`` exists for hosts
where the OS source is unavailable; it is *not* equivalent security and every
use of it is logged as degraded.
"""

from __future__ import annotations

import hashlib
import itertools
import os
import random
import secrets
import time
from typing import Optional, Protocol, runtime_checkable

from shared.logging import get_logger

log = get_logger(__name__)

IDENTIFIER_BYTES = 16  # 128 bits


@runtime_checkable
class EntropySource(Protocol):
    name: str
    degraded: bool

    def token_bytes(self, nbytes: int) -> bytes: ...


class SystemEntropySource:
    """OS CSPRNG. Thread-safe; concurrent callers are not serialised."""

    name = "system"
    degraded = False

    def token_bytes(self, nbytes: int) -> bytes:
        return secrets.token_bytes(nbytes)


class FallbackEntropySource:
    """High-resolution clocks + process counter + PRNG, hashed with SHA-256.

    Unique in practice for a single process, but predictable to an attacker
    who can observe timing. Only used when the system source fails.
    """

    name = "timestamp_prng"
    degraded = True

    def __init__(self, seed: Optional[int] = None) -> None:
        self._random = random.Random(seed)
        self._counter = itertools.count()

    def token_bytes(self, nbytes: int) -> bytes:
        out = b""
        while len(out) < nbytes:
            material = "|".join(
                str(part)
                for part in (
                    time.time_ns(),
                    time.perf_counter_ns(),
                    os.getpid(),
                    next(self._counter),
                    self._random.getrandbits(64),
                )
            )
            out += hashlib.sha256(material.encode()).digest()
        return out[:nbytes]


class IdentifierGenerator:
    """Issues unique, unguessable tracking identifiers.

    Args:
        source: Primary entropy source (default: :class:`SystemEntropySource`).
        fallback: Used when *source* raises ``NotImplementedError``/``OSError``
            (default: :class:`FallbackEntropySource`).
        prefix: Prepended to the hex token.
    """

    def __init__(
        self,
        source: Optional[EntropySource] = None,
        fallback: Optional[EntropySource] = None,
        prefix: str = "px_",
    ) -> None:
        self.source = source or SystemEntropySource()
        self.fallback = fallback or FallbackEntropySource()
        self.prefix = prefix

    def generate(self) -> str:
        return f"{self.prefix}{self._draw().hex()}"

    def _draw(self) -> bytes:
        try:
            raw = self.source.token_bytes(IDENTIFIER_BYTES)
        except (NotImplementedError, OSError) as e:
            log.warning(
                "entropy_source_degraded",
                source=self.source.name,
                fallback=self.fallback.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self.fallback.token_bytes(IDENTIFIER_BYTES)

        if self.source.degraded:
            log.warning("entropy_source_degraded", source=self.source.name)
        return raw
