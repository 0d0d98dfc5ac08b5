"""Short code generation with bounded collision retries.

This module derives a fixed-length base-62 short code from an owner id, the
target URL and a high-resolution timestamp, checks it against the store and
falls back to a random nanoid code when the deterministic candidates keep
colliding.

Flow Diagram — generate()
=========================
::
    ┌──────────────────────────┐
    │ owner_id + url + clock() │
    └────────────┬─────────────┘
                 ▼
    ┌──────────────────────────┐
    │ MD5 → first 15 hex digits│
    │ → int → base-62 → pad/cut│
    └────────────┬─────────────┘
                 ▼
    ┌──────────────────────────┐     taken     ┌──────────────────────┐
    │ store.exists(code)?      ├──────────────►│ input + attempt idx  │
    └────────────┬─────────────┘               │ (up to 10 attempts)  │
           free  │                             └──────────┬───────────┘
                 ▼                                        │ exhausted
            return code                                   ▼
                                               ┌──────────────────────┐
                                               │ nanoid random code,  │
                                               │ re-checked           │
                                               └──────────────────────┘

How to Use
===========
**Step 1 — Construct with a store**::
    generator = CodeGenerator(store, settings)

**Step 2 — Generate**::
    code = await generator.generate("https://example.com", owner_id)

**Step 3 — Validate user supplied codes**::
    if not is_valid_short_code(code):
        ...

Key Behaviours
===============
- Codes are always exactly ``SHORT_CODE_LENGTH`` characters; short base-62
  encodings are left-padded with the alphabet's first symbol.
- Generation never raises; the fallback path degrades to random codes.
- Generation only reads the store. The caller reserves the code with
  ``store.insert``.

Functions:
    base62_encode():  Encode a non-negative int with the code alphabet.
    is_valid_short_code():  Alphabet membership check for request parsing.
"""

import hashlib
import logging
import time
import uuid
from collections.abc import Callable

from nanoid import generate as nanoid_generate
from prometheus_client import Counter

from shortener.config import Settings, get_settings
from shortener.storage import LinkStore

__all__ = ["ALPHABET", "CodeGenerator", "base62_encode", "is_valid_short_code"]

ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

CODE_COLLISIONS_TOTAL = Counter(
    "shortener_code_collisions_total",
    "Generated short code candidates that already existed",
)
CODE_FALLBACKS_TOTAL = Counter(
    "shortener_code_fallbacks_total",
    "Short codes produced by the random fallback after exhausting hash retries",
)


def base62_encode(value: int) -> str:
    if value < 0:
        raise ValueError("Number must be non-negative")
    if value == 0:
        return ALPHABET[0]

    base = len(ALPHABET)
    encoded_chars: list[str] = []
    while value > 0:
        value, remainder = divmod(value, base)
        encoded_chars.append(ALPHABET[remainder])
    encoded_chars.reverse()
    return "".join(encoded_chars)


def is_valid_short_code(code: str | None) -> bool:
    if not code:
        return False
    return all(char in ALPHABET for char in code)


class CodeGenerator:
    def __init__(
        self,
        store: LinkStore,
        settings: Settings | None = None,
        clock: Callable[[], int] = time.time_ns,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock
        self._logger = logger or logging.getLogger("shortener")

    @property
    def length(self) -> int:
        return self._settings.SHORT_CODE_LENGTH

    async def generate(self, url: str, owner_id: uuid.UUID) -> str:
        base_input = f"{owner_id}{url}{self._clock()}"
        candidate = self.derive(base_input)

        for attempt in range(self._settings.MAX_COLLISION_ATTEMPTS):
            if not await self._store.exists(candidate):
                return candidate
            CODE_COLLISIONS_TOTAL.inc()
            self._logger.debug(f"Short code collision on attempt {attempt}: {candidate}")
            candidate = self.derive(f"{base_input}{attempt}")

        return await self._fallback()

    def derive(self, unique_input: str) -> str:
        """Map an input string to a fixed-length code via MD5 and base-62."""
        digest = hashlib.md5(unique_input.encode("utf-8")).hexdigest()
        value = int(digest[: self._settings.HEX_TRUNCATION_LENGTH], 16)
        encoded = base62_encode(value)
        return encoded.rjust(self.length, ALPHABET[0])[: self.length]

    async def _fallback(self) -> str:
        CODE_FALLBACKS_TOTAL.inc()
        self._logger.warning(
            f"Hash-derived codes exhausted after {self._settings.MAX_COLLISION_ATTEMPTS} attempts, using random fallback"
        )
        candidate = nanoid_generate(ALPHABET, self.length)
        for _ in range(self._settings.MAX_COLLISION_ATTEMPTS):
            if not await self._store.exists(candidate):
                return candidate
            CODE_COLLISIONS_TOTAL.inc()
            candidate = nanoid_generate(ALPHABET, self.length)
        # Reservation in the store rejects a true duplicate.
        return candidate
