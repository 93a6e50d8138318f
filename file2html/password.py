from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .constants import (
    RANDOM_PASSWORD_ALPHABET,
    RANDOM_PASSWORD_LENGTH,
    TIMESTAMP_PASSWORD_FORMAT,
)
from .errors import ConfigError, PasswordEmpty


RANDOM = "random"
MANUAL = "manual"
TIMESTAMP = "timestamp"
NONE = "none"

PASSWORD_MODES = (RANDOM, MANUAL, TIMESTAMP, NONE)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class PasswordSpec:
    """How one layer obtains its password.

    ``value`` is only meaningful for manual specs.
    """

    mode: str
    value: str = ""

    def __post_init__(self):
        if self.mode not in PASSWORD_MODES:
            raise ConfigError(f"Unknown password mode: {self.mode}", operation="password")

    @classmethod
    def random(cls) -> "PasswordSpec":
        return cls(RANDOM)

    @classmethod
    def manual(cls, value: str) -> "PasswordSpec":
        return cls(MANUAL, value)

    @classmethod
    def timestamp(cls) -> "PasswordSpec":
        return cls(TIMESTAMP)

    @classmethod
    def none(cls) -> "PasswordSpec":
        return cls(NONE)

    @property
    def encrypts(self) -> bool:
        return self.mode != NONE

    @property
    def generated(self) -> bool:
        """True for values the user did not choose and may need to recover later."""
        return self.mode in (RANDOM, TIMESTAMP)

    def __repr__(self) -> str:
        # never leak manual values into logs or --show-config output
        return f"PasswordSpec(mode={self.mode!r})"


def random_password(rng: Optional[secrets.SystemRandom] = None, length: int = RANDOM_PASSWORD_LENGTH) -> str:
    """Draw ``length`` characters uniformly from [A-Za-z0-9] using a CSPRNG."""
    if rng is None:
        return "".join(secrets.choice(RANDOM_PASSWORD_ALPHABET) for _ in range(length))
    return "".join(rng.choice(RANDOM_PASSWORD_ALPHABET) for _ in range(length))


def timestamp_password(clock: Optional[Clock] = None) -> str:
    """Local wall clock formatted as yyyyMMddHHmmss (always 14 digits)."""
    now = (clock or datetime.now)()
    return now.strftime(TIMESTAMP_PASSWORD_FORMAT)


def generate_password(spec: PasswordSpec, clock: Optional[Clock] = None, rng=None, *, layer: Optional[int] = None) -> str:
    """Produce the password value for one layer.

    Returns an empty string for ``none`` specs, which tells the builder to skip
    encryption.

    Raises:
        PasswordEmpty: a manual spec with a blank value.
    """
    if spec.mode == RANDOM:
        return random_password(rng)
    if spec.mode == TIMESTAMP:
        return timestamp_password(clock)
    if spec.mode == MANUAL:
        if not spec.value or not spec.value.strip():
            raise PasswordEmpty("Manual password mode requires a non-empty password", layer=layer, operation="password")
        return spec.value
    return ""
