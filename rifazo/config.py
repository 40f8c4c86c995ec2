from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_CLAIM_MAX_RETRIES = 5
DEFAULT_CLAIM_TIMEOUT_SECONDS = 10.0
DEFAULT_VERIFIER_TIMEOUT = 30


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable '{name}' must be an integer") from e


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable '{name}' must be a number") from e


@dataclass(frozen=True)
class Settings:
    """Runtime knobs of the core.

    ``claim_max_retries`` bounds the optimistic-concurrency loop of claims and
    confirmations; ``claim_timeout_seconds`` is the wall-clock budget of that
    loop.
    """

    claim_max_retries: int = DEFAULT_CLAIM_MAX_RETRIES
    claim_timeout_seconds: float = DEFAULT_CLAIM_TIMEOUT_SECONDS
    verifier_url: Optional[str] = None
    verifier_token: Optional[str] = None
    verifier_timeout: int = DEFAULT_VERIFIER_TIMEOUT

    def __post_init__(self) -> None:
        if self.claim_max_retries < 1:
            raise ValueError("claim_max_retries must be at least 1")
        if self.claim_timeout_seconds <= 0:
            raise ValueError("claim_timeout_seconds must be positive")
        if self.verifier_timeout <= 0:
            raise ValueError("verifier_timeout must be positive")

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            claim_max_retries=_int_env(
                "RIFAZO_CLAIM_MAX_RETRIES", DEFAULT_CLAIM_MAX_RETRIES
            ),
            claim_timeout_seconds=_float_env(
                "RIFAZO_CLAIM_TIMEOUT_SECONDS", DEFAULT_CLAIM_TIMEOUT_SECONDS
            ),
            verifier_url=os.getenv("RIFAZO_VERIFIER_URL") or None,
            verifier_token=os.getenv("RIFAZO_VERIFIER_TOKEN") or None,
            verifier_timeout=_int_env(
                "RIFAZO_VERIFIER_TIMEOUT", DEFAULT_VERIFIER_TIMEOUT
            ),
        )
