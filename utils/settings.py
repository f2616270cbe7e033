"""Environment-driven configuration for the narrative engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} must be an integer") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class EngineSettings:
    """Runtime limits and collaborator endpoints.

    Attributes:
        default_story_model: Backend used when a game or preference names an unsupported one.
        max_panels: Assistant turns allowed per (session, game) pair.
        context_limit: Number of recent conversational turns sent to the generator.
        generation_timeout_seconds: Upper bound on a single streamed generation.
        payment_contract_address: Contract that verified payments must target.
        base_rpc_url: JSON-RPC endpoint used for transaction receipts.
    """

    default_story_model: str = "gpt-4o-mini"
    max_panels: int = 5
    context_limit: int = 20
    generation_timeout_seconds: int = 120
    payment_contract_address: Optional[str] = None
    base_rpc_url: str = "https://mainnet.base.org"

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from environment variables, falling back to defaults."""
        contract = (os.getenv("PAYMENT_CONTRACT_ADDRESS") or "").strip()
        return cls(
            default_story_model=os.getenv("DEFAULT_STORY_MODEL", cls.default_story_model),
            max_panels=_int_env("MAX_PANELS", cls.max_panels),
            context_limit=_int_env("CONTEXT_LIMIT", cls.context_limit),
            generation_timeout_seconds=_int_env("GENERATION_TIMEOUT_SECONDS", cls.generation_timeout_seconds),
            payment_contract_address=contract or None,
            base_rpc_url=os.getenv("BASE_RPC_URL", cls.base_rpc_url),
        )
