"""
Ledger configuration.

Defaults suit tests and the demo; deployments override them through
CHARITY_* environment variables.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class LedgerConfig:
    min_donation: int = 1                  # Smallest accepted donation, in lamports
    escrow_seed: str = "charity-escrow"    # Seed for the escrow account address
    genesis_lamports: int = 1_000_000_000_000  # Demo funding per generated account
    log_level: str = "WARNING"

    def __post_init__(self):
        if self.min_donation < 1:
            raise ValueError("min_donation must be at least 1 lamport")
        if self.genesis_lamports < 0:
            raise ValueError("genesis_lamports cannot be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LedgerConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            min_donation=_int_setting(env, "CHARITY_MIN_DONATION", defaults.min_donation),
            escrow_seed=env.get("CHARITY_ESCROW_SEED", defaults.escrow_seed),
            genesis_lamports=_int_setting(env, "CHARITY_GENESIS_LAMPORTS", defaults.genesis_lamports),
            log_level=env.get("CHARITY_LOG_LEVEL", defaults.log_level).upper(),
        )


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.replace("_", ""))
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
