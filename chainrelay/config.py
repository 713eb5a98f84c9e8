"""
ChainRelay — Configuration System

All configuration is Pydantic-validated and loaded from:
1. default.yaml (defaults)
2. Environment variables (overrides)

Every tunable parameter of the relayer lives here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class ChainConfig(BaseModel):
    name: str
    chain_id: int
    contract_address: str = ""
    rpc_url: str = ""


class ProverConfig(BaseModel):
    url: str = "https://proof.testnet.polymer.zone"
    api_key: str = ""
    timeout_s: float = 30.0
    # Proof polling: wait initial_delay_s, then poll every poll_interval_s
    initial_delay_s: float = 10.0
    poll_interval_s: float = 5.0
    max_attempts: int = 10

    @model_validator(mode="after")
    def _strip_api_key(self) -> ProverConfig:
        # Secret managers can inject trailing whitespace into env vars
        if self.api_key:
            object.__setattr__(self, "api_key", self.api_key.strip())
        return self


class RelayerConfig(BaseModel):
    # How often each watcher asks its endpoint for new logs
    poll_interval_s: float = 2.0
    # Relay attempts in flight per direction
    max_concurrent_relays: int = 4
    # First block to scan; None starts at the current head
    start_block: int | None = None
    # Size of the recent-outcome ring buffer
    recent_outcomes: int = 100


class BusConfig(BaseModel):
    callback_timeout_s: float = 1.0
    recent_buffer_size: int = 100


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class ChainRelayConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHAINRELAY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    instance_id: str = "relayer-default"

    # Names of the two linked chains, keys into `chains`
    chain_a: str = ""
    chain_b: str = ""
    chains: dict[str, ChainConfig] = Field(default_factory=dict)

    prover: ProverConfig = Field(default_factory=ProverConfig)
    relayer: RelayerConfig = Field(default_factory=RelayerConfig)
    bus: BusConfig = Field(default_factory=BusConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def link(self) -> tuple[ChainConfig, ChainConfig]:
        """Resolve the configured chain pair. Raises ValueError if either is unknown."""
        if not self.chain_a or not self.chain_b:
            raise ValueError("Chains not set. Set CHAINRELAY_CHAIN_A and CHAINRELAY_CHAIN_B")
        missing = [name for name in (self.chain_a, self.chain_b) if name not in self.chains]
        if missing:
            raise ValueError(
                f"Unknown chain(s) {missing}. Configured: {sorted(self.chains)}"
            )
        if self.chain_a == self.chain_b:
            raise ValueError(f"Cannot link chain {self.chain_a!r} to itself")
        return self.chains[self.chain_a], self.chains[self.chain_b]


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | Path | None = None) -> ChainRelayConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    # Inject secrets and chain selection from environment
    import os

    overrides: dict[str, Any] = {}
    if api_key := os.environ.get("CHAINRELAY_PROVER_API_KEY"):
        overrides.setdefault("prover", {})["api_key"] = api_key
    if prover_url := os.environ.get("CHAINRELAY_PROVER__URL"):
        overrides.setdefault("prover", {})["url"] = prover_url
    if chain_a := os.environ.get("CHAINRELAY_CHAIN_A"):
        overrides["chain_a"] = chain_a
    if chain_b := os.environ.get("CHAINRELAY_CHAIN_B"):
        overrides["chain_b"] = chain_b
    if instance_id := os.environ.get("CHAINRELAY_INSTANCE_ID"):
        overrides["instance_id"] = instance_id
    if log_level := os.environ.get("CHAINRELAY_LOGGING__LEVEL"):
        overrides.setdefault("logging", {})["level"] = log_level

    return ChainRelayConfig(**_deep_merge(raw, overrides))
