from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from backend.core.trove_core.constants import (
    DEFAULT_DENOM,
    DEFAULT_RPC_URL,
    FEES_PROGRAM_ID,
    ORACLE_PROGRAM_ID,
    PROTOCOL_PROGRAM_ID,
    SOL_PYTH_PRICE_FEED,
    WSOL_MINT,
)


class ConfigError(RuntimeError):
    pass


def _as_int(value: Optional[str], default: int) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"Expected an integer, got {value!r}") from exc


def _as_float(value: Optional[str], default: float) -> float:
    if value is None or str(value).strip() == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"Expected a number, got {value!r}") from exc


def _split_list(value: Union[str, list, tuple, None]) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    return tuple(str(v).strip() for v in value if str(v).strip())


@dataclass(frozen=True)
class TroveConfig:
    """Connection and deployment settings for the trove core."""

    rpc_url: str = DEFAULT_RPC_URL
    rpc_list: Tuple[str, ...] = ()
    commitment: str = "confirmed"

    # Programs (devnet defaults)
    program_id: str = str(PROTOCOL_PROGRAM_ID)
    oracle_program_id: str = str(ORACLE_PROGRAM_ID)
    fees_program_id: str = str(FEES_PROGRAM_ID)

    # Deployment state accounts; no defaults, set per deployment
    oracle_state: Optional[str] = None
    fees_state: Optional[str] = None
    stablecoin_mint: Optional[str] = None

    collateral_mint: str = str(WSOL_MINT)
    price_feed: str = str(SOL_PYTH_PRICE_FEED)
    denom: str = DEFAULT_DENOM

    # Snapshot fetch politeness
    fetch_batch_size: int = 10
    fetch_batch_delay: float = 0.2

    # 0 disables the compute-unit-limit instruction
    compute_unit_limit: int = 0

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "TroveConfig":
        """Read ``TROVE_*`` variables, loading ``.env`` (or ``env_file``) first."""
        load_dotenv(dotenv_path=env_file, override=False)
        base = cls()
        env = os.environ.get
        return cls(
            rpc_url=env("TROVE_RPC_URL", base.rpc_url).strip() or base.rpc_url,
            rpc_list=_split_list(env("TROVE_RPC_LIST", "")),
            commitment=env("TROVE_COMMITMENT", base.commitment),
            program_id=env("TROVE_PROGRAM_ID", base.program_id),
            oracle_program_id=env("TROVE_ORACLE_PROGRAM_ID", base.oracle_program_id),
            oracle_state=env("TROVE_ORACLE_STATE") or None,
            fees_program_id=env("TROVE_FEES_PROGRAM_ID", base.fees_program_id),
            fees_state=env("TROVE_FEES_STATE") or None,
            stablecoin_mint=env("TROVE_STABLECOIN_MINT") or None,
            collateral_mint=env("TROVE_COLLATERAL_MINT", base.collateral_mint),
            price_feed=env("TROVE_PRICE_FEED", base.price_feed),
            denom=env("TROVE_DENOM", base.denom),
            fetch_batch_size=_as_int(env("TROVE_FETCH_BATCH_SIZE"), base.fetch_batch_size),
            fetch_batch_delay=_as_float(env("TROVE_FETCH_BATCH_DELAY"), base.fetch_batch_delay),
            compute_unit_limit=_as_int(env("TROVE_COMPUTE_UNIT_LIMIT"), base.compute_unit_limit),
        )

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "TroveConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown trove config keys: {', '.join(unknown)}")
        values = dict(data)
        if "rpc_list" in values:
            values["rpc_list"] = _split_list(values["rpc_list"])
        base = cls()
        for name, cast in (
            ("fetch_batch_size", _as_int),
            ("fetch_batch_delay", _as_float),
            ("compute_unit_limit", _as_int),
        ):
            if name in values:
                values[name] = cast(values[name], getattr(base, name))
        return cls(**values)


def _resolve_env(val: Any) -> Any:
    """Resolve ENV:FOO placeholders recursively."""
    if isinstance(val, str) and val.startswith("ENV:"):
        env_key = val.split("ENV:", 1)[1].strip()
        v = os.environ.get(env_key)
        if v is None or v == "":
            raise ConfigError(f"Missing required environment variable: {env_key}")
        return v
    if isinstance(val, dict):
        return {k: _resolve_env(v) for k, v in val.items()}
    if isinstance(val, list):
        return [_resolve_env(v) for v in val]
    return val


def load_trove_config(path: Union[str, Path]) -> TroveConfig:
    """Load the 'trove' section of a YAML file into a :class:`TroveConfig`."""
    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    section = raw.get("trove") if isinstance(raw, dict) else None
    if not section:
        raise ConfigError("Missing 'trove' section in config.")
    return TroveConfig.from_mapping(_resolve_env(section))


def get_config() -> TroveConfig:
    """Return a ``TroveConfig`` with environment overrides applied."""

    return TroveConfig.from_env()


__all__ = ["ConfigError", "TroveConfig", "load_trove_config", "get_config"]
