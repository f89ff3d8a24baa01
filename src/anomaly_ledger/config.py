"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from anomaly_ledger.models.config import ClockSource, EngineDefaults, RoleConfig, ServiceConfig


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "ANOMALY_LEDGER_",
) -> ServiceConfig:
    """Load service configuration from TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (ANOMALY_LEDGER_SECRET, etc.)
        2. TOML config file
        3. Defaults from ServiceConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = ServiceConfig()

    # ── Service section ────────────────────────────────────
    service = raw.get("service", {})
    if v := service.get("log_level"):
        cfg.log_level = str(v)
    if v := service.get("clock"):
        cfg.clock = ClockSource(v)

    # ── Stellar section ────────────────────────────────────
    stellar = raw.get("stellar", {})
    if v := stellar.get("network"):
        cfg.network = str(v)
    if v := stellar.get("horizon_url"):
        cfg.horizon_url = str(v)
    if v := stellar.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := stellar.get("network_passphrase"):
        cfg.network_passphrase = str(v)
    if v := stellar.get("base_fee"):
        cfg.base_fee = int(v)
    if v := stellar.get("signer_secrets"):
        cfg.signer_secrets = [str(s) for s in v]

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Engine section (seeds the parameter register) ──────
    engine_raw = raw.get("engine", {})
    defaults = EngineDefaults()
    cfg.engine = EngineDefaults(
        **{
            name: int(engine_raw.get(name, getattr(defaults, name)))
            for name in defaults.__dataclass_fields__
        }
    )

    # ── Roles section ──────────────────────────────────────
    roles_raw = raw.get("roles", {})
    cfg.roles = RoleConfig(
        oracles=list(roles_raw.get("oracles", [])),
        authorities=list(roles_raw.get("authorities", [])),
        authority_account=roles_raw.get("authority_account", ""),
        oracle_principal=roles_raw.get("oracle_principal", ""),
        escrow_account=roles_raw.get("escrow_account", ""),
    )

    # ── Environment variable overrides (highest priority) ──
    if secret := os.environ.get(f"{env_prefix}SECRET"):
        cfg.signer_secrets = [s.strip() for s in secret.split(",") if s.strip()]
    if net := os.environ.get(f"{env_prefix}NETWORK"):
        cfg.network = net
    if horizon := os.environ.get(f"{env_prefix}HORIZON_URL"):
        cfg.horizon_url = horizon
    if rpc := os.environ.get(f"{env_prefix}RPC_URL"):
        cfg.rpc_url = rpc
    if db := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db
    if clock := os.environ.get(f"{env_prefix}CLOCK"):
        cfg.clock = ClockSource(clock)

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg
