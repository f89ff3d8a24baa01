"""CLI smoke paths against a temporary database."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from anomaly_ledger.cli import cli
from tests.conftest import AUTHORITY, AUTHORITY_ACCOUNT, ORACLE, OUTSIDER

FAR_FUTURE = 9_999_999_999


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ("SECRET", "NETWORK", "HORIZON_URL", "RPC_URL", "DB_PATH", "CLOCK"):
        monkeypatch.delenv(f"ANOMALY_LEDGER_{name}", raising=False)
    path = tmp_path / "ledger.toml"
    path.write_text(
        f"""
[storage]
db_path = "{(tmp_path / 'ledger.db').as_posix()}"

[engine]
submission_fee = 0

[roles]
oracles = ["{ORACLE}"]
authorities = ["{AUTHORITY}"]
"""
    )
    return str(path)


def invoke(config_file: str, *args: str):
    return CliRunner().invoke(cli, ["-c", config_file, *args])


def test_status(config_file):
    result = invoke(config_file, "status")

    assert result.exit_code == 0
    assert "Network:     testnet" in result.output
    assert "Oracles:     1" in result.output


def test_init_and_params(config_file):
    assert invoke(config_file, "init").exit_code == 0

    result = invoke(config_file, "params")
    assert result.exit_code == 0
    assert "Anomaly threshold:   80" in result.output
    assert "Authority account:   (not set)" in result.output


def test_submit_flow(config_file):
    setup = invoke(config_file, "admin", "authority-account", AUTHORITY_ACCOUNT, "--as", AUTHORITY)
    assert setup.exit_code == 0, setup.output

    submitted = invoke(
        config_file, "submit", "--tx-id", "0xdead", "--score", "90", "--type", "exploit",
        "--expiry", str(FAR_FUTURE), "--as", ORACLE,
    )
    assert submitted.exit_code == 0, submitted.output
    assert "Flag 0 submitted for 0xdead" in submitted.output

    shown = invoke(config_file, "flag", "0")
    assert shown.exit_code == 0
    snapshot = json.loads(shown.output)
    assert snapshot["tx_id"] == "0xdead"
    assert snapshot["flagged"] is True
    assert snapshot["voting_open"] is True

    dashboard = json.loads(invoke(config_file, "dashboard").output)
    assert dashboard["flag_count"] == 1


def test_failed_operation_exits_nonzero(config_file):
    result = invoke(
        config_file, "submit", "--tx-id", "0xdead", "--score", "90", "--type", "exploit",
        "--expiry", str(FAR_FUTURE), "--as", OUTSIDER,
    )

    assert result.exit_code == 1
    assert "invalid_submitter" in result.output


def test_admin_set(config_file):
    result = invoke(config_file, "admin", "set", "anomaly_threshold", "90", "--as", AUTHORITY)

    assert result.exit_code == 0, result.output
    assert "anomaly_threshold = 90 (parameters v2)" in result.output


def test_admin_set_unknown_parameter(config_file):
    result = invoke(config_file, "admin", "set", "version", "3", "--as", AUTHORITY)
    assert result.exit_code != 0


def test_missing_flag(config_file):
    result = invoke(config_file, "flag", "7")
    assert result.exit_code == 1
    assert "flag_not_found" in result.output

    result = invoke(config_file, "proposal", "2")
    assert result.exit_code == 1
    assert "proposal_not_found" in result.output


def test_identity_required(config_file):
    result = invoke(config_file, "finalize", "0")
    # finalize needs no identity; it fails only because the flag is missing
    assert "flag_not_found" in result.output

    result = invoke(config_file, "vote", "0", "--yes")
    assert result.exit_code == 1
    assert "No identity given" in result.output
