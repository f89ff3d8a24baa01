"""CLI entry point for the anomaly ledger."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable

import click
from stellar_sdk import Keypair

from anomaly_ledger.config import load_config
from anomaly_ledger.engine.admin import PARAMETER_RULES
from anomaly_ledger.models.config import ServiceConfig
from anomaly_ledger.models.results import OperationResult
from anomaly_ledger.models.snapshots import to_dict
from anomaly_ledger.service import AnomalyLedgerService
from anomaly_ledger.stellar.payments import STROOPS_PER_XLM


def _xlm(stroops: int) -> str:
    return f"{stroops / STROOPS_PER_XLM:.7f} XLM"


def _identity(cfg: ServiceConfig, as_identity: str | None) -> str:
    """Caller identity: --as, else the first configured signer."""
    if as_identity:
        return as_identity
    if not cfg.signer_secrets:
        click.echo("Error: No identity given and no signer secret configured.", err=True)
        click.echo("Pass --as or set ANOMALY_LEDGER_SECRET.", err=True)
        sys.exit(1)
    return Keypair.from_secret(cfg.signer_secrets[0]).public_key


def _run_with_service(cfg: ServiceConfig, fn: Callable[[AnomalyLedgerService], Awaitable]):
    async def _inner():
        service = AnomalyLedgerService(cfg)
        await service.initialize()
        try:
            return await fn(service)
        finally:
            await service.close()

    return asyncio.run(_inner())


def _check(result: OperationResult) -> OperationResult:
    """Exit non-zero on a failed operation."""
    if not result.ok:
        detail = f" ({result.detail})" if result.detail else ""
        click.echo(f"Error: {result.error.value}{detail}", err=True)
        sys.exit(1)
    return result


as_option = click.option("--as", "as_identity", default=None, help="Caller identity (defaults to first signer)")


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """anomaly-ledger - Stake-weighted consensus on anomaly flags."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the database and seed engine parameters."""
    cfg = load_config(ctx.obj["config_path"])

    async def _init(service: AnomalyLedgerService):
        result = await service.get_parameters()
        return _check(result).value

    params = _run_with_service(cfg, _init)
    click.echo(f"Ledger ready at {cfg.db_path} (parameters v{params.version})")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show service configuration."""
    cfg = load_config(ctx.obj["config_path"])
    click.echo(f"Network:     {cfg.network}")
    click.echo(f"Horizon:     {cfg.horizon_url}")
    click.echo(f"RPC URL:     {cfg.rpc_url}")
    click.echo(f"Clock:       {cfg.clock.value}")
    click.echo(f"DB path:     {cfg.db_path}")
    click.echo(f"Oracles:     {len(cfg.roles.oracles)}")
    click.echo(f"Authorities: {len(cfg.roles.authorities)}")
    click.echo(f"Signers:     {len(cfg.signer_secrets) or '(not set)'}")


@cli.command()
@click.pass_context
def params(ctx: click.Context) -> None:
    """Show the current engine parameters."""
    cfg = load_config(ctx.obj["config_path"])

    async def _params(service: AnomalyLedgerService):
        return _check(await service.get_parameters()).value

    p = _run_with_service(cfg, _params)
    click.echo(f"Version:             {p.version}")
    click.echo(f"Anomaly threshold:   {p.anomaly_threshold}")
    click.echo(f"Score bounds:        {p.min_score}..{p.max_score}")
    click.echo(f"Max flags:           {p.max_flags}")
    click.echo(f"Submission fee:      {p.submission_fee} stroops ({_xlm(p.submission_fee)})")
    click.echo(f"Min stake:           {p.min_stake} stroops ({_xlm(p.min_stake)})")
    click.echo(f"Voting duration:     {p.voting_duration}")
    click.echo(f"Consensus threshold: {p.consensus_threshold}%")
    click.echo(f"Slash:               {p.slash_percent}%")
    click.echo(f"Reward bonus:        {p.reward_bonus} stroops ({_xlm(p.reward_bonus)})")
    click.echo(f"Proposal margin:     {p.proposal_margin}")
    click.echo(f"Authority account:   {p.authority_account or '(not set)'}")
    click.echo(f"Oracle principal:    {p.oracle_principal or '(not set)'}")
    click.echo(f"Escrow account:      {p.escrow_account or '(not set)'}")


# ── Flags ──────────────────────────────────────────────


@cli.command()
@click.option("--tx-id", required=True, help="External transaction identifier")
@click.option("--score", type=int, required=True, help="Anomaly score")
@click.option("--type", "anomaly_type", required=True, help="fraud, laundering, exploit, wash-trading")
@click.option("--reason", default="", help="Free-text reason (max 200 chars)")
@click.option("--confidence", type=int, default=50, help="Confidence 0-100")
@click.option("--location", default="", help="Where the anomaly was observed")
@click.option("--category", default="general", help="defi, nft, dao, general")
@click.option("--priority", type=int, default=0, help="Priority 0-10")
@click.option("--expiry", type=int, required=True, help="Expiry time/height")
@as_option
@click.pass_context
def submit(
    ctx: click.Context,
    tx_id: str,
    score: int,
    anomaly_type: str,
    reason: str,
    confidence: int,
    location: str,
    category: str,
    priority: int,
    expiry: int,
    as_identity: str | None,
) -> None:
    """Submit an anomaly flag (oracle only)."""
    cfg = load_config(ctx.obj["config_path"])
    submitter = _identity(cfg, as_identity)

    async def _submit(service: AnomalyLedgerService):
        return _check(await service.submit_flag(
            tx_id, score, anomaly_type, reason, confidence, location,
            category, priority, expiry, submitter,
        )).value

    flag_id = _run_with_service(cfg, _submit)
    click.echo(f"Flag {flag_id} submitted for {tx_id}")


@cli.command()
@click.argument("flag_id", type=int)
@click.option("--score", type=int, required=True, help="New anomaly score")
@click.option("--reason", default="", help="New reason")
@as_option
@click.pass_context
def update(ctx: click.Context, flag_id: int, score: int, reason: str, as_identity: str | None) -> None:
    """Revise a flag's score and reason (original submitter only)."""
    cfg = load_config(ctx.obj["config_path"])
    caller = _identity(cfg, as_identity)

    async def _update(service: AnomalyLedgerService):
        _check(await service.update_flag(flag_id, score, reason, caller))
        return (await service.get_flag(flag_id)).value

    flag = _run_with_service(cfg, _update)
    click.echo(f"Flag {flag_id} updated (score={flag.score} flagged={flag.flagged})")


@cli.command()
@click.argument("flag_id", type=int)
@click.option("--amount", type=int, required=True, help="Stake in stroops")
@click.option("--yes/--no", "vote", required=True, help="Vote the flag legitimate or not")
@as_option
@click.pass_context
def stake(ctx: click.Context, flag_id: int, amount: int, vote: bool, as_identity: str | None) -> None:
    """Lock stake behind a yes/no vote on a flag."""
    cfg = load_config(ctx.obj["config_path"])
    validator = _identity(cfg, as_identity)

    async def _stake(service: AnomalyLedgerService):
        return _check(await service.stake_and_vote(flag_id, vote, amount, validator)).value

    locked = _run_with_service(cfg, _stake)
    click.echo(f"Voted {'yes' if vote else 'no'} on flag {flag_id} with {locked} stroops ({_xlm(locked)})")


@cli.command()
@click.argument("flag_id", type=int)
@click.pass_context
def finalize(ctx: click.Context, flag_id: int) -> None:
    """Finalize a flag whose voting window has closed."""
    cfg = load_config(ctx.obj["config_path"])

    async def _finalize(service: AnomalyLedgerService):
        status = _check(await service.finalize_flag(flag_id)).value
        settlements = (await service.get_settlements(flag_id=flag_id)).value
        return status, settlements

    status, settlements = _run_with_service(cfg, _finalize)
    click.echo(f"Flag {flag_id}: {status.value}")
    for s in settlements:
        click.echo(
            f"  {s.validator[:12]}... {'correct' if s.correct else 'wrong'}"
            f" payout={s.payout} [{s.status.value}]"
        )


@cli.command()
@click.option("--flag", "flag_id", type=int, default=None, help="Only retry this flag's payouts")
@click.pass_context
def settle(ctx: click.Context, flag_id: int | None) -> None:
    """Retry payouts that failed or never went out."""
    cfg = load_config(ctx.obj["config_path"])

    async def _settle(service: AnomalyLedgerService):
        return _check(await service.retry_settlements(flag_id)).value

    paid = _run_with_service(cfg, _settle)
    click.echo(f"{paid} payout(s) sent")


@cli.command()
@click.argument("flag_id", type=int)
@click.pass_context
def flag(ctx: click.Context, flag_id: int) -> None:
    """Show one flag as JSON."""
    cfg = load_config(ctx.obj["config_path"])

    async def _flag(service: AnomalyLedgerService):
        return _check(await service.get_flag_snapshot(flag_id)).value

    snapshot = _run_with_service(cfg, _flag)
    click.echo(json.dumps(to_dict(snapshot), indent=2))


# ── Governance ─────────────────────────────────────────


@cli.command()
@click.option("--description", required=True, help="What the proposal changes (max 200 chars)")
@click.option("--threshold", type=int, required=True, help="Proposed anomaly threshold 1-100")
@click.option("--expiry", type=int, required=True, help="Expiry time/height")
@as_option
@click.pass_context
def propose(
    ctx: click.Context, description: str, threshold: int, expiry: int, as_identity: str | None,
) -> None:
    """Propose a new anomaly threshold (authority only)."""
    cfg = load_config(ctx.obj["config_path"])
    proposer = _identity(cfg, as_identity)

    async def _propose(service: AnomalyLedgerService):
        return _check(await service.create_proposal(description, threshold, expiry, proposer)).value

    proposal_id = _run_with_service(cfg, _propose)
    click.echo(f"Proposal {proposal_id} created")


@cli.command()
@click.argument("proposal_id", type=int)
@click.option("--yes/--no", "support", required=True, help="Support or oppose")
@as_option
@click.pass_context
def vote(ctx: click.Context, proposal_id: int, support: bool, as_identity: str | None) -> None:
    """Vote on a threshold proposal (oracle only)."""
    cfg = load_config(ctx.obj["config_path"])
    voter = _identity(cfg, as_identity)

    async def _vote(service: AnomalyLedgerService):
        return _check(await service.vote_on_proposal(proposal_id, support, voter)).value

    applied = _run_with_service(cfg, _vote)
    click.echo(f"Vote recorded on proposal {proposal_id}")
    if applied:
        click.echo("Proposal passed: anomaly threshold updated")


@cli.command()
@click.argument("proposal_id", type=int)
@click.pass_context
def proposal(ctx: click.Context, proposal_id: int) -> None:
    """Show one proposal as JSON."""
    cfg = load_config(ctx.obj["config_path"])

    async def _proposal(service: AnomalyLedgerService):
        return _check(await service.get_proposal_snapshot(proposal_id)).value

    snapshot = _run_with_service(cfg, _proposal)
    click.echo(json.dumps(to_dict(snapshot), indent=2))


@cli.command()
@click.pass_context
def dashboard(ctx: click.Context) -> None:
    """Print the dashboard snapshot as JSON."""
    cfg = load_config(ctx.obj["config_path"])
    click.echo(json.dumps(_run_with_service(cfg, lambda s: s.get_dashboard_dict()), indent=2))


# ── Admin ──────────────────────────────────────────────


@cli.group()
def admin():
    """Authority-only parameter changes."""
    pass


@admin.command("set")
@click.argument("name", type=click.Choice(sorted(PARAMETER_RULES)))
@click.argument("value", type=int)
@as_option
@click.pass_context
def admin_set(ctx: click.Context, name: str, value: int, as_identity: str | None) -> None:
    """Change one numeric engine parameter."""
    cfg = load_config(ctx.obj["config_path"])
    caller = _identity(cfg, as_identity)

    async def _set(service: AnomalyLedgerService):
        return _check(await service.set_parameter(name, value, caller)).value

    version = _run_with_service(cfg, _set)
    click.echo(f"{name} = {value} (parameters v{version})")


@admin.command("authority-account")
@click.argument("account")
@as_option
@click.pass_context
def admin_authority_account(ctx: click.Context, account: str, as_identity: str | None) -> None:
    """Set the fee-receiving authority account (once)."""
    cfg = load_config(ctx.obj["config_path"])
    caller = _identity(cfg, as_identity)
    version = _run_with_service(
        cfg, lambda s: _checked_value(s.set_authority_account(account, caller)),
    )
    click.echo(f"Authority account set (parameters v{version})")


@admin.command("oracle-principal")
@click.argument("oracle")
@as_option
@click.pass_context
def admin_oracle_principal(ctx: click.Context, oracle: str, as_identity: str | None) -> None:
    """Set the oracle principal that enables proposal voting."""
    cfg = load_config(ctx.obj["config_path"])
    caller = _identity(cfg, as_identity)
    version = _run_with_service(
        cfg, lambda s: _checked_value(s.set_oracle_principal(oracle, caller)),
    )
    click.echo(f"Oracle principal set (parameters v{version})")


@admin.command("escrow-account")
@click.argument("account")
@as_option
@click.pass_context
def admin_escrow_account(ctx: click.Context, account: str, as_identity: str | None) -> None:
    """Set the escrow account that holds locked stake."""
    cfg = load_config(ctx.obj["config_path"])
    caller = _identity(cfg, as_identity)
    version = _run_with_service(
        cfg, lambda s: _checked_value(s.set_escrow_account(account, caller)),
    )
    click.echo(f"Escrow account set (parameters v{version})")


async def _checked_value(pending: Awaitable[OperationResult]):
    return _check(await pending).value


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
