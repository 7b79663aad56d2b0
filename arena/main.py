"""Diamond Arena CLI."""
import asyncio
import os
import random
import sys
from typing import Optional

import click
from loguru import logger

from .core.config import ArenaConfig, PoolType, load_config
from .core.errors import ArenaError
from .core.leaderboard import InMemoryLeaderboard
from .core.ledger import InMemoryLedger
from .core.lifecycle import DistributionReport, PoolLifecycleController
from .core.payouts import PayoutEngine
from .core.pools import InMemoryPoolRegistry
from .core.stake import calculate_stake_breakdown
from .core.tiers import TierClassifier
from .core.vault import StakingVault

POOL_TYPES = click.Choice([t.value for t in PoolType], case_sensitive=False)


def setup_logging(level: Optional[str] = None) -> None:
    """Send loguru output to stderr at the requested level."""
    level = (level or os.getenv("ARENA_LOG_LEVEL", "INFO")).upper()
    logger.remove()
    logger.add(sys.stderr, level=level)


@click.group()
@click.version_option(package_name="diamond-arena")
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='YAML file overriding the built-in tables')
@click.option('--log-level', default=None, help='Log level (default: $ARENA_LOG_LEVEL or INFO)')
@click.pass_context
def cli(ctx, config_path: Optional[str], log_level: Optional[str]):
    """Diamond Arena stake settlement and payout engine."""
    setup_logging(log_level)
    try:
        ctx.obj = load_config(config_path)
    except ArenaError as e:
        raise click.ClickException(e.message)


@cli.command()
@click.pass_obj
def tiers(config: ArenaConfig):
    """Show stake tiers and their level requirements."""
    click.echo(f"{'Tier':<10}{'Min':>10}{'Max':>10}{'Level':>8}")
    click.echo("-" * 38)
    for band in config.tiers:
        click.echo(f"{band.tier.value:<10}{band.min:>10}{band.max:>10}{band.level_required:>8}")


@cli.command()
@click.argument('amount', type=int)
@click.pass_obj
def breakdown(config: ArenaConfig, amount: int):
    """Show the burn / pool split for a stake AMOUNT."""
    band = TierClassifier.from_config(config).tier_info(amount)
    if band is None:
        raise click.ClickException(
            f"INVALID_STAKE_AMOUNT: Must be between {config.min_stake} and {config.max_stake} diamonds"
        )
    split = calculate_stake_breakdown(amount)
    click.echo(f"Tier: {band.tier.value} (level {band.level_required}+)")
    click.echo(f"Gross: {split.gross}")
    click.echo(f"Burned ({split.burn_rate}): {split.burned}")
    click.echo(f"To pool: {split.net_to_pool}")
    if amount >= config.velocity_threshold:
        click.echo("Note: stakes of this size need admin approval (VELOCITY_GUARDIAN)")


@cli.command()
@click.argument('pool_type', type=POOL_TYPES)
@click.pass_obj
def structure(config: ArenaConfig, pool_type: str):
    """Show the payout structure of a POOL_TYPE."""
    info = PayoutEngine(config).describe_structure(PoolType(pool_type.upper()))
    click.echo(f"{info.description} (house cut {info.house_cut})")
    for place in info.tiers:
        click.echo(f"  {place.place:<12}{place.share:>6}")


@cli.command()
@click.argument('pool_type', type=POOL_TYPES)
@click.argument('total_pool', type=click.IntRange(min=0))
@click.argument('entrants', type=click.IntRange(min=0))
@click.pass_obj
def preview(config: ArenaConfig, pool_type: str, total_pool: int, entrants: int):
    """Preview payouts for a pool of TOTAL_POOL with ENTRANTS players."""
    result = PayoutEngine(config).preview_payouts(PoolType(pool_type.upper()), total_pool, entrants)
    click.echo(f"Prize pool: {result.prize_pool} (house cut {result.house_cut})")
    click.echo("-" * 30)
    for place in result.payouts:
        click.echo(f"{place.place:<12}{place.amount:>12}")


async def run_simulation(config: ArenaConfig, pool_type: PoolType, entrants: int, stake: int,
                         seed: int) -> DistributionReport:
    """Stake, score and settle a pool against the in-memory ledger."""
    registry = InMemoryPoolRegistry()
    ledger = InMemoryLedger(registry=registry, hash_prefix=config.hash_prefix)
    leaderboard = InMemoryLeaderboard()
    vault = StakingVault(ledger, config)
    controller = PoolLifecycleController(registry, leaderboard, vault)

    pool = await controller.create_pool("Simulation", pool_type, entry_fee=stake, max_entrants=entrants)
    await controller.activate(pool.id)

    rng = random.Random(seed)
    for i in range(entrants):
        identity = f"player-{i + 1:04d}"
        ledger.fund(identity, stake)
        receipt = await vault.stake(identity, pool.id, stake)
        if not receipt.success:
            logger.warning(f"{identity} not entered: {receipt.error}")
            continue
        leaderboard.record_score(pool.id, identity, score=rng.randint(0, 1000),
                                 latency_ms=rng.randint(20, 400), entry_time=float(i))

    return await controller.distribute_prizes(pool.id)


@cli.command()
@click.argument('pool_type', type=POOL_TYPES)
@click.option('--entrants', default=10, type=click.IntRange(min=1), help='Number of players')
@click.option('--stake', default=100, type=int, help='Stake per player')
@click.option('--seed', default=42, help='Random seed for scores')
@click.pass_obj
def simulate(config: ArenaConfig, pool_type: str, entrants: int, stake: int, seed: int):
    """Run a full stake -> settle cycle in memory and print the report."""
    try:
        report = asyncio.run(run_simulation(config, PoolType(pool_type.upper()), entrants, stake, seed))
    except ArenaError as e:
        raise click.ClickException(e.message)

    if not report.success:
        raise click.ClickException(f"Distribution failed: {report.error}")

    click.echo(f"\nPool {report.pool_id} settled")
    click.echo(f"Distributed: {report.total_distributed}  House: {report.house_take}")
    click.echo("-" * 60)
    click.echo(f"{'Rank':<6}{'Player':<16}{'Pct':>5}  {'Tier':<14}{'Payout':>10}")
    click.echo("-" * 60)
    for p in report.payouts:
        click.echo(f"{p.rank:<6}{p.identity:<16}{p.percentile:>5}  {p.payout_tier.value:<14}{p.payout_amount:>10}")


if __name__ == "__main__":
    cli()
