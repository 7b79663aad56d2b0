"""Unit tests for the arena command line."""
import sys
import pytest
from click.testing import CliRunner
from loguru import logger
from arena.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logger():
    """The CLI points loguru at the runner's stderr; put it back afterwards."""
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_tiers(runner):
    result = runner.invoke(cli, ["tiers"])
    assert result.exit_code == 0
    assert "MICRO" in result.output
    assert "100000" in result.output


def test_breakdown(runner):
    result = runner.invoke(cli, ["breakdown", "101"])
    assert result.exit_code == 0
    assert "Tier: HIGH" in result.output
    assert "Burned (25%): 25" in result.output
    assert "To pool: 76" in result.output


def test_breakdown_velocity_note(runner):
    result = runner.invoke(cli, ["breakdown", "50000"])
    assert result.exit_code == 0
    assert "VELOCITY_GUARDIAN" in result.output


def test_breakdown_invalid(runner):
    result = runner.invoke(cli, ["breakdown", "5"])
    assert result.exit_code != 0
    assert "INVALID_STAKE_AMOUNT" in result.output


def test_structure(runner):
    result = runner.invoke(cli, ["structure", "community_event"])
    assert result.exit_code == 0
    assert "Percentile-Based (house cut 15%)" in result.output
    assert "Top 1%" in result.output


def test_preview(runner):
    result = runner.invoke(cli, ["preview", "MULTI_TABLE", "1000", "10"])
    assert result.exit_code == 0
    assert "Prize pool: 900 (house cut 100)" in result.output
    assert "450" in result.output


def test_simulate(runner, env_setup):
    result = runner.invoke(cli, ["simulate", "TOURNAMENT", "--entrants", "12", "--stake", "100"])
    assert result.exit_code == 0, result.output
    # 12 x 75 = 900 in the pool, 12% house cut
    assert "Distributed: 792  House: 108" in result.output
    assert "player-" in result.output


def test_config_override(runner, tmp_path):
    path = tmp_path / "arena.yaml"
    path.write_text("pool_types:\n"
                    "  HEADS_UP: {house_cut_bps: 500, min_players: 2, max_players: 2}\n"
                    "payouts:\n"
                    "  HEADS_UP: {description: Winner Takes All, ranks: {1: 100}}\n")
    result = runner.invoke(cli, ["--config", str(path), "preview", "HEADS_UP", "1000", "2"])
    assert result.exit_code == 0
    assert "house cut 50)" in result.output


def test_bad_config(runner, tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("min_payout: 0\n")
    result = runner.invoke(cli, ["--config", str(path), "tiers"])
    assert result.exit_code != 0
    assert "CONFIG_INVALID" in result.output


def test_partial_config_other_pool_types(runner, tmp_path):
    """Test a file overriding one pool type still serves the others."""
    path = tmp_path / "arena.yaml"
    path.write_text("pool_types:\n"
                    "  HEADS_UP: {house_cut_bps: 800, min_players: 2, max_players: 2}\n")
    result = runner.invoke(cli, ["--config", str(path), "structure", "TOURNAMENT"])
    assert result.exit_code == 0, result.output
    assert "Deep Payout (house cut 12%)" in result.output
