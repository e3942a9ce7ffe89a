#!/usr/bin/env python3
"""
Bifrost Schedule CLI

Command-line interface for computing leader schedules from a stake file.

The stake file is JSON, either an object mapping validator identity
(base58 or hex) to stake, or a ``getVoteAccounts`` result with
``current`` / ``delinquent`` lists.

Usage:
    bifrost-schedule snapshot <stakes_file>
    bifrost-schedule build <stakes_file> --epoch N [--slots-per-epoch N] [--json]
    bifrost-schedule leader <stakes_file> <slot> [--slots-per-epoch N]
"""

import json
from pathlib import Path
from typing import Optional

import click

from bifrost.constants import BIFROST_CONFIG_PATH, NODE_VERSION
from bifrost.exceptions import BifrostException
from bifrost.schedule import (
    LeaderTracker,
    ScheduleBuilder,
    ScheduleCache,
    ScheduleConfig,
    StakeSnapshot,
    stakes_from_vote_accounts,
)


def load_stakes(stakes_file: str, include_delinquent: bool = False) -> dict:
    """Read raw stake weights from a JSON stake file."""
    try:
        data = json.loads(Path(stakes_file).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Failed to read stake file: {e}")

    if not isinstance(data, dict):
        raise click.ClickException("Stake file must contain a JSON object")

    # RPC envelopes wrap the vote accounts in "result"
    if "result" in data and isinstance(data["result"], dict):
        data = data["result"]

    try:
        if "current" in data or "delinquent" in data:
            return stakes_from_vote_accounts(data, include_delinquent=include_delinquent)
        return {key: int(value) for key, value in data.items()}
    except (BifrostException, ValueError, TypeError) as e:
        raise click.ClickException(f"Invalid stake file: {e}")


def load_config(config_path: Optional[str], slots_per_epoch: Optional[int]) -> ScheduleConfig:
    try:
        config = ScheduleConfig.from_file(config_path or str(BIFROST_CONFIG_PATH))
        if slots_per_epoch is not None:
            config.slots_per_epoch = slots_per_epoch
        config.validate()
    except BifrostException as e:
        raise click.ClickException(str(e))
    return config


def format_id(validator_id, short: bool = False) -> str:
    """Format validator identity for display."""
    text = validator_id.to_base58()
    if short:
        return f"{text[:8]}...{text[-6:]}"
    return text


@click.group()
@click.version_option(version=NODE_VERSION, prog_name="bifrost-schedule")
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(),
    default=None,
    help="Path to config.toml (default: BIFROST_CONFIG_PATH or ./config.toml)"
)
@click.pass_context
def cli(ctx, config_path: Optional[str]):
    """Bifrost Leader Schedule CLI

    Compute the stake-weighted slot leader schedule locally.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command("snapshot")
@click.argument("stakes_file", type=click.Path(exists=True))
@click.option("--include-delinquent", is_flag=True, help="Count delinquent vote accounts")
def snapshot_cmd(stakes_file: str, include_delinquent: bool):
    """Print the normalized stake order.

    Examples:

        bifrost-schedule snapshot stakes.json
    """
    try:
        snapshot = StakeSnapshot.normalize(load_stakes(stakes_file, include_delinquent))
    except BifrostException as e:
        raise click.ClickException(str(e))

    total = snapshot.total_stake
    for rank, entry in enumerate(snapshot, 1):
        share = entry.stake / total * 100
        click.echo(f"{rank:4}. {format_id(entry.validator_id)}  {entry.stake:>20}  {share:6.2f}%")

    click.echo()
    click.echo(f"Validators: {len(snapshot)}  Total stake: {total}")


@cli.command("build")
@click.argument("stakes_file", type=click.Path(exists=True))
@click.option("--epoch", "-e", type=click.IntRange(min=0), required=True, help="Epoch number")
@click.option("--slots-per-epoch", "-s", type=int, default=None, help="Slots per epoch")
@click.option("--include-delinquent", is_flag=True, help="Count delinquent vote accounts")
@click.option("--json", "as_json", is_flag=True, help="Print {identity: [slot offsets]} JSON")
@click.pass_context
def build_cmd(
    ctx,
    stakes_file: str,
    epoch: int,
    slots_per_epoch: Optional[int],
    include_delinquent: bool,
    as_json: bool,
):
    """Build and print the leader schedule for an epoch.

    Examples:

        bifrost-schedule build stakes.json --epoch 812

        bifrost-schedule build stakes.json --epoch 0 --slots-per-epoch 32 --json
    """
    config = load_config(ctx.obj.get("config_path"), slots_per_epoch)
    raw = load_stakes(stakes_file, include_delinquent or config.include_delinquent)

    try:
        builder = ScheduleBuilder(config.leader_slot_span)
        schedule = builder.build_from_stakes(raw, epoch, config.slots_per_epoch)
    except (BifrostException, ValueError) as e:
        raise click.ClickException(str(e))

    if as_json:
        leader_slots = {
            str(validator_id): offsets
            for validator_id, offsets in schedule.leader_slots().items()
        }
        click.echo(json.dumps(leader_slots, indent=2))
        return

    span = config.leader_slot_span
    for start in range(0, len(schedule), span):
        end = min(start + span, len(schedule)) - 1
        first_slot = schedule.first_slot
        click.echo(
            f"{first_slot + start:>12}-{first_slot + end:<12} {format_id(schedule[start])}"
        )

    click.echo()
    click.echo(click.style(
        f"Epoch {epoch}: {len(schedule)} slots, "
        f"{len(schedule.leader_slots())} distinct leaders",
        fg="green",
    ))


@cli.command("leader")
@click.argument("stakes_file", type=click.Path(exists=True))
@click.argument("slot", type=int)
@click.option("--slots-per-epoch", "-s", type=int, default=None, help="Slots per epoch")
@click.option("--next", "-n", "count", type=int, default=1, help="Also list the next N slots' leaders")
@click.pass_context
def leader_cmd(ctx, stakes_file: str, slot: int, slots_per_epoch: Optional[int], count: int):
    """Print the leader of an absolute slot.

    The same stake file is used for every epoch the lookup touches.

    Examples:

        bifrost-schedule leader stakes.json 350000000 --next 8
    """
    config = load_config(ctx.obj.get("config_path"), slots_per_epoch)
    raw = load_stakes(stakes_file, config.include_delinquent)

    try:
        with ScheduleCache(
            config.slots_per_epoch,
            retention=config.retention,
            builder=ScheduleBuilder(config.leader_slot_span),
        ) as cache:
            tracker = LeaderTracker(cache, lambda epoch: raw)
            if count <= 1:
                click.echo(format_id(tracker.leader_for(slot)))
                return
            for s in range(slot, slot + count):
                click.echo(f"{s:>12} {format_id(tracker.leader_for(s))}")
    except (BifrostException, IndexError) as e:
        raise click.ClickException(str(e))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
