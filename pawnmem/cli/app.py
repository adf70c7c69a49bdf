"""CLI application — Click-based command hierarchy for pawnmem.

The main CLI group and global flags. Subcommand modules register
themselves by importing and adding to the group.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click

from pawnmem.config import PawnMemConfig
from pawnmem.log import configure_logging
from pawnmem.manager import MemoryManager
from pawnmem.memory.store import MemoryStore


@click.group()
@click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Memory snapshot file (defaults to <data_dir>/memory_state.json)",
)
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output")
@click.option("--verbose", "-v", is_flag=True, help="Show log output")
@click.option("--no-color", is_flag=True, help="Disable ANSI colors")
@click.pass_context
def cli(
    ctx: click.Context,
    state_path: Optional[Path],
    json_output: bool,
    verbose: bool,
    no_color: bool,
) -> None:
    """pawnmem - tiered memory for simulation pawns."""
    configure_logging(logging.INFO if verbose else logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["state_path"] = state_path
    ctx.obj["json"] = json_output
    ctx.obj["no_color"] = no_color


def open_world(obj: dict) -> tuple[MemoryManager, MemoryStore]:
    """Load the snapshot named on the command line (or the configured default)."""
    config = PawnMemConfig()
    path = obj.get("state_path") or config.memory.state_path
    manager = MemoryManager(config=config)
    store = MemoryStore(path)
    store.load(manager)
    return manager, store


# ---------------------------------------------------------------------------
# Register subcommand modules
# ---------------------------------------------------------------------------

def _register_subcommands() -> None:
    """Import and register all subcommand groups/commands."""
    from pawnmem.cli.memory_cmd import add_cmd, inject_cmd, show_cmd
    from pawnmem.cli.knowledge_cmd import knowledge_group

    cli.add_command(show_cmd)
    cli.add_command(inject_cmd)
    cli.add_command(add_cmd)
    cli.add_command(knowledge_group)


_register_subcommands()
