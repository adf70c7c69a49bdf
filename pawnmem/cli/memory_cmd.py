"""Memory commands — show, inject, add."""

from __future__ import annotations

import json
from typing import Optional

import click

from pawnmem.cli.app import open_world
from pawnmem.cli.formatters import build_table, get_console, memory_table, score_table
from pawnmem.types import MemoryLayer, MemoryType

_TYPE_CHOICES = [t.value for t in MemoryType]
_LAYER_CHOICES = [layer.label.lower() for layer in MemoryLayer]


@click.command("show")
@click.argument("agent_id", required=False)
@click.option("--layer", type=click.Choice(_LAYER_CHOICES, case_sensitive=False), default=None)
@click.pass_context
def show_cmd(ctx: click.Context, agent_id: Optional[str], layer: Optional[str]) -> None:
    """List pawns, or one pawn's memories tier by tier."""
    manager, _ = open_world(ctx.obj)
    console = get_console(no_color=ctx.obj.get("no_color", False))

    if agent_id is None:
        counts = {aid: manager.get(aid).counts for aid in manager.agent_ids()}
        if ctx.obj.get("json"):
            click.echo(json.dumps(counts, indent=2))
            return
        rows = [
            [aid, c["active"], c["situational"], c["event_log"], c["archive"]]
            for aid, c in counts.items()
        ]
        console.print(build_table("Pawns", ["Agent", "Active", "Situational", "EventLog", "Archive"], rows))
        return

    memory = manager.get(agent_id)
    if memory is None:
        raise click.ClickException(f"Unknown agent: {agent_id}")

    entries = memory.all_entries()
    if layer is not None:
        wanted = MemoryLayer.parse(layer)
        entries = [e for e in entries if e.layer == wanted]

    if ctx.obj.get("json"):
        click.echo(json.dumps([e.to_dict() for e in entries], ensure_ascii=False, indent=2))
        return
    console.print(memory_table(f"Memories of {memory.agent_name}", entries, manager.clock.now))


@click.command("inject")
@click.argument("agent_id")
@click.argument("context")
@click.option("--explain", is_flag=True, help="Show the score breakdown of selected memories")
@click.pass_context
def inject_cmd(ctx: click.Context, agent_id: str, context: str, explain: bool) -> None:
    """Print the text that would be injected into AGENT_ID's prompt."""
    manager, _ = open_world(ctx.obj)
    text = manager.build_prompt_context(agent_id, context)

    if ctx.obj.get("json"):
        click.echo(json.dumps({"agent_id": agent_id, "injection": text}, ensure_ascii=False))
    else:
        click.echo(text or "(nothing to inject)")

    if explain and not ctx.obj.get("json"):
        memory = manager.get(agent_id)
        if memory is None:
            return
        keywords = manager.scoring.extract_keywords(context)
        selected = manager.scoring.select_memories(
            memory, context, manager.config.memory.max_injected_memories
        )
        breakdowns = [(entry, manager.scoring.explain(entry, keywords)) for entry, _ in selected]
        get_console(no_color=ctx.obj.get("no_color", False)).print(
            score_table("Score breakdown", breakdowns)
        )


@click.command("add")
@click.argument("agent_id")
@click.argument("content")
@click.option("--type", "memory_type", type=click.Choice(_TYPE_CHOICES, case_sensitive=False), default="observation")
@click.option("--importance", type=float, default=1.0, show_default=True)
@click.option("--pawn", "related_pawn", default=None, help="Related pawn (e.g. conversation partner)")
@click.pass_context
def add_cmd(
    ctx: click.Context,
    agent_id: str,
    content: str,
    memory_type: str,
    importance: float,
    related_pawn: Optional[str],
) -> None:
    """Record a new Active memory for AGENT_ID and save the snapshot."""
    manager, store = open_world(ctx.obj)
    entry = manager.add_memory(agent_id, content, MemoryType.parse(memory_type), importance, related_pawn)
    if entry is None:
        click.echo("Skipped: empty or duplicate memory.")
        return
    if not store.save(manager):
        raise click.ClickException(f"Could not write {store.path}")
    click.echo(f"Added {entry.id}")
