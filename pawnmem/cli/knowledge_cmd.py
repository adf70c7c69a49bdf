"""Knowledge commands — list, import, export."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click

from pawnmem.cli.app import open_world
from pawnmem.cli.formatters import build_table, get_console, truncate


@click.group("knowledge", invoke_without_command=True)
@click.pass_context
def knowledge_group(ctx: click.Context) -> None:
    """Manage the shared knowledge library."""
    if ctx.invoked_subcommand is None:
        _list_knowledge(ctx.obj)


def _list_knowledge(obj: dict) -> None:
    manager, _ = open_world(obj)
    entries = manager.knowledge.entries
    if obj.get("json"):
        click.echo(json.dumps([e.to_dict() for e in entries], ensure_ascii=False, indent=2))
        return
    rows = [
        [e.tag, truncate(e.content), f"{e.importance:.2f}", "yes" if e.enabled else "no"]
        for e in entries
    ]
    get_console(no_color=obj.get("no_color", False)).print(
        build_table("Knowledge", ["Tag", "Content", "Importance", "Enabled"], rows)
    )


@knowledge_group.command("import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--replace", is_flag=True, help="Clear existing entries first")
@click.pass_context
def knowledge_import(ctx: click.Context, source: Path, replace: bool) -> None:
    """Import [tag]content lines from SOURCE."""
    manager, store = open_world(ctx.obj)
    count = manager.knowledge.import_from_text(source.read_text(encoding="utf-8"), clear_existing=replace)
    if not store.save(manager):
        raise click.ClickException(f"Could not write {store.path}")
    click.echo(f"Imported {count} entries ({len(manager.knowledge)} total).")


@knowledge_group.command("export")
@click.argument("target", type=click.Path(dir_okay=False, path_type=Path), required=False)
@click.pass_context
def knowledge_export(ctx: click.Context, target: Optional[Path]) -> None:
    """Write the library as [tag]content lines to TARGET (or stdout)."""
    manager, _ = open_world(ctx.obj)
    text = manager.knowledge.export_to_text()
    if target is None:
        click.echo(text, nl=False)
        return
    target.write_text(text, encoding="utf-8")
    click.echo(f"Exported {len(manager.knowledge)} entries to {target}")
