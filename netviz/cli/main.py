"""netviz CLI: command-line tools for saved graph documents."""

from __future__ import annotations

import json
import logging
import sys

import click

from netviz.client import NetworkViz
from netviz.engine.core import Node
from netviz.engine.persistence import load_document, save_document
from netviz.models import LayoutOptions

DEFAULT_DB = "netviz.db"


def _load(path: str, **kwargs) -> NetworkViz:
    return NetworkViz.from_document(load_document(path), **kwargs)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """netviz CLI: inspect and transform saved graph documents."""
    ctx.ensure_object(dict)
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(name)s: %(message)s",
    )


@cli.command()
@click.argument("graph", type=click.Path(exists=True, dir_okay=False))
def validate(graph: str) -> None:
    """Validate internal consistency of a saved graph."""
    viz = _load(graph)
    result = viz.validate()
    viz.close()
    if result.valid:
        click.echo("Graph is valid.")
    else:
        click.echo("Validation errors:")
        for err in result.errors:
            click.echo(f"  ERROR: {err}")
    for warn in result.warnings:
        click.echo(f"  WARNING: {warn}")
    if not result.valid:
        sys.exit(1)


@cli.command()
@click.argument("graph", type=click.Path(exists=True, dir_okay=False))
def stats(graph: str) -> None:
    """Show graph statistics."""
    viz = _load(graph)
    s = viz.stats()
    viz.close()
    click.echo(
        f"Nodes: {s.node_count}  Triplets: {s.triplet_count}  "
        f"Groups: {s.group_count}  Constraints: {s.constraint_count}"
    )
    if s.triplets_by_type:
        click.echo("Triplets by type:")
        for t, c in s.triplets_by_type.items():
            click.echo(f"  {t}: {c}")


@cli.command()
@click.argument("graph", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None,
              help="Output file (default: overwrite GRAPH).")
def reverse(graph: str, output: str | None) -> None:
    """Swap subject and object of every relationship."""
    viz = _load(graph)
    count = viz.reverse_triplets()
    target = save_document(viz.to_document(), output or graph)
    viz.close()
    click.echo(f"Reversed {count} triplets into {target}")


@cli.command()
@click.argument("graph", type=click.Path(exists=True, dir_okay=False))
@click.argument("node")
@click.argument("x", type=float)
@click.argument("y", type=float)
@click.option("--threshold", default=10.0, type=float, help="Snap threshold in pixels.")
def snap(graph: str, node: str, x: float, y: float, threshold: float) -> None:
    """Drag NODE to (X, Y) and print the alignment found, as JSON.

    Every node in the document is treated as pinned.
    """
    options = LayoutOptions(snap_threshold=threshold)
    viz = _load(graph, options=options, pin=lambda n: True)
    if not viz.has_node(node):
        viz.close()
        raise click.ClickException(f"Node not found: {node}")
    viz.drag_start(node)
    result = viz.drag_move(node, x, y)
    viz.drag_end(node)
    viz.close()
    click.echo(json.dumps(result.to_dict(), indent=2))


@cli.command("import-db")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--db", default=DEFAULT_DB, help="Path to the triplet database file.")
def import_db(input_file: str, db: str) -> None:
    """Import the triplets of a saved graph into a SQLite triplet database.

    Triplets the database already holds are skipped.
    """
    doc = load_document(input_file)
    imported = skipped = 0
    with NetworkViz(db) as viz, viz.batch():
        viz.add_node([Node(hash=n.hash, x=n.x, y=n.y) for n in doc.nodes])
        for t in doc.triplets:
            try:
                viz.add_triplet(t.subject, dict(t.predicate), t.object)
            except ValueError as exc:
                if str(exc) != "Edge already exists":
                    raise click.ClickException(f"{t.subject} -> {t.object}: {exc}") from exc
                skipped += 1
            else:
                imported += 1
    click.echo(f"Imported {imported} triplets from {input_file} into {db}")
    if skipped:
        click.echo(f"Skipped {skipped} triplets already in {db}")


@cli.command("export-db")
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--db", default=DEFAULT_DB, help="Path to the triplet database file.")
def export_db(output: str, db: str) -> None:
    """Export a SQLite triplet database to a graph document."""
    with NetworkViz(db) as viz:
        target = save_document(viz.to_document(), output)
    click.echo(f"Exported {db} to {target}")


@cli.command()
@click.option("--db", default=None, help="Database path (overrides NETVIZ_DB_PATH).")
@click.option("--graph", default=None, help="Graph document (overrides NETVIZ_GRAPH_PATH).")
def mcp(db: str | None, graph: str | None) -> None:
    """Start the MCP server for AI agent integration."""
    import os

    if db:
        os.environ["NETVIZ_DB_PATH"] = db
    if graph:
        os.environ["NETVIZ_GRAPH_PATH"] = graph
    from netviz.mcp.server import run_server

    run_server()


if __name__ == "__main__":
    cli()
