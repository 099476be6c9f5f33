"""Command-line interface for boxstats."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import polars as pl
import typer

from boxstats.api import compute_boxplot_stats
from boxstats.base import BoxplotConfig, BoxplotError

app = typer.Typer(
    name="boxstats",
    help="Boxplot statistics computed inside the data's own backend",
    add_completion=False,
)


def _scan(file: Path) -> pl.LazyFrame:
    suffix = file.suffix.lower()
    if suffix == ".csv":
        return pl.scan_csv(file)
    if suffix in (".parquet", ".pq"):
        return pl.scan_parquet(file)
    if suffix in (".ndjson", ".jsonl"):
        return pl.scan_ndjson(file)
    raise typer.BadParameter(f"Unsupported file type: {file.suffix}")


@app.command(name="stats")
def stats_cmd(
    file: Annotated[Path, typer.Argument(help="Path to a CSV, Parquet or NDJSON file")],
    var: Annotated[str, typer.Option("--var", "-v", help="Numeric column to summarise")],
    by: Annotated[
        Optional[list[str]],
        typer.Option("--by", "-b", help="Grouping column (repeatable)"),
    ] = None,
    coef: Annotated[
        Optional[float],
        typer.Option("--coef", "-c", help="Whisker length as a multiple of the IQR"),
    ] = None,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (table, json, csv)"),
    ] = "table",
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output file path"),
    ] = None,
    sort: Annotated[
        bool,
        typer.Option("--sort", help="Sort rows by the grouping columns"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log compiled plans and timings"),
    ] = False,
) -> None:
    """Compute boxplot statistics for a data file."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not file.exists():
        typer.echo(f"Error: File not found: {file}", err=True)
        raise typer.Exit(1)

    config = BoxplotConfig.from_environment()
    if sort:
        config.sort_groups = True

    try:
        result = compute_boxplot_stats(_scan(file), by or [], var, coef, config=config)
    except (BoxplotError, pl.exceptions.PolarsError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if format == "json":
        text = result.to_json()
    elif format == "csv":
        text = result.to_polars().write_csv()
    elif format == "table":
        if output:
            output.write_text(str(result))
            typer.echo(f"Statistics written to {output}")
        else:
            result.print()
        return
    else:
        typer.echo(f"Error: Unknown format: {format}", err=True)
        raise typer.Exit(1)

    if output:
        output.write_text(text)
        typer.echo(f"Statistics written to {output}")
    else:
        typer.echo(text)


@app.command(name="version")
def version_cmd() -> None:
    """Show the installed version."""
    from boxstats import __version__

    typer.echo(f"boxstats {__version__}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
