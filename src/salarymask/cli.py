"""Command-line interface for salarymask.

Provides:
- `detect`: Report salary fragments in a PDF without modifying it.
- `mask`: Cover detected salary text with overlay boxes.
- `flatten`: Destructively mask regions listed in a JSON file.
- `batch`: Mask many PDFs concurrently.
- `api`: Launch the HTTP service.
"""

import typer
from pathlib import Path
from typing import List, Optional
from rich import print
from rich.table import Table
import orjson

from .core import (
    RunConfig,
    SelectedRegion,
    check_salary_info,
    masked_filename,
    process_path,
)
from .batch import run_batch

app = typer.Typer(add_completion=False, help="salarymask: salary masking for PDF attachments")


def _write_meta(res: dict) -> Path:
    meta_path = Path(res["out"]).with_suffix(".meta.json")
    meta_path.write_bytes(orjson.dumps(res, option=orjson.OPT_INDENT_2))
    return meta_path


def _load_regions(path: str) -> List[SelectedRegion]:
    """Read regions from JSON: a list (or ``{"regions": [...]}``) of page/x/y/width/height[/scale]."""
    raw = orjson.loads(Path(path).read_bytes())
    items = raw.get("regions", []) if isinstance(raw, dict) else raw
    regions: List[SelectedRegion] = []
    for item in items:
        regions.append(
            SelectedRegion(
                page=int(item["page"]),
                x=float(item["x"]),
                y=float(item["y"]),
                width=float(item["width"]),
                height=float(item["height"]),
                scale=float(item.get("scale", 1.0)),
            )
        )
    return regions


@app.command()
def detect(
    input: str = typer.Option(..., "--input", "-i", help="Input PDF"),
    policy: Optional[str] = typer.Option(
        None, help="Policy name or YAML/JSON path (e.g., default, strict-row)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the preview as JSON"),
):
    """Dry-run detection: list fragments that would be masked."""
    cfg = RunConfig(policy_path=policy)
    preview = check_salary_info(Path(input).read_bytes(), cfg)
    if as_json:
        typer.echo(orjson.dumps(preview.model_dump(), option=orjson.OPT_INDENT_2).decode())
    elif preview.error:
        print(f"[red]Detection failed:[/red] {preview.error}")
    elif not preview.has_salary_info:
        print("[green]No salary information detected[/green]")
    else:
        table = Table(title=f"{preview.count} salary fragment(s)")
        table.add_column("Page", justify="right")
        table.add_column("Reason")
        table.add_column("Text")
        for item in preview.items:
            table.add_row(str(item.page), item.reason, item.text)
        print(table)
    if preview.error:
        raise typer.Exit(code=1)


@app.command()
def mask(
    input: str = typer.Option(..., "--input", "-i", help="Input PDF"),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output PDF path (default: masked_<name> next to input)"
    ),
    policy: Optional[str] = typer.Option(None, help="Policy name or YAML/JSON path"),
    placeholder: str = typer.Option("***", help="Text drawn inside each box ('' for none)"),
    audit: bool = typer.Option(True, "--audit/--no-audit", help="Write an audit JSON"),
):
    """Cover detected salary text with overlay boxes.

    Parameters
    ----------
    input:
        PDF to mask.
    output:
        Where to write the masked PDF.
    policy:
        Heuristic policy to detect with.
    placeholder:
        Text drawn in the boxes.
    audit:
        Write ``<output>.audit.json`` when True.
    """
    cfg = RunConfig(policy_path=policy, placeholder=placeholder or None)
    res = process_path(input, output, cfg, audit=audit)
    meta_path = _write_meta(res)
    if res["masked"]:
        print(f"[green]Masked {res['masked_count']} fragment(s):[/green] {res['out']}")
        print(
            "[yellow]Overlay boxes hide the text visually; it remains extractable. "
            "Use `salarymask flatten` to destroy it.[/yellow]"
        )
    else:
        print(f"[green]No salary information detected; copied to[/green] {res['out']}")
    print(f"[green]Details:[/green] {str(meta_path)}")


@app.command()
def flatten(
    input: str = typer.Option(..., "--input", "-i", help="Input PDF"),
    regions: str = typer.Option(..., "--regions", "-r", help="Regions JSON file"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output PDF path"),
    raster_scale: float = typer.Option(2.0, help="Render scale for flattened pages"),
    audit: bool = typer.Option(True, "--audit/--no-audit", help="Write an audit JSON"),
):
    """Rasterize the pages holding REGIONS and paint the regions white.

    Flattened pages lose all extractable text; other pages are copied as is.
    """
    selected = _load_regions(regions)
    if not selected:
        print("[red]No regions in file[/red]")
        raise typer.Exit(code=1)
    cfg = RunConfig(raster_scale=raster_scale)
    res = process_path(input, output, cfg, regions=selected, audit=audit)
    meta_path = _write_meta(res)
    print(f"[green]Flattened {res['masked_count']} region(s):[/green] {res['out']}")
    print(f"[green]Details:[/green] {str(meta_path)}")


@app.command()
def batch(
    input_dir: str = typer.Option(..., help="Input directory or glob pattern"),
    output_dir: str = typer.Option(..., help="Output directory for PDFs"),
    workers: int = typer.Option(2, help="Concurrent workers"),
    policy: Optional[str] = typer.Option(None, help="Policy name or YAML/JSON path"),
):
    """Mask multiple PDFs concurrently."""
    from glob import glob

    files = []
    p = Path(input_dir)
    if p.exists() and p.is_dir():
        for fp in sorted(p.iterdir()):
            if fp.suffix.lower() == ".pdf" and not fp.name.startswith(masked_filename("")):
                files.append(str(fp))
    else:
        files = [f for f in glob(input_dir) if f.lower().endswith(".pdf")]
    if not files:
        print("[red]No inputs found[/red]")
        raise SystemExit(1)
    cfg = RunConfig(policy_path=policy)
    pairs = run_batch(files, output_dir, cfg, workers=workers)
    print(f"[green]Completed {len(pairs)}/{len(files)} files[/green]")
    if len(pairs) < len(files):
        raise typer.Exit(code=1)


@app.command()
def api(
    host: Optional[str] = typer.Option(
        None, help="Host to bind (default from SALARYMASK_API_HOST)"
    ),
    port: Optional[int] = typer.Option(None, help="Port (default from SALARYMASK_API_PORT)"),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
):
    """Launch the HTTP service."""
    from .api import run

    run(host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
