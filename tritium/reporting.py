"""Terminal output for the start and end of a run."""

from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import IGNORED_DIRS


console = Console()

STATUS_STYLES = {"PASS": "green", "WARN": "yellow", "FAIL": "red"}


@dataclass
class RunSummary:
    """What the operator sees when a run ends."""

    project_name: str
    output_dir: Path
    cycles: int
    elapsed_seconds: float
    final_health: str
    log_path: Path | None = None
    degraded_cycles: int = 0
    files: list[tuple[str, int]] = field(default_factory=list)


def list_project_files(output_dir: Path) -> list[tuple[str, int]]:
    """Relative path and size in bytes of every project file."""
    if not output_dir.is_dir():
        return []
    files = []
    for path in sorted(output_dir.rglob("*")):
        rel = path.relative_to(output_dir)
        if any(part in IGNORED_DIRS - {"screenshots"} for part in rel.parts[:-1]):
            continue
        if path.is_file():
            files.append((str(rel), path.stat().st_size))
    return files


def display_run_header(
    project_name: str,
    description: str,
    output_dir: Path,
    hours: float,
    coder_model: str,
    vision_model: str,
    vision_enabled: bool,
    backend: str,
) -> None:
    """Show the run configuration before the loop starts."""
    console.print()
    console.print(
        Panel(
            f"[bold cyan]Tritium Coder - Build: {project_name}[/bold cyan]",
            expand=False,
            border_style="cyan",
        )
    )
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Setting", style="dim")
    table.add_column("Value", style="cyan")
    table.add_row("Description", description)
    table.add_row("Output", str(output_dir))
    table.add_row("Duration", f"{hours:g} hours")
    table.add_row("Agent", backend)
    table.add_row("Coder", coder_model)
    table.add_row("Vision", f"{vision_model} ({'enabled' if vision_enabled else 'disabled'})")
    console.print(table)
    console.print()


def display_summary(summary: RunSummary) -> None:
    """Final report: cycles, duration, health, files and how to view them."""
    style = STATUS_STYLES.get(summary.final_health, "white")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Cycles", str(summary.cycles))
    table.add_row("Duration", f"{int(summary.elapsed_seconds // 60)} minutes")
    table.add_row("Final health", f"[{style}]{summary.final_health}[/{style}]")
    if summary.degraded_cycles:
        table.add_row("Degraded cycles", str(summary.degraded_cycles))
    table.add_row("Output", str(summary.output_dir))

    console.print()
    console.print(
        Panel(
            table,
            title=f"[bold]Iteration complete: {summary.project_name}[/bold]",
            expand=False,
            border_style=style,
        )
    )

    if summary.files:
        files = Table(title="Files", show_header=True, header_style="bold")
        files.add_column("Path")
        files.add_column("Bytes", justify="right")
        for rel, size in summary.files:
            files.add_row(rel, f"{size:,}")
        console.print(files)

    console.print()
    console.print(f"  View: [cyan]python3 -m http.server 8080 -d {summary.output_dir}[/cyan]")
    if summary.log_path:
        console.print(f"  Logs: [dim]{summary.log_path}[/dim]")
    console.print()
