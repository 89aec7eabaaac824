"""
Artifact Assembly CLI - Command-line interface.

Build archives from artifacts and inspect jar sanitization from the terminal.
"""

import logging
import shutil
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from artifact_assembly.archive.cleanup import get_cleanup_registry
from artifact_assembly.archive.sanitizer import JarSanitizer
from artifact_assembly.archive.writer import ZipArchiver
from artifact_assembly.config import AssemblerConfig
from artifact_assembly.core.exceptions import AssemblyError
from artifact_assembly.core.models import PlacementSpec, artifact_from_path
from artifact_assembly.task.add_artifact import AddArtifactTask

app = typer.Typer(
    name="artifact-assembly",
    help="Artifact Assembly - place build artifacts into assembly archives",
    no_args_is_help=True,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command()
def add(
    archive: Path = typer.Argument(..., help="Archive to create"),
    artifacts: List[Path] = typer.Argument(..., help="Artifact files or directories"),
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", "-d", help="Output directory template"
    ),
    mapping: Optional[str] = typer.Option(
        None, "--mapping", "-m", help="Output file name mapping template"
    ),
    unpack: bool = typer.Option(False, "--unpack", "-u", help="Expand artifact contents"),
    include: Optional[List[str]] = typer.Option(
        None, "--include", "-i", help="Include pattern (repeatable)"
    ),
    exclude: Optional[List[str]] = typer.Option(
        None, "--exclude", "-e", help="Exclude pattern (repeatable)"
    ),
    no_default_excludes: bool = typer.Option(
        False, "--no-default-excludes", help="Keep VCS metadata when unpacking"
    ),
    file_mode: Optional[str] = typer.Option(None, "--file-mode", help="Octal file mode"),
    dir_mode: Optional[str] = typer.Option(None, "--dir-mode", help="Octal directory mode"),
    final_name: Optional[str] = typer.Option(
        None, "--final-name", "-n", help="Build final name (default: archive name)"
    ),
    temp_dir: Optional[Path] = typer.Option(
        None, "--temp-dir", help="Directory for relocated artifacts"
    ),
    group_id: str = typer.Option("local", "--group-id", "-g", help="Group id for artifacts"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Add artifacts to a zip/jar archive."""
    _configure_logging(verbose)

    try:
        placement = PlacementSpec(
            output_directory=output_dir,
            output_file_name_mapping=mapping,
            unpack=unpack,
            includes=include or [],
            excludes=exclude or None,
            use_default_excludes=not no_default_excludes,
            file_mode=file_mode,
            directory_mode=dir_mode,
        )
        config = AssemblerConfig.from_env(final_name=final_name or archive.stem)
    except ValidationError as e:
        console.print(f"[red]Invalid options: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(2)
    except AssemblyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    if temp_dir is not None:
        config = config.model_copy(update={"temporary_root_directory": temp_dir})

    # Options given on the command line win over ASSEMBLY_OUTPUT_DIR / ASSEMBLY_FILE_NAME_MAPPING
    placement = placement.with_defaults(
        output_directory=config.default_output_directory,
        file_name_mapping=config.default_file_name_mapping,
    )

    missing = [p for p in artifacts if not p.exists()]
    if missing:
        console.print(f"[red]Path does not exist: {missing[0]}[/red]")
        raise typer.Exit(1)

    archiver = ZipArchiver(archive)
    table = Table(title=f"Artifacts ({len(artifacts)})")
    table.add_column("Artifact", style="cyan")
    table.add_column("Source")
    table.add_column("Placement", style="magenta")

    try:
        for path in artifacts:
            artifact = artifact_from_path(path, group_id=group_id)
            AddArtifactTask(artifact, placement).execute(archiver, config)
            table.add_row(artifact.id, str(path), "unpacked" if unpack else "file")
        archiver.create_archive()
    except AssemblyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    finally:
        get_cleanup_registry().flush()

    console.print(table)
    console.print(Panel.fit(f"[bold green]Created[/bold green] {archive}"))


@app.command()
def sanitize(
    jar: Path = typer.Argument(..., help="Jar to sanitize"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the sanitized jar here"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Show (and optionally write) the members sanitization removes from a jar."""
    _configure_logging(verbose)

    if not jar.exists():
        console.print(f"[red]Path does not exist: {jar}[/red]")
        raise typer.Exit(1)

    sanitizer = JarSanitizer()
    try:
        skipped = sanitizer.plan(jar)
    except AssemblyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not skipped:
        console.print(f"[green]Nothing to remove from {jar.name}[/green]")
    else:
        table = Table(title=f"Removed Members ({len(skipped)})")
        table.add_column("Member", style="cyan")
        table.add_column("Rule", style="magenta")
        for name, rule in skipped:
            table.add_row(name, rule.name)
        console.print(table)

    if output is None:
        return

    try:
        result = sanitizer.sanitize(jar)
        output.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(result.file, output)
    except (AssemblyError, OSError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    finally:
        get_cleanup_registry().flush()

    console.print(f"Wrote {output}")


@app.command()
def version():
    """Show Artifact Assembly version."""
    from artifact_assembly import __version__

    console.print(f"Artifact Assembly v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
