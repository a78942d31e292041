"""xunused CLI - find C/C++ functions that are defined but never used anywhere in a project."""
from pathlib import Path
import time
import typer
from typing import List, Optional
from rich.table import Table
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TaskProgressColumn,
    TimeElapsedColumn
)
from rich.markup import escape

from xunused.analyzer.compile_db import CompilationDatabase
from xunused.analyzer.executor import AllTUsExecutor
from xunused.config import __version__, get_config
from xunused.engine.errors import CompilationDatabaseError, TranslationUnitError
from xunused.engine.reporter import Reporter
from xunused.engine.store import GlobalAggregationStore
from xunused.utils.logger import set_debug
from xunused.utils.safe_console import SafeConsole
from xunused.utils.statistics import build_statistics_table

app = typer.Typer(
    name="xunused",
    help="Find unused functions and methods across all translation units of a C/C++ project",
    add_completion=False
)
# Status output and diagnostics go to stderr; stdout stays clean for tables
console = SafeConsole(stderr=True)
out_console = SafeConsole()


def load_database(project_path: Path, build_path: Optional[Path], filter_regex: Optional[str],
                  extra_args: Optional[List[str]]) -> CompilationDatabase:
    """Find and load the compilation database, or scan the project for sources.

    Args:
        project_path: Project root
        build_path: Directory holding compile_commands.json, or the file itself
        filter_regex: Only keep TUs whose path matches
        extra_args: Arguments appended to every compile command

    Returns:
        CompilationDatabase

    Raises:
        CompilationDatabaseError: If an explicit or discovered database is unusable
    """
    database_path = CompilationDatabase.find(project_path, build_path)
    if database_path is not None:
        database = CompilationDatabase.load(database_path)
    elif build_path is not None:
        raise CompilationDatabaseError(f"no compile_commands.json found in {build_path}")
    else:
        database = CompilationDatabase.discover(project_path, get_config().excluded_dirs)

    return database.with_extra_args(extra_args).filtered(filter_regex)


def analyze_project(database: CompilationDatabase, jobs: int, show_progress: bool = True):
    """Run every TU through the engine and report on the merged store.

    Returns:
        (findings, per-TU errors, reporter)
    """
    store = GlobalAggregationStore()
    extra_system_dirs = get_config().system_dirs

    if show_progress:
        progress_ctx = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True
        )
    else:
        from contextlib import nullcontext
        progress_ctx = nullcontext()

    with progress_ctx as progress:
        on_done = None
        if show_progress:
            task = progress.add_task("[cyan]Analyzing translation units...", total=len(database))

            def on_done(command):
                progress.update(task, advance=1)

        executor = AllTUsExecutor(database, store, jobs=jobs,
                                  extra_system_dirs=extra_system_dirs, on_done=on_done)
        errors = executor.execute()

    reporter = Reporter(store)
    findings = reporter.collect()
    return findings, errors, reporter


def print_errors(errors: List[TranslationUnitError]):
    for error in errors:
        console.diagnostic(f"error: {error.file}: {error.message}")


@app.command()
def audit(
    project_path: str = typer.Argument(".", help="Project root path to analyze"),
    build_path: Optional[Path] = typer.Option(None, "--build-path", "-p", help="Build directory containing compile_commands.json"),
    filter_regex: Optional[str] = typer.Option(None, "--filter", help="Only analyze files whose absolute path matches this regex"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Worker threads (default: XUNUSED_JOBS or CPU count)"),
    extra_args: Optional[List[str]] = typer.Option(None, "--extra-arg", help="Additional argument to append to every compile command"),
    print_stats: bool = typer.Option(False, "--print-stats", help="Print statistics after the run"),
    debug: bool = typer.Option(False, "--debug", help="Trace definitions, uses and symbols to stderr"),
    no_progress: bool = typer.Option(False, "--no-progress", help="Disable the progress bar"),
):
    """Report every function that is defined in the project but never used."""
    config = get_config()
    set_debug(debug or config.debug)

    project_path = Path(project_path).resolve()
    if not project_path.exists():
        console.print(f"[bold red]Error:[/bold red] Project path does not exist: {escape(str(project_path))}")
        raise typer.Exit(1)

    try:
        database = load_database(project_path, build_path, filter_regex, extra_args)
    except CompilationDatabaseError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    if not len(database):
        console.print("[yellow]No translation units to analyze.[/yellow]")
        raise typer.Exit(0)

    start_time = time.time()
    findings, errors, reporter = analyze_project(
        database, jobs or config.jobs, show_progress=not (no_progress or debug)
    )
    elapsed = time.time() - start_time

    reporter.emit(findings, console)
    print_errors(errors)

    if print_stats:
        out_console.print(build_statistics_table())
        out_console.print(f"[dim]{len(database)} translation units in {elapsed:.2f}s[/dim]")

    if errors:
        raise typer.Exit(1)


@app.command()
def tus(
    project_path: str = typer.Argument(".", help="Project root path"),
    build_path: Optional[Path] = typer.Option(None, "--build-path", "-p", help="Build directory containing compile_commands.json"),
    filter_regex: Optional[str] = typer.Option(None, "--filter", help="Only list files whose absolute path matches this regex"),
    extra_args: Optional[List[str]] = typer.Option(None, "--extra-arg", help="Additional argument to append to every compile command"),
):
    """List the translation units an audit would analyze."""
    project_path = Path(project_path).resolve()
    try:
        database = load_database(project_path, build_path, filter_regex, extra_args)
    except CompilationDatabaseError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title=f"Translation Units ({escape(str(database.source))})", show_header=True, header_style="bold cyan")
    table.add_column("File", style="cyan", no_wrap=False)
    table.add_column("Language", style="yellow")
    table.add_column("Include Dirs", style="magenta", no_wrap=False)

    for command in database.commands:
        try:
            display_path = Path(command.file).relative_to(project_path)
        except ValueError:
            display_path = command.file
        include_dirs = command.quote_dirs + command.include_dirs + command.system_dirs
        table.add_row(escape(str(display_path)), command.language, escape(" ".join(include_dirs)))

    out_console.print(table)


def version_callback(value: bool):
    if value:
        out_console.print(f"xunused {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", callback=version_callback, is_eager=True, help="Show version and exit"),
):
    """xunused - cross translation unit detection of unused C/C++ functions."""
    pass


if __name__ == "__main__":
    app()
