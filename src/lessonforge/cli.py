"""LessonForge CLI - Main entry point.

Commands:
- init: Write an example .lessonforge/config.yaml
- check: Run the safety linter on a source file
- compile: Compile a source file into a browser module
- generate: Create a lesson and generate it now
- work: Process queued lessons
- list / show: Inspect stored lessons
- serve: Run the HTTP API
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer

from lessonforge import __version__, safety
from lessonforge.compiler import CompileService
from lessonforge.config import (
    CONFIG_DIR,
    CONFIG_FILE,
    load_config,
    merge_cli_overrides,
    save_example_config,
)
from lessonforge.display import (
    console,
    print_error,
    print_info,
    print_issues,
    print_lesson_details,
    print_lesson_list,
    print_report,
    print_success,
)
from lessonforge.errors import CompileError, CompileSyntaxError, LessonForgeError, RepairExhausted
from lessonforge.lessons import LessonService
from lessonforge.log import configure_logging
from lessonforge.orchestrator import GenerationOrchestrator
from lessonforge.persistence import FileSystemLessonRepository
from lessonforge.repair import RepairEngine

app = typer.Typer(
    help="LessonForge - generate, vet, compile and sandbox interactive lessons.",
    no_args_is_help=True,
)

DEFAULT_DATA_DIR = Path(CONFIG_DIR) / "lessons"

DataDirOption = Annotated[
    Path, typer.Option("--data-dir", help="Lesson repository directory")
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"lessonforge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str, typer.Option("--log-level", help="Logging level (debug, info, warning, error)")
    ] = "warning",
) -> None:
    """LessonForge - generate, vet, compile and sandbox interactive lessons."""
    configure_logging(log_level)


@app.command()
def init() -> None:
    """Write an example configuration to .lessonforge/config.yaml."""
    config_path = Path.cwd() / CONFIG_DIR / CONFIG_FILE
    if config_path.exists():
        print_info(f"Config already exists: {config_path}")
        return
    save_example_config(config_path)
    print_success(f"Wrote {config_path}")


@app.command()
def check(
    source_file: Annotated[
        Path, typer.Argument(help="TSX source to lint", exists=True, dir_okay=False)
    ],
) -> None:
    """Run the safety linter on a source file.

    Exits with status 1 when any rule is violated.
    """
    issues = safety.check(source_file.read_text(encoding="utf-8"))
    if issues:
        print_issues(issues)
        raise typer.Exit(1)
    print_success(f"{source_file} passed all safety rules")


@app.command(name="compile")
def compile_command(
    source_file: Annotated[
        Path, typer.Argument(help="TSX source to compile", exists=True, dir_okay=False)
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the module here instead of stdout"),
    ] = None,
    repair: Annotated[
        bool, typer.Option("--repair", help="Apply deterministic repairs on syntax errors")
    ] = False,
) -> None:
    """Lint and compile a source file into a self-contained module.

    Examples:
        lessonforge compile lesson.tsx -o lesson.js
        lessonforge compile lesson.tsx --repair
    """
    source = source_file.read_text(encoding="utf-8")
    service = CompileService()

    try:
        issues = safety.check(source)
        if issues:
            print_issues(issues)
            raise typer.Exit(1)
        try:
            artifact = service.compile(source)
        except CompileSyntaxError as e:
            if not repair:
                raise
            patch = RepairEngine().propose(source, e.errors)
            if patch is None:
                raise RepairExhausted(e.errors) from e
            print_info(f"Applied repairs: {', '.join(patch.rules)}")
            issues = safety.check(patch.source)
            if issues:
                print_issues(issues)
                raise typer.Exit(1)
            artifact = service.compile(patch.source)
    except CompileError as e:
        print_error(f"Compilation failed ({e.stage})")
        for message in e.errors:
            console.print(f"  • {message}")
        raise typer.Exit(1)
    except RepairExhausted as e:
        print_error(e.message)
        for message in e.errors:
            console.print(f"  • {message}")
        raise typer.Exit(1)

    if output is None:
        typer.echo(artifact.module_text, nl=False)
        return
    output.write_text(artifact.module_text, encoding="utf-8")
    print_success(f"Wrote {output} (sha256 {artifact.source_hash[:12]})")


def _orchestrator(
    data_dir: Path,
    max_attempts: int | None = None,
    max_minutes: float | None = None,
    model: str | None = None,
) -> GenerationOrchestrator:
    from lessonforge.generation.anthropic_generator import AnthropicGenerator

    config = merge_cli_overrides(
        load_config(), max_attempts=max_attempts, max_minutes=max_minutes, model=model
    )
    repository = FileSystemLessonRepository(data_dir)
    return GenerationOrchestrator(repository, AnthropicGenerator(config.model), config)


@app.command()
def generate(
    topic: Annotated[str, typer.Argument(help="What the lesson should teach")],
    max_attempts: Annotated[
        Optional[int], typer.Option("--max-attempts", help="Override the attempt budget")
    ] = None,
    max_minutes: Annotated[
        Optional[float], typer.Option("--max-minutes", help="Override the wall-clock ceiling")
    ] = None,
    model: Annotated[Optional[str], typer.Option("--model", help="Override the model")] = None,
    data_dir: DataDirOption = DEFAULT_DATA_DIR,
) -> None:
    """Create a lesson and generate it immediately."""

    async def run():
        orchestrator = _orchestrator(data_dir, max_attempts, max_minutes, model)
        lesson = await LessonService(orchestrator.repository).create_lesson(topic)
        print_info(f"Created lesson {lesson.id}: {lesson.title}")
        return await orchestrator.kickoff(lesson.id)

    try:
        report = asyncio.run(run())
    except LessonForgeError as e:
        print_error(e.message)
        raise typer.Exit(1)

    print_report(report)
    if not report.success:
        raise typer.Exit(1)


@app.command()
def work(
    once: Annotated[bool, typer.Option("--once", help="Process a single queued lesson")] = False,
    data_dir: DataDirOption = DEFAULT_DATA_DIR,
) -> None:
    """Generate queued lessons until the queue is empty."""

    async def run():
        orchestrator = _orchestrator(data_dir)
        return await orchestrator.process_queue(max_lessons=1 if once else None)

    try:
        reports = asyncio.run(run())
    except LessonForgeError as e:
        print_error(e.message)
        raise typer.Exit(1)

    if not reports:
        print_info("No queued lessons")
        return
    for report in reports:
        print_report(report)


@app.command(name="list")
def list_command(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum lessons to show")] = 20,
    data_dir: DataDirOption = DEFAULT_DATA_DIR,
) -> None:
    """List stored lessons, newest first."""
    service = LessonService(FileSystemLessonRepository(data_dir))
    print_lesson_list(asyncio.run(service.list_lessons(limit)))


@app.command()
def show(
    lesson_id: Annotated[str, typer.Argument(help="Lesson ID")],
    data_dir: DataDirOption = DEFAULT_DATA_DIR,
) -> None:
    """Show a lesson with its latest content version and attempt traces."""
    service = LessonService(FileSystemLessonRepository(data_dir))
    try:
        details = asyncio.run(service.get_details(lesson_id))
    except LessonForgeError as e:
        print_error(e.message)
        raise typer.Exit(1)
    print_lesson_details(details)


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port")] = None,
) -> None:
    """Run the HTTP API with uvicorn."""
    from lessonforge.server import ServerConfig, create_app, run_server

    config = ServerConfig()
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    configure_logging(config.log_level)
    run_server(create_app(config), config)


if __name__ == "__main__":
    app()
