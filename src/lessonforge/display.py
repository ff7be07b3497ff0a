"""Rich console output for the CLI."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lessonforge.models import GenerationReport, Lesson, LessonDetails, SafetyIssue

console = Console()


def print_success(message: str) -> None:
    console.print(f"[bold green]✓[/] {message}")


def print_error(message: str) -> None:
    console.print(f"[bold red]✗[/] {message}")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]⚠[/] {message}")


def print_info(message: str) -> None:
    console.print(f"[bold blue]ℹ[/] {message}")


def print_issues(issues: list[SafetyIssue]) -> None:
    """Print a table of safety issues."""
    table = Table(title="Safety issues")
    table.add_column("Rule", style="red")
    table.add_column("Line", justify="right")
    table.add_column("Message")
    table.add_column("Snippet", style="dim")
    for issue in issues:
        table.add_row(
            issue.rule.value,
            str(issue.line) if issue.line is not None else "-",
            issue.message,
            issue.snippet or "",
        )
    console.print(table)


def print_report(report: GenerationReport) -> None:
    """Print the outcome of a generation run."""
    if report.skipped:
        print_warning(f"Skipped lesson {report.lesson_id}: {report.reason}")
        return

    body = (
        f"[bold]Lesson:[/] {report.lesson_id}\n"
        f"[bold]Status:[/] {report.status.value}\n"
        f"[bold]Attempts:[/] {report.attempt_count}"
    )
    if report.success:
        console.print(
            Panel(
                f"[bold green]Lesson generated![/]\n\n{body}\n[bold]Version:[/] {report.version}",
                title="[bold green]✓ Success[/]",
                border_style="green",
            )
        )
        return

    if report.reason:
        body += f"\n[bold]Last error:[/] {report.reason}"
    console.print(
        Panel(
            f"[bold red]Generation failed![/]\n\n{body}",
            title="[bold red]✗ Failed[/]",
            border_style="red",
        )
    )


def print_lesson_list(lessons: list[Lesson]) -> None:
    if not lessons:
        print_info("No lessons yet. Create one with [cyan]lessonforge generate <topic>[/]")
        return

    table = Table(title="Lessons")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Created")

    status_colors = {"generated": "green", "failed": "red", "generating": "yellow"}
    for lesson in lessons:
        color = status_colors.get(lesson.status.value, "dim")
        table.add_row(
            lesson.id,
            lesson.title,
            f"[{color}]{lesson.status.value}[/]",
            lesson.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def print_lesson_details(details: LessonDetails) -> None:
    lesson = details.lesson
    version = details.content.version if details.content else "-"
    console.print(
        Panel(
            f"[bold]ID:[/] {lesson.id}\n"
            f"[bold]Topic:[/] {lesson.topic}\n"
            f"[bold]Status:[/] {lesson.status.value}\n"
            f"[bold]Content version:[/] {version}",
            title=f"[bold]{lesson.title}[/]",
        )
    )

    if not details.traces:
        return
    table = Table(title="Attempts")
    table.add_column("#", justify="right")
    table.add_column("Model")
    table.add_column("Validation")
    table.add_column("Compilation")
    table.add_column("Error", style="dim")
    for trace in details.traces:
        passed = trace.validation.get("passed")
        compiled = trace.compilation.get("success")
        table.add_row(
            str(trace.attempt_number),
            trace.model or "-",
            "[green]pass[/]" if passed else "[red]fail[/]",
            "[green]ok[/]" if compiled else "[red]fail[/]",
            (trace.error or "")[:80],
        )
    console.print(table)
