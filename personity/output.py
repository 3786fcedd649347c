"""Rich console rendering for turns, analyses and detected modes."""

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from personity.models import ModeDetectionResult, ResponseAnalysis, TurnOutcome, TurnResult

console = Console(legacy_windows=False)

_OUTCOME_STYLES = {
    TurnOutcome.REPLY: "cyan",
    TurnOutcome.FLAGGED: "red",
    TurnOutcome.CRISIS: "bold red",
    TurnOutcome.SENSITIVE: "magenta",
    TurnOutcome.REDIRECT: "yellow",
    TurnOutcome.OFF_TOPIC: "yellow",
    TurnOutcome.RE_ENGAGEMENT: "yellow",
}


def print_turn(result: TurnResult) -> None:
    style = _OUTCOME_STYLES.get(result.outcome, "cyan")
    subtitle = f"progress {result.progress:.0f}%"
    if result.quality is not None:
        subtitle += f" | quality {result.quality.score}/10"
    console.print(
        Panel(
            result.ai_response,
            title=f"[bold]{result.outcome.value}[/bold]",
            subtitle=subtitle,
            border_style=style,
        )
    )
    if result.follow_up is not None and result.follow_up.should_follow_up:
        console.print(Text(f"Follow-up cue: {result.follow_up.reason}", style="dim"))
    if result.should_end:
        console.print(Rule(f"[bold green]Conversation ended ({result.reason})[/bold green]"))
        if result.summary:
            console.print(Markdown(result.summary))


def print_analysis(analysis: ResponseAnalysis) -> None:
    console.print(Rule("[bold green]Conversation Analysis[/bold green]"))
    console.print(
        Text(f"Sentiment: {analysis.sentiment} | Quality: {analysis.quality_score}/10", style="dim")
    )
    console.print(Markdown(analysis.summary))

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Themes", ", ".join(analysis.key_themes) or "-")
    table.add_row("Pain points", "; ".join(analysis.pain_points) or "-")
    table.add_row("Opportunities", "; ".join(analysis.opportunities) or "-")
    console.print(table)

    for quote in analysis.top_quotes:
        console.print(Panel(f'"{quote.quote}"', subtitle=quote.context, border_style="dim"))


def print_mode(result: ModeDetectionResult) -> None:
    console.print(f"[bold cyan]{result.mode.value}[/bold cyan] (confidence: {result.confidence})")
    console.print(Text(result.reasoning, style="dim"))
    for question in result.suggested_context_questions:
        console.print(f"  - {question}")
