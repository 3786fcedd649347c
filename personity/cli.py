"""Click CLI: create sessions, run turns, analyze and export conversations."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from personity.csv_export import generate_responses_csv
from personity.healthcheck import check_provider
from personity.mode_detector import detect_mode_by_keywords, detect_survey_mode
from personity.models import Session, SessionStatus, SurveyConfig, SurveyMode, SurveySettings
from personity.output import print_analysis, print_mode, print_turn
from personity.pipeline import InvalidMessageError, SessionNotActiveError, TurnPipeline
from personity.providers.base import AIProvider, ProviderError
from personity.providers.gemini import GeminiProvider
from personity.providers.openai_provider import AzureOpenAIProvider
from personity.response_analysis import analyze_conversation
from personity.session_store import load_session, new_session, save_session, session_path

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "azure": AzureOpenAIProvider,
    "gemini": GeminiProvider,
}

# Analyses below this score are left out of exports by default
EXPORT_MIN_QUALITY = 6


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    sys.exit(1)


def _build_provider(config: AppConfig, name: str) -> AIProvider:
    if name not in PROVIDER_CLASSES:
        _fail(f"Unknown provider '{name}'. Choose from: {', '.join(sorted(PROVIDER_CLASSES))}")
    if name not in config.models:
        _fail(f"Provider '{name}' is not configured in settings.yaml")
    if name not in config.available_providers:
        _fail(f"Provider '{name}' has no API key. Set {config.models[name].api_key_env} in .env.")
    try:
        return PROVIDER_CLASSES[name](config.models[name])
    except Exception as exc:
        _fail(f"Failed to instantiate provider '{name}': {exc}")


def _checked_provider(ctx: click.Context) -> AIProvider:
    """Provider for LLM-backed commands, pinged first unless --skip-health-check."""
    config: AppConfig = ctx.obj["config"]
    provider = _build_provider(config, ctx.obj["provider"] or config.default_provider)
    if ctx.obj["skip_health_check"]:
        return provider

    console.print(f"[bold]Checking {provider.name()}...[/bold]")
    ok, err = asyncio.run(check_provider(provider))
    if ok:
        console.print(f"  [green]OK  [/green] {provider.name()} ({provider.model_string()})")
        return provider

    short_err = err.splitlines()[0][:120] if err else "unknown error"
    console.print(f"  [red]FAIL[/red] {provider.name()}: {short_err}")
    if not click.confirm("Continue anyway?", default=False):
        sys.exit(1)
    return provider


def _resolve_session(config: AppConfig, value: str) -> Path:
    """Accept either a path to a session file or a bare token."""
    path = Path(value)
    if path.exists():
        return path
    path = session_path(config.sessions_dir, value)
    if not path.exists():
        _fail(f"Session not found: {value}")
    return path


def _load(path: Path) -> Session:
    try:
        return load_session(path)
    except (KeyError, ValueError) as exc:
        _fail(f"Malformed session file {path}: {exc}")


@click.group()
@click.option("--provider", default=None, help="LLM provider (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check before LLM-backed commands")
@click.pass_context
def main(ctx: click.Context, provider: str | None, verbose: bool, skip_health_check: bool) -> None:
    """Personity -- AI conversational survey engine.

    \b
    Examples:
      personity new "Understand pain points in lead management" -t "lead tracking" -t "CRM usage"
      personity turn 3f2a9c1b7d4e "We track leads in a spreadsheet and lose half of them"
      personity analyze 3f2a9c1b7d4e
      personity export sessions/*.md -o responses.csv
      personity detect-mode "Why are customers cancelling their subscription?"
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.obj = {"config": config, "provider": provider, "skip_health_check": skip_health_check}


@main.command()
@click.argument("objective")
@click.option("--topic", "-t", "topics", multiple=True, help="Topic to cover (repeatable)")
@click.option("--mode", type=click.Choice([m.value for m in SurveyMode]), default=None,
              help="Research mode (default: keyword detection)")
@click.option("--length", type=click.Choice(["quick", "standard", "deep"]), default="standard")
@click.option("--tone", type=click.Choice(["professional", "friendly", "casual"]), default="friendly")
@click.option("--max-questions", type=int, default=None,
              help="Stop after this many questions instead of when topics are covered")
@click.option("--context-file", type=click.Path(exists=True, path_type=Path), default=None,
              help="Markdown file with background for the interviewer")
@click.option("--token", default=None, help="Session token (default: random)")
@click.pass_context
def new(
    ctx: click.Context,
    objective: str,
    topics: tuple[str, ...],
    mode: str | None,
    length: str,
    tone: str,
    max_questions: int | None,
    context_file: Path | None,
    token: str | None,
) -> None:
    """Create a new session file for OBJECTIVE."""
    config: AppConfig = ctx.obj["config"]
    if mode is None:
        mode = detect_mode_by_keywords(objective).mode.value

    survey = SurveyConfig(
        objective=objective,
        topics=list(topics),
        mode=SurveyMode(mode),
        settings=SurveySettings(
            length=length,
            tone=tone,
            stop_condition="questions" if max_questions else "topics_covered",
            max_questions=max_questions,
        ),
        context=context_file.read_text(encoding="utf-8").strip() if context_file else "",
    )
    session = new_session(survey, token)
    path = save_session(session, session_path(config.sessions_dir, session.token))
    console.print(f"Created session [bold]{session.token}[/bold] ({mode})")
    console.print(f"[dim]Saved to: {path}[/dim]")


@main.command()
@click.argument("session")
@click.argument("message")
@click.pass_context
def turn(ctx: click.Context, session: str, message: str) -> None:
    """Send MESSAGE as the respondent's next answer in SESSION (path or token)."""
    config: AppConfig = ctx.obj["config"]
    path = _resolve_session(config, session)
    current = _load(path)
    provider = _checked_provider(ctx)

    pipeline = TurnPipeline(provider, config)
    try:
        result = asyncio.run(pipeline.process_turn(current, message))
    except (SessionNotActiveError, InvalidMessageError) as exc:
        _fail(str(exc))
    except ProviderError as exc:
        logger.error("Turn failed, session not saved: %s", exc)
        sys.exit(1)

    save_session(current, path)
    print_turn(result)
    console.print(f"\n[dim]Saved to: {path}[/dim]")


@main.command()
@click.argument("session")
@click.pass_context
def analyze(ctx: click.Context, session: str) -> None:
    """Analyze SESSION (path or token) and store the result in the file."""
    config: AppConfig = ctx.obj["config"]
    path = _resolve_session(config, session)
    current = _load(path)
    if not current.exchanges:
        _fail(f"Session {current.token} has no conversation to analyze")

    provider = _checked_provider(ctx)
    current.analysis = asyncio.run(
        analyze_conversation(provider, current.exchanges, current.survey.objective, config.prompts, config.generation)
    )
    save_session(current, path)
    print_analysis(current.analysis)
    console.print(f"\n[dim]Saved to: {path}[/dim]")


@main.command()
@click.argument("sessions", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--output", "-o", "output_path", required=True, type=click.Path(path_type=Path),
              help="CSV file to write")
@click.option("--mode", type=click.Choice([m.value for m in SurveyMode]), default=None,
              help="Survey mode for column labels (default: from the first session)")
@click.option("--min-quality", type=int, default=EXPORT_MIN_QUALITY, show_default=True,
              help="Skip analyses scoring below this")
@click.option("--include-flagged", is_flag=True, default=False, help="Include flagged sessions")
def export(
    sessions: tuple[Path, ...],
    output_path: Path,
    mode: str | None,
    min_quality: int,
    include_flagged: bool,
) -> None:
    """Export stored analyses of completed SESSIONS to CSV."""
    loaded = [_load(p) for p in sessions]
    selected = [
        s for s in loaded
        if s.analysis is not None
        and s.status == SessionStatus.COMPLETED
        and s.analysis.quality_score >= min_quality
        and (include_flagged or not s.state.is_flagged)
    ]
    skipped = len(loaded) - len(selected)
    if skipped:
        logger.info("Skipped %d session(s): not completed, not analyzed, flagged or low quality", skipped)

    survey_mode = SurveyMode(mode) if mode else (loaded[0].survey.mode if loaded else SurveyMode.EXPLORATORY_GENERAL)
    csv_text = generate_responses_csv([s.analysis for s in selected], survey_mode)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(csv_text, encoding="utf-8")
    console.print(f"Exported {len(selected)} response(s) to {output_path}")


@main.command("detect-mode")
@click.argument("objective")
@click.option("--offline", is_flag=True, default=False, help="Keyword detection only, no LLM call")
@click.pass_context
def detect_mode(ctx: click.Context, objective: str, offline: bool) -> None:
    """Detect the research mode for OBJECTIVE."""
    config: AppConfig = ctx.obj["config"]
    provider = None if offline else _checked_provider(ctx)
    print_mode(asyncio.run(detect_survey_mode(provider, objective, config.prompts)))


if __name__ == "__main__":
    main()
