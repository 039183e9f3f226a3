"""Tutor CLI — operator tools for the tutoring response pipeline."""

import asyncio
import logging
import uuid

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tutor import __version__
from tutor.models.conversation import AccessibilityNeed, AgeGroup, LearningStyle

console = Console()

AGE_CHOICES = [g.value for g in AgeGroup]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default="WARNING",
    envvar="TUTOR_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity",
)
def main(log_level: str):
    """Tutor — safe, age-appropriate replies for child tutoring sessions.

    Inspect each pipeline stage on its own (filter, sanitize, tokens,
    complexity, prompt, cost) or run the whole pipeline with 'ask'.
    """
    _configure_logging(log_level)


# ── Filter ───────────────────────────────────────────────────────────


@main.command("filter")
@click.argument("text")
@click.option("--age", "age_group", default=AgeGroup.MIDDLE.value, type=click.Choice(AGE_CHOICES))
def filter_cmd(text: str, age_group: str):
    """Run the content filter over TEXT."""
    from tutor.moderation.content_filter import ContentFilter

    result = ContentFilter().filter(text, AgeGroup(age_group))

    status = "[green]appropriate[/]" if result.is_appropriate else "[red]blocked[/]"
    console.print(f"\n[bold blue]Tutor[/] — Content filter ({age_group}): {status}")
    console.print(f"  Confidence: {result.confidence:.2f}")
    console.print(Panel(escape(result.filtered_content), title="Filtered content"))

    if result.violations:
        table = Table(title=f"Violations ({len(result.violations)})")
        table.add_column("Kind", style="cyan")
        table.add_column("Severity")
        table.add_column("Span")
        table.add_column("Description")
        for v in result.violations:
            table.add_row(
                v.kind.value, v.severity.value, escape(v.span[:40]), escape(v.description[:60])
            )
        console.print(table)

    for warning in result.warnings:
        console.print(f"  [yellow]![/] {escape(warning)}")


# ── Sanitize ─────────────────────────────────────────────────────────


@main.command()
@click.argument("text")
@click.option("--age", "age_group", default=AgeGroup.MIDDLE.value, type=click.Choice(AGE_CHOICES))
@click.option("--strict", is_flag=True, help="Warn on any complex word")
@click.option("--block-sensitive", is_flag=True, help="Parental control: strip all links")
def sanitize(text: str, age_group: str, strict: bool, block_sensitive: bool):
    """Run the response sanitizer over TEXT."""
    from tutor.moderation.sanitizer import ParentalControls, ResponseSanitizer, SafetyCheckConfig

    config = SafetyCheckConfig(
        age_group=AgeGroup(age_group),
        strict_mode=strict,
        parental_controls=ParentalControls(block_sensitive_topics=block_sensitive),
    )
    result = ResponseSanitizer().sanitize(text, config)

    status = "[red]blocked[/]" if result.blocked else "[green]passed[/]"
    console.print(f"\n[bold blue]Tutor[/] — Sanitizer ({age_group}): {status}")
    console.print(f"  Safety score: {result.safety_score:.2f}")
    console.print(Panel(escape(result.sanitized_content), title="Sanitized content"))

    if result.modifications:
        table = Table(title=f"Modifications ({len(result.modifications)})")
        table.add_column("Type", style="cyan")
        table.add_column("Category")
        table.add_column("Original")
        table.add_column("Reason")
        for m in result.modifications:
            table.add_row(
                m.type.value, m.category.value, escape(m.original[:40]), escape(m.reason[:60])
            )
        console.print(table)

    for warning in result.warnings:
        console.print(f"  [yellow]![/] {escape(warning)}")


# ── Tokens ───────────────────────────────────────────────────────────


@main.command()
@click.argument("text")
def tokens(text: str):
    """Estimate the token count of TEXT."""
    from tutor.llm.optimizer import TokenEstimator

    console.print(f"{TokenEstimator().count(text)} tokens (estimated)")


# ── Complexity ───────────────────────────────────────────────────────


@main.command()
@click.argument("context_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--performance", is_flag=True, help="Prefer capability over cost")
def complexity(context_file: str, performance: bool):
    """Score a conversation and recommend a model.

    CONTEXT_FILE is YAML with child_id, session_id, age_group, subject,
    topic and a history list of {role, content} messages.
    """
    from tutor.llm.optimizer import ComplexityAnalyzer, ModelSelector

    context = _load_context(context_file)
    if context is None:
        return
    result = ComplexityAnalyzer().analyze(context.history, context.subject, context.age_group)
    model = ModelSelector().recommend(result, prioritize_cost=not performance)

    table = Table(title=f"Complexity: {result.level.value} ({result.score:.1f})")
    table.add_column("Factor", style="cyan")
    table.add_column("Score", justify="right", style="green")
    table.add_row("vocabulary", f"{result.factors.vocabulary:.1f}")
    table.add_row("conceptual", f"{result.factors.conceptual:.1f}")
    table.add_row("context length", f"{result.factors.context_length:.1f}")
    table.add_row("interaction depth", f"{result.factors.interaction_depth:.1f}")
    console.print(table)
    console.print(f"  Recommended model: [bold]{model.value}[/]")


def _load_context(path: str):
    from tutor.models.conversation import ConversationContext

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return ConversationContext.from_dict(data)
    except (yaml.YAMLError, KeyError, ValueError) as e:
        console.print(f"  [red]Invalid context file:[/] {e}")
        return None


# ── Prompt ───────────────────────────────────────────────────────────


@main.command()
@click.option("--age", "age_group", default=AgeGroup.MIDDLE.value, type=click.Choice(AGE_CHOICES))
@click.option("--subject", required=True)
@click.option("--topic", required=True)
@click.option("--style", default=None, type=click.Choice([s.value for s in LearningStyle]))
@click.option(
    "--need", "needs", multiple=True, type=click.Choice([n.value for n in AccessibilityNeed])
)
@click.option("--interest", "interests", multiple=True)
def prompt(age_group, subject, topic, style, needs, interests):
    """Show the personalized system prompt for a student profile."""
    from tutor.llm.prompts import PromptComposer, PromptPersonalization

    config = PromptComposer().compose(
        PromptPersonalization(
            age_group=AgeGroup(age_group),
            subject=subject,
            topic=topic,
            learning_style=LearningStyle(style) if style else None,
            accessibility_needs=frozenset(AccessibilityNeed(n) for n in needs),
            interests=tuple(interests),
        )
    )
    console.print(Panel(escape(config.system_prompt), title="System prompt"))
    console.print(
        f"  temperature={config.temperature}  max_tokens={config.max_tokens}  "
        f"complexity={config.complexity}  safety={config.safety_level}"
    )


# ── Cost ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("prompt_tokens", type=int)
@click.argument("completion_tokens", type=int)
@click.option("--model", default=None, help="Model id (default: all tiers)")
def cost(prompt_tokens: int, completion_tokens: int, model: str | None):
    """Estimate the USD cost of a call."""
    from tutor.llm.optimizer import ModelType, calculate_cost

    models = [model] if model else [m.value for m in ModelType]
    table = Table(title=f"Cost for {prompt_tokens} in / {completion_tokens} out")
    table.add_column("Model", style="cyan")
    table.add_column("USD", justify="right", style="green")
    for m in models:
        table.add_row(m, f"{calculate_cost(prompt_tokens, completion_tokens, m):.6f}")
    console.print(table)


# ── Ask ──────────────────────────────────────────────────────────────


@main.command()
@click.argument("message")
@click.option("--age", "age_group", default=AgeGroup.MIDDLE.value, type=click.Choice(AGE_CHOICES))
@click.option("--subject", default="science")
@click.option("--topic", default="general")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False))
def ask(message: str, age_group: str, subject: str, topic: str, config_path: str | None):
    """Run MESSAGE through the full pipeline against the live provider."""
    from tutor.config import load_settings
    from tutor.errors import ConfigError, PipelineError
    from tutor.models.conversation import ConversationContext
    from tutor.pipeline.orchestrator import ResponseOrchestrator
    from tutor.pipeline.store import InMemoryConversationStore

    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        console.print(f"  [red]Configuration error:[/] {e}")
        raise SystemExit(1)

    orchestrator = ResponseOrchestrator.from_settings(settings, store=InMemoryConversationStore())
    context = ConversationContext(
        child_id="cli",
        age_group=AgeGroup(age_group),
        subject=subject,
        topic=topic,
        session_id=uuid.uuid4().hex,
    )

    try:
        response = asyncio.run(orchestrator.generate_response(context, message))
    except PipelineError as e:
        console.print(f"  [red]Provider error:[/] {e}")
        response = orchestrator.fallback_response(context)

    title = f"{response.model} — {response.outcome.value}"
    console.print(Panel(escape(response.content), title=title))
    usage = response.token_usage
    console.print(
        f"  tokens: {usage.prompt_tokens} in / {usage.completion_tokens} out  "
        f"filtered={response.filtered}  age_appropriate={response.age_appropriate}"
    )
    for warning in response.warnings:
        console.print(f"  [yellow]![/] {escape(warning)}")


if __name__ == "__main__":
    main()
