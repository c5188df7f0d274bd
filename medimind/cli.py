# medimind/cli.py
"""
MediMind CLI -- Click commands with a coral/greige terminal UI.

Provides the ``medimind`` console entry-point declared in pyproject.toml as
``medimind.cli:cli``:

- extract:  run one document (or query) through the extraction pipeline
- types:    list registered document types
- show:     inspect one document type's schema
- config:   display the resolved MedimindConfig
"""

from __future__ import annotations

import json
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.markup import escape as _esc

from . import __version__
from . import cli_theme as theme
from .config import get_config
from .errors import MedimindError

console = Console()


def _print_version(
    ctx: click.Context,
    _param: click.Parameter,
    value: bool,
) -> None:
    if not value or ctx.resilient_parsing:
        return
    theme.print_version(__version__, console)
    ctx.exit()


# ---------------------------------------------------------------------------
# Main CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """MediMind -- schema-constrained extraction for medical documents."""
    if ctx.invoked_subcommand is None:
        theme.print_banner(__version__, console, lm=get_config().lm)
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# extract
# ---------------------------------------------------------------------------


def _parse_context(pairs: tuple[str, ...]) -> dict[str, Any]:
    """Parse repeated ``key=value`` options; repeated keys become lists."""
    context: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--context")
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise click.BadParameter(f"empty key in {pair!r}", param_hint="--context")
        if key in context:
            existing = context[key]
            context[key] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            context[key] = value
    return context


def _load_history(path: Optional[Path]) -> Optional[list[Any]]:
    if path is None:
        return None
    try:
        messages = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise click.ClickException(f"Cannot read chat history {path}: {exc}") from exc
    if not isinstance(messages, list):
        raise click.ClickException(f"Chat history {path} must be a JSON list of messages")
    return messages


def _render_value(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(_esc(str(v)) for v in value) if value else "[dim]—[/dim]"
    return _esc(str(value))


def _render_data(data: dict[str, Any]) -> None:
    scalars = theme.make_kv_table()
    has_scalars = False
    record_groups: list[tuple[str, list[dict[str, Any]]]] = []
    for key, value in data.items():
        if isinstance(value, list) and value and all(isinstance(v, dict) for v in value):
            record_groups.append((key, value))
        else:
            scalars.add_row(key, _render_value(value))
            has_scalars = True
    if has_scalars:
        console.print(scalars)
    for key, records in record_groups:
        theme.section(key.replace("_", " "), console)
        for record in records:
            t = theme.make_kv_table()
            for sub_key, sub_value in record.items():
                t.add_row(sub_key, _render_value(sub_value))
            console.print(t)


@cli.command()
@click.option("--type", "document_type", type=str, required=True, help="Document type (see `medimind types`).")
@click.option("--document", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None, help="Document file (image, PDF or text).")
@click.option("--text", type=str, default=None, help="Inline document text instead of a file.")
@click.option("--context", "context_pairs", type=str, multiple=True, help="Context input as key=value (repeatable).")
@click.option("--history", "history_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None, help="JSON file with prior chat messages.")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Save the full response as JSON.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the raw JSON response instead of tables.")
@click.pass_context
def extract(
    ctx: click.Context,
    document_type: str,
    document: Optional[Path],
    text: Optional[str],
    context_pairs: tuple[str, ...],
    history_path: Optional[Path],
    output: Optional[Path],
    as_json: bool,
) -> None:
    """Extract a structured result from a document.

    \b
    Examples:
      medimind extract --type prescription --document rx.jpg
      medimind extract --type medical_report --document labs.pdf --context age=54
      medimind extract --type medicine_search --context search_term=Ibuprofen
    """
    if document is not None and text is not None:
        raise click.UsageError("Use either --document or --text, not both.")

    from .payload import DocumentPayload, encode_file
    from .sdk import run_extraction
    from .utils.logging import setup_logging

    cfg = get_config()
    log_file = setup_logging(level=cfg.log_level)

    try:
        payload: Optional[DocumentPayload] = None
        if document is not None:
            payload = encode_file(document)
        elif text is not None:
            payload = DocumentPayload.from_text(text, source_name="<cli>")

        progress = nullcontext() if as_json else theme.spinner(f"Running {document_type} extraction", console)
        with progress:
            response = run_extraction(
                document_type,
                payload,
                _parse_context(context_pairs),
                history=_load_history(history_path),
            )
    except MedimindError as exc:
        raise click.ClickException(str(exc)) from exc

    dumped = response.model_dump(mode="json")
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(dumped, indent=2, ensure_ascii=False), encoding="utf-8")

    if as_json:
        click.echo(json.dumps(dumped, indent=2, ensure_ascii=False))
    else:
        theme.print_banner(__version__, console, lm=cfg.lm)
        console.print(theme.status_line(response.status.value, response.message))
        if response.data is not None:
            theme.section("Result", console, "01")
            _render_data(response.data)
        if response.disclaimer:
            console.print()
            console.print(theme.disclaimer_panel(response.disclaimer))
        if output is not None:
            console.print(theme.note(f"Saved to {output}"))
        console.print(theme.note(f"Log: {log_file}"))

    if not response.ok:
        ctx.exit(1)


# ---------------------------------------------------------------------------
# types / show
# ---------------------------------------------------------------------------


@cli.command("types")
def types_() -> None:
    """List registered document types."""
    from .schemas.registry import list_schemas

    t = theme.make_table("Document types")
    t.add_column("Name", style=f"bold {theme.CORAL}", no_wrap=True)
    t.add_column("Title")
    t.add_column("Payload")
    t.add_column("Outcome")
    t.add_column("Version", justify="right")
    for schema in list_schemas():
        t.add_row(schema.name, schema.title, schema.payload, schema.outcome, schema.version)
    console.print(t)


@cli.command()
@click.argument("document_type")
def show(document_type: str) -> None:
    """Show the schema of one document type.

    \b
    Examples:
      medimind show prescription
    """
    from .schemas.registry import get_schema

    try:
        schema = get_schema(document_type)
    except MedimindError as exc:
        raise click.ClickException(str(exc)) from exc

    theme.section(schema.title or schema.name, console, "01")
    t = theme.make_kv_table()
    t.add_row("name", schema.name)
    t.add_row("version", schema.version)
    t.add_row("payload", schema.payload)
    t.add_row("outcome", schema.outcome)
    t.add_row("signal fields", ", ".join(schema.effective_signal_fields))
    if schema.description:
        t.add_row("description", " ".join(schema.description.split()))
    console.print(t)

    if schema.context:
        theme.section("Context inputs", console, "02")
        ct = theme.make_table()
        ct.add_column("Name", style=f"bold {theme.CORAL}")
        ct.add_column("Required")
        ct.add_column("Multiple")
        ct.add_column("Description")
        for spec in schema.context:
            ct.add_row(spec.name, "yes" if spec.required else "no", "yes" if spec.multiple else "no", spec.description)
        console.print(ct)

    theme.section("Fields", console, "03" if schema.context else "02")
    ft = theme.make_table()
    ft.add_column("Field", style=f"bold {theme.CORAL}", no_wrap=True)
    ft.add_column("Kind")
    ft.add_column("Source")
    ft.add_column("Default")
    for spec in schema.fields:
        rows = [(spec.name, spec)] + [(f"  {spec.name}.{sub.name}", sub) for sub in spec.fields]
        for label, field_spec in rows:
            policy = field_spec.default
            if policy.kind == "computed":
                default = f"computed: {policy.rule}"
            elif policy.kind == "drop":
                default = "drop record"
            else:
                default = json.dumps(policy.value, ensure_ascii=False)
            kind = field_spec.kind + (" (identity)" if field_spec.identity else "")
            ft.add_row(label, kind, field_spec.source, _esc(default))
    console.print(ft)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command("config")
def config_show() -> None:
    """Show current configuration."""
    cfg = get_config()
    dump = cfg.model_dump()

    theme.section("Language Model", console, "01")
    t = theme.make_kv_table()
    t.add_row("lm", dump["lm"])
    t.add_row("api_base", str(dump["api_base"]))
    t.add_row("lm_temperature", str(dump["lm_temperature"]))
    t.add_row("lm_max_tokens", str(dump["lm_max_tokens"]))
    t.add_row("adapter", dump["adapter"])
    api_key = dump["api_key"]
    if api_key:
        masked = api_key[:4] + "···" + api_key[-4:] if len(api_key) > 8 else "***"
    else:
        masked = "[dim]not set[/dim]"
    t.add_row("api_key", masked)
    console.print(t)

    theme.section("Processing", console, "02")
    t = theme.make_kv_table()
    t.add_row("batch_workers", str(dump["batch_workers"]))
    t.add_row("log_level", dump["log_level"])
    t.add_row("prompt_preview_chars", str(dump["prompt_preview_chars"]))
    console.print(t)

    theme.section("Paths", console, "03")
    t = theme.make_kv_table()
    t.add_row("home_dir", str(dump["home_dir"]))
    t.add_row("log_dir", str(cfg.log_dir))
    t.add_row("cache_dir", str(cfg.cache_dir))
    console.print(t)


if __name__ == "__main__":
    cli()
