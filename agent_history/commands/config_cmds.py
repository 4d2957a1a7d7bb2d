from __future__ import annotations

import json
from pathlib import Path

import typer
from rich import print
from rich.markup import escape

from agent_history.config import get_config_path, load_config, validate_config_text
from agent_history.gems.summarizer import (
    DEFAULT_OLLAMA_HOST,
    DEFAULT_OLLAMA_MODEL,
    SummarizerError,
    summarizer_from_config,
)


def validate_cmd(*, path: Path | None) -> None:
    """Report every problem in the config file, exiting 1 if there are any."""

    config_path = get_config_path(path)
    if not config_path.exists():
        print(f"No config file at {config_path}; defaults apply")
        return
    errors = validate_config_text(config_path.read_text())
    if not errors:
        print(f"[green]{config_path} is valid[/green]")
        return
    print(f"[red]{config_path} has {len(errors)} problem(s):[/red]")
    for error in errors:
        print(f"- {escape(str(error))}")
    raise typer.Exit(code=1)


def show_cmd(*, path: Path | None, show_secrets: bool) -> None:
    cfg = load_config(path)
    print(f"Config path: {get_config_path(path)}")
    print(json.dumps(cfg.to_dict(redact_secrets=not show_secrets), indent=2))


def check_cmd(*, path: Path | None) -> None:
    """Check that the configured summarizer backend can be used."""

    cfg = load_config(path)
    if not cfg.extraction_enabled:
        print("Gem extraction is disabled")
        return
    if not cfg.summarizer_provider:
        print("No summarizer provider configured; gem extraction is off")
        return
    if cfg.summarizer_provider == "ollama":
        from agent_history.gems.backends import check_ollama_available

        host = cfg.summarizer_host or DEFAULT_OLLAMA_HOST
        model = cfg.summarizer_model or DEFAULT_OLLAMA_MODEL
        try:
            check_ollama_available(host, model)
        except SummarizerError as exc:
            print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=1) from exc
        print(f"[green]Ollama is running at {host} with model {model}[/green]")
        return
    summarizer = summarizer_from_config(cfg)
    if summarizer is None:
        print(f"[red]Summarizer {cfg.summarizer_provider} could not be configured[/red]")
        raise typer.Exit(code=1)
    print(f"[green]Summarizer ready: {summarizer.name} ({summarizer.model})[/green]")
