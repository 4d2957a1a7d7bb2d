from __future__ import annotations

from typing import Any

import typer
from rich import print
from rich.markup import escape

from agent_history.gems import Gem, GemNotFoundError, GemStore
from agent_history.gems.types import GEM_TYPES

from .common import format_timestamp


def _print_gem_line(gem: Gem) -> None:
    gem_id = gem.id[:12] if len(gem.id) > 12 else gem.id
    print(f"  [bold]{escape(gem_id)}[/bold]  {escape(f'[{gem.type}]')}  {escape(gem.title)}")
    print(f"           {escape(gem.summary)}")
    if gem.tags:
        print(f"           Tags: {escape(', '.join(gem.tags))}")
    print()


def _print_content(content: dict[str, Any]) -> None:
    print("Content:")
    for key, value in content.items():
        print(f"  {escape(str(key))}:")
        if isinstance(value, list):
            for item in value:
                print(f"    - {escape(str(item))}")
        else:
            print(f"    {escape(str(value))}")


def list_cmd(*, gem_store: GemStore) -> None:
    """List committed gems."""

    gems = gem_store.load_gems().gems
    if not gems:
        print("No committed gems found.")
        print("Use 'agent-history gem add' to add one, or record a session with extraction on.")
        return
    print(f"Found {len(gems)} committed gems:\n")
    for gem in gems:
        _print_gem_line(gem)


def pending_cmd(*, gem_store: GemStore) -> None:
    gems = gem_store.load_pending_gems().gems
    if not gems:
        print("No pending gems.")
        return
    print(f"Found {len(gems)} pending gems awaiting review:\n")
    for gem in gems:
        _print_gem_line(gem)
    print("Use 'agent-history gem accept <id>' to accept a gem")
    print("Use 'agent-history gem reject <id>' to reject a gem")


def show_cmd(*, gem_store: GemStore, gem_id: str) -> None:
    try:
        gem, is_pending = gem_store.get_gem(gem_id)
    except GemNotFoundError as exc:
        print(f"[red]Gem not found: {escape(gem_id)}[/red]")
        raise typer.Exit(code=1) from exc

    status = "pending" if is_pending else "committed"
    print(f"[bold]Gem: {escape(gem.id)}[/bold] ({status})")
    print(f"Type: {gem.type}")
    print(f"Title: {escape(gem.title)}")
    print(f"Summary: {escape(gem.summary)}")
    print(f"Created: {format_timestamp(gem.created)}")
    if gem.commit:
        print(f"Commit: {gem.commit}")
    if gem.client:
        print(f"Client: {escape(gem.client)}")
    if gem.model:
        print(f"Model: {escape(gem.model)}")
    if gem.tags:
        print(f"Tags: {escape(', '.join(gem.tags))}")
    if gem.files:
        print(f"Files: {escape(', '.join(gem.files))}")
    if gem.content:
        print()
        _print_content(gem.content)
    if gem.user_notes:
        print()
        print(f"User Notes: {escape(gem.user_notes)}")


def accept_cmd(*, gem_store: GemStore, gem_id: str) -> None:
    try:
        gem = gem_store.accept_gem(gem_id)
    except GemNotFoundError as exc:
        print(f"[red]No pending gem matches: {escape(gem_id)}[/red]")
        raise typer.Exit(code=1) from exc
    except OSError as exc:
        print(f"[red]Failed to save gems: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"Gem {gem.id} accepted and moved to {gem_store.gems_path.name}")


def reject_cmd(*, gem_store: GemStore, gem_id: str) -> None:
    try:
        gem = gem_store.reject_gem(gem_id)
    except GemNotFoundError as exc:
        print(f"[red]No pending gem matches: {escape(gem_id)}[/red]")
        raise typer.Exit(code=1) from exc
    except OSError as exc:
        print(f"[red]Failed to save gems: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"Gem {gem.id} rejected and removed from pending list")


def search_cmd(*, gem_store: GemStore, query: str) -> None:
    results = gem_store.search_gems(query)
    if not results:
        print(f"No gems found matching: {escape(query)}")
        return
    print(f"Found {len(results)} gems matching '{escape(query)}':\n")
    for gem in results:
        _print_gem_line(gem)


def add_cmd(
    *,
    gem_store: GemStore,
    gem_type: str,
    title: str,
    summary: str,
    tags: list[str] | None,
    files: list[str] | None,
    notes: str | None,
) -> None:
    """Add a gem straight to the committed set."""

    if gem_type not in GEM_TYPES:
        valid = ", ".join(GEM_TYPES)
        print(f"[red]Unknown gem type: {escape(gem_type)} (expected one of: {valid})[/red]")
        raise typer.Exit(code=1)
    if not title.strip():
        print("[red]Title is required[/red]")
        raise typer.Exit(code=1)
    gem = Gem(
        type=gem_type,
        title=title.strip(),
        summary=summary.strip(),
        client="manual",
        tags=[tag.strip() for tag in tags or [] if tag.strip()],
        files=[path.strip() for path in files or [] if path.strip()],
        user_notes=(notes or "").strip() or None,
    )
    try:
        gem_store.add_gem(gem)
    except OSError as exc:
        print(f"[red]Failed to save gems: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"Gem added: {gem.id}")
    print(f"Saved to: {gem_store.gems_path}")
