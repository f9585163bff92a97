from __future__ import annotations

from pathlib import Path

import anyio
import typer

from . import __version__
from .config import ConfigError, PlanaSettings, load_settings
from .gallery import GalleryClient, GalleryRecord, GalleryTransportError
from .groups import GroupRegistry
from .links import LinkKind, LinkRewriter
from .logging import setup_logging
from .replies import ReplyTracker

EXIT_NOT_FOUND = 1
EXIT_UNAVAILABLE = 2


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _settings(ctx: typer.Context) -> PlanaSettings:
    settings = ctx.obj
    if not isinstance(settings, PlanaSettings):
        raise typer.Exit(code=1)
    return settings


def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
    debug: bool = typer.Option(False, "--debug", help="Verbose console logging."),
    config: Path | None = typer.Option(
        None, "--config", help="Path to a plana.toml config file."
    ),
) -> None:
    setup_logging(debug=debug)
    try:
        ctx.obj = load_settings(config)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _format_record(record: GalleryRecord) -> str:
    return "\n".join(
        [
            f"id: {record.id}",
            f"title: {record.title}",
            f"artists: {', '.join(record.artists)}",
            f"language: {record.language}",
            f"tags: {', '.join(record.tags)}",
            f"viewer: {record.viewer_url}",
            f"mirror: {record.mirror_url}",
        ]
    )


async def _resolve(settings: PlanaSettings, gallery_id: str) -> GalleryRecord | None:
    client = GalleryClient.from_settings(settings)
    try:
        return await client.resolve(gallery_id)
    finally:
        await client.close()


def gallery(
    ctx: typer.Context,
    gallery_id: str = typer.Argument(..., help="Numeric gallery id."),
) -> None:
    """Resolve a gallery id and print its metadata."""
    settings = _settings(ctx)
    try:
        record = anyio.run(_resolve, settings, gallery_id)
    except GalleryTransportError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_UNAVAILABLE) from exc
    if record is None:
        typer.echo(f"gallery {gallery_id} not found", err=True)
        raise typer.Exit(code=EXIT_NOT_FOUND)
    typer.echo(_format_record(record))


def links(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Message text to scan for links."),
) -> None:
    """Print the rewritten form of every recognized link."""
    rewriter = LinkRewriter.from_settings(_settings(ctx))
    found = False
    for kind in LinkKind:
        for match in rewriter.rewrite(kind, text):
            found = True
            suffix = " (no preview)" if match.suppress_preview else ""
            typer.echo(f"[{kind.value}] {match.original} -> {match.rewritten}{suffix}")
    if not found:
        typer.echo("no links to rewrite")


def groups(ctx: typer.Context) -> None:
    """List group chats recorded for startup announcements."""
    registry = GroupRegistry(_settings(ctx).resolved_groups_path)
    chat_ids = anyio.run(registry.list_groups)
    for chat_id in sorted(chat_ids):
        typer.echo(str(chat_id))


def replies(ctx: typer.Context) -> None:
    """Show how many bot replies are tracked."""
    settings = _settings(ctx)
    tracker = ReplyTracker(
        settings.resolved_replies_path, capacity=settings.reply_capacity
    )
    items = anyio.run(tracker.snapshot)
    typer.echo(f"{len(items)}/{tracker.capacity} replies tracked")


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Plana bot core: gallery lookup, link cleanup and state inspection.",
    )
    app.callback()(app_main)
    app.command(name="gallery")(gallery)
    app.command(name="links")(links)
    app.command(name="groups")(groups)
    app.command(name="replies")(replies)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
