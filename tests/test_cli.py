import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from plana import __version__, cli, config
from plana.gallery import GalleryRecord, GalleryTransportError


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config, "HOME_CONFIG_PATH", tmp_path / "home" / "plana.toml")
    for name in ("PLANA_STATE_DIR", "PLANA_GROUPS_PATH", "PLANA_REPLIES_PATH"):
        monkeypatch.delenv(name, raising=False)


def _invoke(*args: str):
    return CliRunner().invoke(cli.create_app(), list(args))


def test_version() -> None:
    result = _invoke("--version")
    assert result.exit_code == 0
    assert __version__ in result.output


def test_links_command() -> None:
    result = _invoke("links", "see .https://x.com/u/status/1?s=2")

    assert result.exit_code == 0
    assert (
        "[x] .https://x.com/u/status/1?s=2 -> https://fxtwitter.com/u/status/1 "
        "(no preview)"
    ) in result.output


def test_links_command_without_links() -> None:
    result = _invoke("links", "https://music.youtube.com/watch?v=X")

    assert result.exit_code == 0
    assert "no links to rewrite" in result.output


def test_groups_command(tmp_path: Path) -> None:
    state = tmp_path / ".plana"
    state.mkdir()
    (state / "groups.json").write_text(json.dumps([-5, -10, 3]), encoding="utf-8")

    result = _invoke("groups")

    assert result.exit_code == 0
    assert result.output.split() == ["-10", "-5", "3"]


def test_replies_command_uses_config(tmp_path: Path) -> None:
    replies = tmp_path / "replies.json"
    replies.write_text(
        json.dumps([{"chat_id": 1, "message_id": 2}, {"chat_id": 1, "message_id": 3}]),
        encoding="utf-8",
    )
    cfg = tmp_path / "plana.toml"
    cfg.write_text(
        f"replies_path = {json.dumps(str(replies))}\nreply_capacity = 5\n",
        encoding="utf-8",
    )

    result = _invoke("--config", str(cfg), "replies")

    assert result.exit_code == 0
    assert "2/5 replies tracked" in result.output


def test_missing_config_exits(tmp_path: Path) -> None:
    result = _invoke("--config", str(tmp_path / "missing.toml"), "groups")

    assert result.exit_code == 1
    assert "Missing config file" in result.output


def test_gallery_command_prints_record(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _resolve(settings, gallery_id: str):
        return GalleryRecord(
            id=gallery_id,
            title="Title",
            artists=("a", "b"),
            language="한국어",
            tags=("x",),
        )

    monkeypatch.setattr(cli, "_resolve", _resolve)

    result = _invoke("gallery", "123")

    assert result.exit_code == 0
    assert "title: Title" in result.output
    assert "artists: a, b" in result.output
    assert "viewer: https://hitomi.la/galleries/123.html" in result.output


def test_gallery_command_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _resolve(settings, gallery_id: str):
        return None

    monkeypatch.setattr(cli, "_resolve", _resolve)

    result = _invoke("gallery", "999")

    assert result.exit_code == cli.EXIT_NOT_FOUND
    assert "gallery 999 not found" in result.output


def test_gallery_command_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _resolve(settings, gallery_id: str):
        raise GalleryTransportError(gallery_id, httpx.ConnectError("down"))

    monkeypatch.setattr(cli, "_resolve", _resolve)

    result = _invoke("gallery", "5")

    assert result.exit_code == cli.EXIT_UNAVAILABLE
    assert "ConnectError" in result.output
