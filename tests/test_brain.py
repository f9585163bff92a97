import sys
from pathlib import Path

import pytest

from plana.brain import (
    DEFAULT_MEMORY_DIR,
    AskError,
    SubprocessAsker,
    extract_question,
    find_helper_root,
    is_question_allowed,
    safe_user_id,
    truncate_message,
)
from plana.config import PlanaSettings

PREFIXES = ("프라나야",)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("프라나야 오늘 날씨 어때?", "오늘 날씨 어때?"),
        ("  프라나야: 안녕", "안녕"),
        ("프라나야 — 질문", "질문"),
        ("프라나야", ""),
        ("프라나야 - ", ""),
        ("안녕 프라나야", None),
        ("", None),
    ],
)
def test_extract_question(text: str, expected: str | None) -> None:
    assert extract_question(text, PREFIXES) == expected


def test_extract_question_ignores_empty_prefix() -> None:
    assert extract_question("hello", ("", "plana")) is None


def test_question_allowed_by_chat() -> None:
    assert is_question_allowed(
        -100,
        None,
        is_private=False,
        allowed_chat_ids=frozenset({-100}),
        allowed_user_ids=frozenset(),
    )


def test_question_allowed_by_user_only_in_private() -> None:
    users = frozenset({7})
    assert is_question_allowed(
        7, 7, is_private=True, allowed_chat_ids=frozenset(), allowed_user_ids=users
    )
    assert not is_question_allowed(
        -100, 7, is_private=False, allowed_chat_ids=frozenset(), allowed_user_ids=users
    )


def test_question_denied_with_empty_allowlists() -> None:
    assert not is_question_allowed(
        1, 1, is_private=True, allowed_chat_ids=frozenset(), allowed_user_ids=frozenset()
    )


def test_truncate_message() -> None:
    assert truncate_message("short") == "short"
    long_text = "x" * 4001
    truncated = truncate_message(long_text)
    assert truncated == "x" * 4000 + "\n…"
    assert truncate_message("abcdef", limit=3) == "abc\n…"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("12345", "12345"),
        ("../etc/passwd", "___etc_passwd"),
        ("user-1_a", "user-1_a"),
        ("프라나", "___"),
        ("   ", "default"),
    ],
)
def test_safe_user_id(raw: str, expected: str) -> None:
    assert safe_user_id(raw) == expected


def _helper_root(tmp_path: Path) -> Path:
    root = tmp_path / "planabrain"
    root.mkdir()
    (root / "package.json").write_text("{}", encoding="utf-8")
    return root


def test_find_helper_root(tmp_path: Path) -> None:
    root = _helper_root(tmp_path)
    assert find_helper_root(tmp_path) == root
    nested = tmp_path / "bot"
    nested.mkdir()
    assert find_helper_root(nested) == root
    assert find_helper_root(root / "missing") is None


def test_from_settings_without_root_raises(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    with pytest.raises(AskError, match="planabrain"):
        SubprocessAsker.from_settings(PlanaSettings())


def test_from_settings_uses_configured_root(tmp_path: Path) -> None:
    asker = SubprocessAsker.from_settings(PlanaSettings(brain_root=tmp_path))
    assert asker.root == tmp_path
    assert asker.memory_dir == tmp_path / DEFAULT_MEMORY_DIR


def test_command_prefers_built_entry(tmp_path: Path) -> None:
    root = _helper_root(tmp_path)
    asker = SubprocessAsker(root)

    with pytest.raises(AskError, match="no runnable"):
        asker.command("q")

    tsx = root / "node_modules" / ".bin" / "tsx"
    tsx.parent.mkdir(parents=True)
    tsx.write_text("", encoding="utf-8")
    assert asker.command("q") == [
        str(tsx),
        str(root / "src" / "cli" / "index.ts"),
        "ask",
        "q",
    ]

    dist = root / "dist" / "cli" / "index.js"
    dist.parent.mkdir(parents=True)
    dist.write_text("", encoding="utf-8")
    assert asker.command("q") == ["node", str(dist), "ask", "q"]


@pytest.mark.anyio
async def test_ask_returns_stdout_and_passes_user_id(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = _helper_root(tmp_path)
    (tmp_path / ".env").write_text("X=1\n", encoding="utf-8")
    asker = SubprocessAsker(root)
    script = (
        "import os, sys; "
        "print(sys.argv[1], os.environ['PLANABRAIN_USER_ID'], "
        "os.environ['DOTENV_CONFIG_PATH'])"
    )
    monkeypatch.setattr(
        asker, "command", lambda question: [sys.executable, "-c", script, question]
    )

    answer = await asker.ask("hello", "42")

    assert answer.split() == ["hello", "42", str(tmp_path / ".env")]


@pytest.mark.anyio
async def test_ask_nonzero_exit_raises(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    asker = SubprocessAsker(_helper_root(tmp_path))
    script = "import sys; sys.stderr.write('model offline'); sys.exit(3)"
    monkeypatch.setattr(asker, "command", lambda question: [sys.executable, "-c", script])

    with pytest.raises(AskError, match="exited with 3: model offline"):
        await asker.ask("hello", "42")


@pytest.mark.anyio
async def test_ask_missing_executable_raises(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    asker = SubprocessAsker(_helper_root(tmp_path))
    missing = str(tmp_path / "does-not-exist")
    monkeypatch.setattr(asker, "command", lambda question: [missing])

    with pytest.raises(AskError, match="failed to start"):
        await asker.ask("hello", "42")


@pytest.mark.anyio
async def test_reset_memory(tmp_path: Path) -> None:
    asker = SubprocessAsker(tmp_path, memory_dir=tmp_path / "memory")
    memory = asker.memory_file("../42")
    assert memory == tmp_path / "memory" / "___42.json"

    assert await asker.reset_memory("../42") is False

    memory.parent.mkdir()
    memory.write_text("{}", encoding="utf-8")
    assert await asker.reset_memory("../42") is True
    assert not memory.exists()
