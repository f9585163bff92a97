"""Delegation of free-text questions to the external answering helper."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

import anyio

from .config import PlanaSettings
from .logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "AskError",
    "Asker",
    "SubprocessAsker",
    "extract_question",
    "is_question_allowed",
    "safe_user_id",
    "truncate_message",
]

HELPER_DIRNAME = "planabrain"
ENV_USER_ID = "PLANABRAIN_USER_ID"
ENV_DOTENV_PATH = "DOTENV_CONFIG_PATH"
DEFAULT_MEMORY_DIR = Path(".planabrain") / "memory"
MESSAGE_LIMIT = 4000
_QUESTION_SEPARATORS = ":-—"
_SAFE_ID_MAX = 200


class AskError(RuntimeError):
    pass


class Asker(Protocol):
    async def ask(self, question: str, user_id: str) -> str: ...


def extract_question(text: str, prefixes: Iterable[str]) -> str | None:
    """Return the text after a trigger prefix, or ``None`` without one.

    An empty string means the prefix was present but no question followed.
    """
    trimmed = text.lstrip()
    for prefix in prefixes:
        if prefix and trimmed.startswith(prefix):
            rest = trimmed[len(prefix) :]
            while rest and (rest[0] in _QUESTION_SEPARATORS or rest[0].isspace()):
                rest = rest[1:]
            return rest.strip()
    return None


def is_question_allowed(
    chat_id: int,
    user_id: int | None,
    *,
    is_private: bool,
    allowed_chat_ids: frozenset[int],
    allowed_user_ids: frozenset[int],
) -> bool:
    if chat_id in allowed_chat_ids:
        return True
    if not is_private or user_id is None:
        return False
    return user_id in allowed_user_ids


def truncate_message(text: str, limit: int = MESSAGE_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n…"


def safe_user_id(raw: str) -> str:
    trimmed = raw.strip()
    out = "".join(
        ch if (ch.isascii() and ch.isalnum()) or ch in "_-" else "_"
        for ch in trimmed[:_SAFE_ID_MAX]
    )
    return out or "default"


def find_helper_root(base: Path | None = None) -> Path | None:
    cwd = Path.cwd() if base is None else base
    for candidate in (cwd / HELPER_DIRNAME, cwd.parent / HELPER_DIRNAME):
        if (candidate / "package.json").is_file():
            return candidate
    return None


class SubprocessAsker:
    """Runs ``<helper> ask <question>`` and returns its stdout."""

    def __init__(self, root: Path, *, memory_dir: Path | None = None) -> None:
        self.root = root
        if memory_dir is None:
            memory_dir = DEFAULT_MEMORY_DIR
        self.memory_dir = memory_dir if memory_dir.is_absolute() else root / memory_dir

    @classmethod
    def from_settings(cls, settings: PlanaSettings) -> SubprocessAsker:
        root = settings.brain_root or find_helper_root()
        if root is None:
            raise AskError(f"could not find the {HELPER_DIRNAME} directory")
        return cls(root, memory_dir=settings.brain_memory_dir)

    def command(self, question: str) -> list[str]:
        dist_entry = self.root / "dist" / "cli" / "index.js"
        if dist_entry.is_file():
            return ["node", str(dist_entry), "ask", question]
        tsx = self.root / "node_modules" / ".bin" / "tsx"
        if not tsx.exists():
            raise AskError(
                f"no runnable {HELPER_DIRNAME} entry point; build dist or install tsx"
            )
        return [str(tsx), str(self.root / "src" / "cli" / "index.ts"), "ask", question]

    def _env(self, user_id: str) -> dict[str, str]:
        env = dict(os.environ)
        env[ENV_USER_ID] = user_id
        dotenv_path = self.root.parent / ".env"
        if dotenv_path.is_file():
            env[ENV_DOTENV_PATH] = str(dotenv_path)
        return env

    async def ask(self, question: str, user_id: str) -> str:
        cmd = self.command(question)
        logger.debug("brain.ask", user_id=user_id, root=str(self.root))
        try:
            result = await anyio.run_process(
                cmd, cwd=self.root, env=self._env(user_id), check=False
            )
        except OSError as exc:
            raise AskError(f"failed to start {HELPER_DIRNAME}: {exc}") from exc
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise AskError(f"{HELPER_DIRNAME} exited with {result.returncode}: {stderr}")
        return result.stdout.decode("utf-8", errors="replace")

    def memory_file(self, user_id: str) -> Path:
        return self.memory_dir / f"{safe_user_id(user_id)}.json"

    async def reset_memory(self, user_id: str) -> bool:
        path = anyio.Path(self.memory_file(user_id))
        try:
            await path.unlink()
        except FileNotFoundError:
            return False
        return True

