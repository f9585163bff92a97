from __future__ import annotations

import re
import tomllib
from pathlib import Path
from typing import Annotated, Any

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

ENV_PREFIX = "PLANA_"
ENV_BOT_TOKEN = "TELEGRAM_API_TOKEN"

LOCAL_CONFIG_NAME = Path(".plana") / "plana.toml"
HOME_CONFIG_PATH = Path.home() / ".plana" / "plana.toml"

DEFAULT_STATE_DIR = Path(".plana")
REPLIES_FILENAME = "replies.json"
GROUPS_FILENAME = "groups.json"

DEFAULT_GALLERY_DATA_BASE = "https://ltn.gold-usergeneratedcontent.net/galleries"
DEFAULT_GALLERY_REFERER_BASE = "https://hitomi.la/reader"
DEFAULT_GALLERY_VIEWER_BASE = "https://hitomi.la/galleries"
DEFAULT_GALLERY_MIRROR_BASE = "https://k-hentai.org/r"
DEFAULT_GALLERY_TIMEOUT_S = 15.0

_ID_SPLIT_RE = re.compile(r"[,;\s]+")


class ConfigError(RuntimeError):
    pass


def parse_id_list(value: Any) -> frozenset[int]:
    """Parse ``"1, 2;3"`` style id lists; unparsable items are skipped."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items: list[Any] = [item for item in _ID_SPLIT_RE.split(value) if item]
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        items = [value]
    ids: set[int] = set()
    for item in items:
        if isinstance(item, bool):
            continue
        try:
            ids.add(int(str(item).strip()))
        except ValueError:
            continue
    return frozenset(ids)


class PlanaSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    bot_token: str = Field(
        default="",
        validation_alias=AliasChoices("PLANA_BOT_TOKEN", ENV_BOT_TOKEN, "bot_token"),
    )
    bot_username: str = ""

    state_dir: Path = DEFAULT_STATE_DIR
    replies_path: Path | None = None
    groups_path: Path | None = None
    reply_capacity: int = Field(default=200, gt=0)

    gallery_timeout_s: float = Field(default=DEFAULT_GALLERY_TIMEOUT_S, gt=0)
    gallery_data_base: str = DEFAULT_GALLERY_DATA_BASE
    gallery_referer_base: str = DEFAULT_GALLERY_REFERER_BASE
    gallery_viewer_base: str = DEFAULT_GALLERY_VIEWER_BASE
    gallery_mirror_base: str = DEFAULT_GALLERY_MIRROR_BASE

    x_mirror_host: str = "fxtwitter.com"
    instagram_mirror_host: str = "www.kkinstagram.com"

    question_prefixes: Annotated[tuple[str, ...], NoDecode] = ("프라나야",)
    allowed_chat_ids: Annotated[frozenset[int], NoDecode] = frozenset()
    allowed_user_ids: Annotated[frozenset[int], NoDecode] = frozenset()
    brain_root: Path | None = None
    brain_memory_dir: Path | None = None

    @field_validator("allowed_chat_ids", "allowed_user_ids", mode="before")
    @classmethod
    def _parse_ids(cls, value: Any) -> frozenset[int]:
        return parse_id_list(value)

    @field_validator("question_prefixes", mode="before")
    @classmethod
    def _parse_prefixes(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            raise ValueError("question_prefixes must be a list of strings")
        prefixes: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ValueError(f"question prefix must be a string, got {item!r}")
            if item.strip():
                prefixes.append(item.strip())
        return tuple(prefixes)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values read from the TOML file.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def resolved_replies_path(self) -> Path:
        if self.replies_path is not None:
            return self.replies_path.expanduser()
        return self.state_dir.expanduser() / REPLIES_FILENAME

    @property
    def resolved_groups_path(self) -> Path:
        if self.groups_path is not None:
            return self.groups_path.expanduser()
        return self.state_dir.expanduser() / GROUPS_FILENAME


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config_file(path: str | Path | None = None) -> tuple[dict, Path | None]:
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path
    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    return {}, None


def load_settings(path: str | Path | None = None) -> PlanaSettings:
    data, cfg_path = load_config_file(path)
    try:
        return PlanaSettings(**data)
    except ValidationError as e:
        where = cfg_path if cfg_path is not None else "environment"
        raise ConfigError(f"Invalid settings in {where}: {e}") from e


def require_bot_token(settings: PlanaSettings) -> str:
    """Return the bot token or raise if it is unset or still a placeholder."""
    token = settings.bot_token.strip()
    if not token or "your" in token.lower():
        raise ConfigError(
            f"Missing bot token. Set {ENV_BOT_TOKEN} (or {ENV_PREFIX}BOT_TOKEN) "
            "in the environment or .env, or add `bot_token` to the config file."
        )
    return token
