"""Detect and rewrite social/media links found in chat messages."""

from __future__ import annotations

import enum
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from urllib.parse import SplitResult, unquote, urlsplit, urlunsplit

from .config import PlanaSettings
from .logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "LinkKind",
    "LinkMatch",
    "LinkRewriter",
    "apply_rewrites",
    "detect",
    "rewrite",
    "wants_preview_suppressed",
]

DEFAULT_X_MIRROR_HOST = "fxtwitter.com"
DEFAULT_INSTAGRAM_MIRROR_HOST = "www.kkinstagram.com"

TRACKING_PARAM = "si"
SHORT_LINK_HOST = "youtu.be"
PREVIEW_OPT_OUT = "."

_MUSIC_RE = re.compile(
    r"https?://(?:www\.)?"
    r"(?:youtu(?:\.be|be\.com)|music\.youtube\.com|open\.spotify\.com)"
    r"/\S+"
)
_X_RE = re.compile(r"(\.?)(https?://(?:www\.)?(?:x|twitter)\.com/\S+)")
_INSTAGRAM_RE = re.compile(r"https?://(?:www\.)?instagram\.com/\S+")


class LinkKind(str, enum.Enum):
    MUSIC = "music"
    X = "x"
    INSTAGRAM = "instagram"


@dataclass(frozen=True, slots=True)
class LinkMatch:
    original: str
    rewritten: str
    suppress_preview: bool = False


class MalformedLink(ValueError):
    pass


def _split_strict(url: str) -> SplitResult:
    try:
        parts = urlsplit(url)
        # Accessing the port validates it.
        parts.port
    except ValueError as exc:
        raise MalformedLink(str(exc)) from exc
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise MalformedLink(f"not an http(s) url: {url}")
    return parts


def _strip_query_param(query: str, name: str) -> str:
    kept = [
        segment
        for segment in query.split("&")
        if segment and unquote(segment.split("=", 1)[0]) != name
    ]
    return "&".join(kept)


def _clean_si(parts: SplitResult) -> str:
    query = _strip_query_param(parts.query, TRACKING_PARAM) if parts.query else ""
    path = parts.path
    if parts.hostname == SHORT_LINK_HOST and "si=" in path:
        path = path.split("si=", 1)[0].rstrip("?")
    return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))


def _replace_host(parts: SplitResult, host: str) -> str:
    netloc = host if parts.port is None else f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class LinkRewriter:
    """Stateless link rewriting with injectable mirror hosts."""

    def __init__(
        self,
        *,
        x_mirror_host: str = DEFAULT_X_MIRROR_HOST,
        instagram_mirror_host: str = DEFAULT_INSTAGRAM_MIRROR_HOST,
    ) -> None:
        self.x_mirror_host = x_mirror_host
        self.instagram_mirror_host = instagram_mirror_host
        self._rewriters: dict[LinkKind, Callable[[str], list[LinkMatch]]] = {
            LinkKind.MUSIC: self._rewrite_music,
            LinkKind.X: self._rewrite_x,
            LinkKind.INSTAGRAM: self._rewrite_instagram,
        }

    @classmethod
    def from_settings(cls, settings: PlanaSettings) -> LinkRewriter:
        return cls(
            x_mirror_host=settings.x_mirror_host,
            instagram_mirror_host=settings.instagram_mirror_host,
        )

    def detect(self, kind: LinkKind | str, text: str) -> bool:
        return _pattern_for(LinkKind(kind)).search(text) is not None

    def detected_kinds(self, text: str) -> list[LinkKind]:
        return [kind for kind in LinkKind if self.detect(kind, text)]

    def rewrite(self, kind: LinkKind | str, text: str) -> list[LinkMatch]:
        return self._rewriters[LinkKind(kind)](text)

    def _rewrite_music(self, text: str) -> list[LinkMatch]:
        matches: list[LinkMatch] = []
        for found in _MUSIC_RE.finditer(text):
            original = found.group(0)
            parts = _parse_or_log(LinkKind.MUSIC, original)
            if parts is None:
                continue
            cleaned = _clean_si(parts)
            if cleaned != original:
                matches.append(LinkMatch(original=original, rewritten=cleaned))
        return matches

    def _rewrite_x(self, text: str) -> list[LinkMatch]:
        matches: list[LinkMatch] = []
        for found in _X_RE.finditer(text):
            marker, url = found.group(1), found.group(2)
            parts = _parse_or_log(LinkKind.X, url)
            if parts is None:
                continue
            matches.append(
                LinkMatch(
                    original=found.group(0),
                    rewritten=_replace_host(parts, self.x_mirror_host),
                    suppress_preview=marker == PREVIEW_OPT_OUT,
                )
            )
        return matches

    def _rewrite_instagram(self, text: str) -> list[LinkMatch]:
        matches: list[LinkMatch] = []
        for found in _INSTAGRAM_RE.finditer(text):
            original = found.group(0)
            parts = _parse_or_log(LinkKind.INSTAGRAM, original)
            if parts is None:
                continue
            matches.append(
                LinkMatch(
                    original=original,
                    rewritten=_replace_host(parts, self.instagram_mirror_host),
                )
            )
        return matches


def _pattern_for(kind: LinkKind) -> re.Pattern[str]:
    if kind is LinkKind.MUSIC:
        return _MUSIC_RE
    if kind is LinkKind.X:
        return _X_RE
    return _INSTAGRAM_RE


def _parse_or_log(kind: LinkKind, url: str) -> SplitResult | None:
    try:
        return _split_strict(url)
    except MalformedLink as exc:
        logger.debug("links.malformed", kind=kind.value, url=url, error=str(exc))
        return None


_DEFAULT_REWRITER = LinkRewriter()


def detect(kind: LinkKind | str, text: str) -> bool:
    return _DEFAULT_REWRITER.detect(kind, text)


def rewrite(kind: LinkKind | str, text: str) -> list[LinkMatch]:
    return _DEFAULT_REWRITER.rewrite(kind, text)


def apply_rewrites(text: str, matches: Iterable[LinkMatch]) -> str:
    """Substitute every ``original`` in one pass.

    Longer originals are tried first at each position, so a link that is a
    prefix of another (``x.com/a`` vs ``.x.com/a?s=1``) never shadows it.
    """
    replacements = {match.original: match.rewritten for match in matches}
    if not replacements:
        return text
    pattern = re.compile(
        "|".join(
            re.escape(original)
            for original in sorted(replacements, key=len, reverse=True)
        )
    )
    return pattern.sub(lambda found: replacements[found.group(0)], text)


def wants_preview_suppressed(matches: Sequence[LinkMatch]) -> bool:
    return any(match.suppress_preview for match in matches)
