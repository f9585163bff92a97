"""Msgspec models and decoder for the gallery ``galleryinfo`` payload."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, TypeAlias

import msgspec

__all__ = [
    "GalleryPayloadError",
    "RawGalleryPayload",
    "decode_payload",
    "normalize_js_payload",
]

_ASSIGNMENT_RE = re.compile(r"^\s*var\s+[A-Za-z_$][\w$]*\s*=\s*")


class GalleryPayloadError(ValueError):
    pass


class _TagObject(msgspec.Struct, forbid_unknown_fields=False):
    tag: str | None = None


class _ArtistObject(msgspec.Struct, forbid_unknown_fields=False):
    artist: str | None = None


TagEntry: TypeAlias = str | _TagObject
ArtistEntry: TypeAlias = str | _ArtistObject


class _GalleryDocument(msgspec.Struct, forbid_unknown_fields=False):
    title: str | None = None
    n: str | None = None
    tags: list[Any] | None = None
    t: list[Any] | None = None
    artists: list[Any] | None = None
    a: list[Any] | None = None
    language_localname: str | None = None
    language: str | None = None


@dataclass(frozen=True, slots=True)
class RawGalleryPayload:
    """Gallery fields as read off the wire, aliases kept apart.

    List-valued fields hold plain strings: wrapped ``{"tag": ...}`` and
    ``{"artist": ...}`` entries are unwrapped while decoding, and entries of
    any other shape are dropped.
    """

    title: str | None = None
    n: str | None = None
    tags: tuple[str, ...] = ()
    t: tuple[str, ...] = ()
    artists: tuple[str, ...] = ()
    a: tuple[str, ...] = ()
    language_localname: str | None = None
    language: str | None = None


def normalize_js_payload(raw: str) -> str:
    """Turn ``var galleryinfo = {...};`` into the bare JSON object literal."""
    without_prefix = _ASSIGNMENT_RE.sub("", raw.lstrip(), count=1)
    return without_prefix.strip().rstrip(";").rstrip()


def _unwrap(entry: Any, entry_type: Any) -> str | None:
    try:
        value = msgspec.convert(entry, type=entry_type)
    except msgspec.ValidationError:
        return None
    if isinstance(value, _TagObject):
        return value.tag
    if isinstance(value, _ArtistObject):
        return value.artist
    return value


def _entries(values: list[Any] | None, entry_type: Any) -> tuple[str, ...]:
    if not values:
        return ()
    out: list[str] = []
    for entry in values:
        value = _unwrap(entry, entry_type)
        if value is not None:
            out.append(value)
    return tuple(out)


def decode_payload(text: str | bytes) -> RawGalleryPayload:
    """Decode a normalized payload, raising ``GalleryPayloadError`` when the
    document is not a JSON object of the expected shape."""
    try:
        doc = msgspec.json.decode(text, type=_GalleryDocument)
    except (msgspec.DecodeError, msgspec.ValidationError) as exc:
        raise GalleryPayloadError(str(exc)) from exc
    return RawGalleryPayload(
        title=doc.title,
        n=doc.n,
        tags=_entries(doc.tags, TagEntry),
        t=_entries(doc.t, TagEntry),
        artists=_entries(doc.artists, ArtistEntry),
        a=_entries(doc.a, ArtistEntry),
        language_localname=doc.language_localname,
        language=doc.language,
    )
