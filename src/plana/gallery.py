from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import httpx

from . import __version__
from .config import (
    DEFAULT_GALLERY_DATA_BASE as DEFAULT_DATA_BASE,
    DEFAULT_GALLERY_MIRROR_BASE as DEFAULT_MIRROR_BASE,
    DEFAULT_GALLERY_REFERER_BASE as DEFAULT_REFERER_BASE,
    DEFAULT_GALLERY_TIMEOUT_S as DEFAULT_TIMEOUT_S,
    DEFAULT_GALLERY_VIEWER_BASE as DEFAULT_VIEWER_BASE,
    PlanaSettings,
)
from .logging import get_logger
from .schemas.gallery import (
    GalleryPayloadError,
    RawGalleryPayload,
    decode_payload,
    normalize_js_payload,
)

logger = get_logger(__name__)

__all__ = [
    "GalleryClient",
    "GalleryRecord",
    "GalleryTransportError",
    "NO_INFO",
    "NO_TAGS",
    "merge_payload",
]

NO_INFO = "정보 없음"
NO_TAGS = "태그 정보 없음"

_ERROR_BODY_LIMIT = 500


class GalleryTransportError(RuntimeError):
    """The gallery source could not be reached; the caller may retry."""

    def __init__(self, gallery_id: str, cause: Exception) -> None:
        self.gallery_id = gallery_id
        self.cause = cause
        super().__init__(
            f"gallery {gallery_id}: {cause.__class__.__name__}: {cause}"
        )


@dataclass(frozen=True, slots=True)
class GalleryRecord:
    id: str
    title: str
    artists: tuple[str, ...]
    language: str
    tags: tuple[str, ...]
    viewer_base: str = DEFAULT_VIEWER_BASE
    mirror_base: str = DEFAULT_MIRROR_BASE

    @property
    def viewer_url(self) -> str:
        return f"{self.viewer_base}/{self.id}.html"

    @property
    def mirror_url(self) -> str:
        return f"{self.mirror_base}/{self.id}"


def _first_text(*values: str | None) -> str | None:
    for value in values:
        if value is None:
            continue
        stripped = value.strip()
        if stripped:
            return stripped
    return None


def _dedupe(*groups: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for group in groups:
        for value in group:
            item = value.strip()
            if not item or item in seen:
                continue
            seen.add(item)
            out.append(item)
    return tuple(out)


def merge_payload(
    gallery_id: str,
    raw: RawGalleryPayload,
    *,
    viewer_base: str = DEFAULT_VIEWER_BASE,
    mirror_base: str = DEFAULT_MIRROR_BASE,
) -> GalleryRecord:
    """Collapse aliased fields into a fully populated record.

    Scalars take the first non-empty value, canonical key before legacy key.
    Lists are concatenated in the same order and deduplicated, keeping the
    first occurrence. Missing data falls back to ``NO_INFO``/``NO_TAGS``.
    """
    artists = _dedupe(raw.artists, raw.a)
    tags = _dedupe(raw.tags, raw.t)
    return GalleryRecord(
        id=gallery_id,
        title=_first_text(raw.title, raw.n) or NO_INFO,
        artists=artists or (NO_INFO,),
        language=_first_text(raw.language_localname, raw.language) or NO_INFO,
        tags=tags or (NO_TAGS,),
        viewer_base=viewer_base,
        mirror_base=mirror_base,
    )


class GalleryClient:
    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        data_base: str = DEFAULT_DATA_BASE,
        referer_base: str = DEFAULT_REFERER_BASE,
        viewer_base: str = DEFAULT_VIEWER_BASE,
        mirror_base: str = DEFAULT_MIRROR_BASE,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._data_base = data_base.rstrip("/")
        self._referer_base = referer_base.rstrip("/")
        self._viewer_base = viewer_base.rstrip("/")
        self._mirror_base = mirror_base.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=timeout_s,
            headers={"User-Agent": f"plana/{__version__}"},
        )
        self._owns_client = client is None

    @classmethod
    def from_settings(
        cls, settings: PlanaSettings, *, client: httpx.AsyncClient | None = None
    ) -> GalleryClient:
        return cls(
            timeout_s=settings.gallery_timeout_s,
            data_base=settings.gallery_data_base,
            referer_base=settings.gallery_referer_base,
            viewer_base=settings.gallery_viewer_base,
            mirror_base=settings.gallery_mirror_base,
            client=client,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def data_url(self, gallery_id: str) -> str:
        return f"{self._data_base}/{gallery_id}.js"

    def referer(self, gallery_id: str) -> str:
        return f"{self._referer_base}/{gallery_id}.html"

    async def resolve(self, gallery_id: str) -> GalleryRecord | None:
        """Fetch and parse one gallery.

        Returns ``None`` for a missing gallery, a failing upstream status or
        an undecodable or unparsable payload. Raises ``GalleryTransportError``
        when the source cannot be reached at all.
        """
        url = self.data_url(gallery_id)
        try:
            resp = await self._client.get(
                url, headers={"Referer": self.referer(gallery_id)}
            )
        except httpx.TransportError as exc:
            logger.warning(
                "gallery.network_error",
                gallery_id=gallery_id,
                url=url,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise GalleryTransportError(gallery_id, exc) from exc
        except httpx.DecodingError as exc:
            logger.error(
                "gallery.bad_payload",
                gallery_id=gallery_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None

        if resp.status_code == httpx.codes.NOT_FOUND:
            logger.debug("gallery.not_found", gallery_id=gallery_id)
            return None
        if not resp.is_success:
            # TODO: return a distinct outcome for upstream failures so callers
            # can tell them apart from missing galleries.
            logger.warning(
                "gallery.http_error",
                gallery_id=gallery_id,
                status=resp.status_code,
                body=resp.text[:_ERROR_BODY_LIMIT],
            )
            return None

        try:
            raw = decode_payload(normalize_js_payload(resp.text))
        except GalleryPayloadError as exc:
            logger.error(
                "gallery.bad_payload",
                gallery_id=gallery_id,
                error=str(exc),
            )
            return None

        return merge_payload(
            gallery_id,
            raw,
            viewer_base=self._viewer_base,
            mirror_base=self._mirror_base,
        )
