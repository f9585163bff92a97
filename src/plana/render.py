from __future__ import annotations

import html
from collections.abc import Sequence
from typing import Any

from .gallery import GalleryRecord
from .links import LinkMatch

SAVE_CALLBACK_PREFIX = "save_"

TRACKING_REMOVED_HEADER = "추적 파라미터가 제거된 링크:"
EMBED_LINKS_HEADER = "임베드용 링크:"


def searching_message(gallery_id: str) -> str:
    return (
        f"선생님, 요청하신 ID {gallery_id}에 대한 데이터 검색을 시작합니다. "
        "잠시만 기다려주십시오..."
    )


def not_found_message(gallery_id: str) -> str:
    return (
        f"선생님, ID {gallery_id}에 대한 정보를 찾을 수 없거나, "
        "제목 데이터가 누락된 것으로 확인됩니다."
    )


def unavailable_message(gallery_id: str) -> str:
    return (
        f"선생님, ID {gallery_id}의 데이터 서버에 연결하지 못했습니다. "
        "잠시 후 다시 시도해 주십시오."
    )


def render_gallery_message(record: GalleryRecord, *, saved: bool = False) -> str:
    marker = " (#저장됨)" if saved else ""
    header = f"<b>선생님, ID {html.escape(record.id)}에 대한 분석 결과입니다.{marker}</b>"
    lines = [
        header,
        "",
        f"<b>제목:</b> {html.escape(record.title)}",
        f"<b>작가:</b> {html.escape(', '.join(record.artists))}",
        f"<b>언어:</b> {html.escape(record.language)}",
        f"<b>태그:</b> {html.escape(', '.join(record.tags))}",
    ]
    return "\n".join(lines)


def gallery_keyboard(record: GalleryRecord, *, include_save: bool) -> dict[str, Any]:
    rows: list[list[dict[str, str]]] = [
        [{"text": "Hitomi.la에서 보기", "url": record.viewer_url}],
        [{"text": "K-Hentai에서 보기", "url": record.mirror_url}],
    ]
    if include_save:
        rows.append(
            [
                {
                    "text": "저장: 제 개인 메시지로 보내기",
                    "callback_data": f"{SAVE_CALLBACK_PREFIX}{record.id}",
                }
            ]
        )
    return {"inline_keyboard": rows}


def parse_save_callback(data: str) -> str | None:
    if not data.startswith(SAVE_CALLBACK_PREFIX):
        return None
    gallery_id = data[len(SAVE_CALLBACK_PREFIX) :]
    return gallery_id or None


def cleaned_links_keyboard(matches: Sequence[LinkMatch]) -> dict[str, Any] | None:
    rows = [
        [{"text": f"정리된 링크 #{idx}", "url": match.rewritten}]
        for idx, match in enumerate(matches, 1)
    ]
    if not rows:
        return None
    return {"inline_keyboard": rows}
