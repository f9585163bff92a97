from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Protocol

from .brain import (
    AskError,
    Asker,
    extract_question,
    is_question_allowed,
    truncate_message,
)
from .config import PlanaSettings
from .gallery import GalleryClient, GalleryTransportError
from .groups import GroupRegistry, is_group_chat_type
from .links import (
    LinkKind,
    LinkMatch,
    LinkRewriter,
    apply_rewrites,
    wants_preview_suppressed,
)
from .logging import get_logger
from .render import (
    EMBED_LINKS_HEADER,
    TRACKING_REMOVED_HEADER,
    cleaned_links_keyboard,
    gallery_keyboard,
    not_found_message,
    parse_save_callback,
    render_gallery_message,
    searching_message,
    unavailable_message,
)
from .replies import ReplyTracker

logger = get_logger(__name__)

STARTUP_MESSAGE = (
    "선생님, 제가 다시 살아났습니다. 반갑습니다. 메인시스템 OS인 프라나입니다."
)
EMPTY_QUESTION_MESSAGE = "선생님, 질문을 말씀해 주십시오."
ASK_FAILED_MESSAGE = "선생님, 응답 생성에 실패했습니다. 잠시 후 다시 시도해 주십시오."
SAVE_SENT_TEXT = "갤러리 정보가 저와 선생님의 메시지로 전송되었습니다."
SAVE_BLOCKED_TEXT = "선생님, 먼저 저와 개인 대화를 시작하거나 차단을 해제해 주세요."
SAVE_MISSING_TEXT = "저장할 갤러리 정보를 찾지 못했습니다."

PRIVILEGED_MEMBER_STATUSES = frozenset({"creator", "administrator"})

_BANG_ID_RE = re.compile(r"^!([0-9]+)$")
_DIGITS_RE = re.compile(r"^[0-9]+$")


class BotClient(Protocol):
    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        disable_notification: bool | None = False,
        parse_mode: str | None = None,
        *,
        reply_markup: dict[str, Any] | None = None,
        disable_link_preview: bool | None = None,
    ) -> dict | None: ...

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        parse_mode: str | None = None,
        *,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict | None: ...

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        show_alert: bool | None = None,
    ) -> None: ...

    async def get_chat_member(self, chat_id: int, user_id: int) -> dict | None: ...

    async def delete_message(self, chat_id: int, message_id: int) -> bool: ...


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    chat_id: int
    chat_type: str
    message_id: int
    text: str
    sender_id: int | None = None
    sender_is_bot: bool = False
    reply_to_message_id: int | None = None
    sender_username: str | None = None
    sender_first_name: str | None = None

    @property
    def is_private(self) -> bool:
        return self.chat_type == "private"

    @property
    def display_name(self) -> str:
        return self.sender_username or self.sender_first_name or "Unknown"


def extract_gallery_id(text: str, chat_type: str, bot_username: str) -> str | None:
    text = text.strip()
    match = _BANG_ID_RE.match(text)
    if match:
        return match.group(1)
    if chat_type == "private":
        return text if _DIGITS_RE.match(text) else None
    if is_group_chat_type(chat_type) and bot_username:
        mention = re.match(rf"^@{re.escape(bot_username)}\s+([0-9]+)", text)
        if mention:
            return mention.group(1)
    return None


async def handle_gallery_request(
    bot: BotClient,
    gallery: GalleryClient,
    msg: IncomingMessage,
    *,
    bot_username: str,
) -> bool:
    gallery_id = extract_gallery_id(msg.text, msg.chat_type, bot_username)
    if gallery_id is None:
        return False
    placeholder = await bot.send_message(
        msg.chat_id,
        searching_message(gallery_id),
        reply_to_message_id=msg.message_id,
        disable_notification=True,
    )
    try:
        record = await gallery.resolve(gallery_id)
    except GalleryTransportError:
        text, parse_mode, markup = unavailable_message(gallery_id), None, None
    else:
        if record is None:
            text, parse_mode, markup = not_found_message(gallery_id), None, None
        else:
            text = render_gallery_message(record)
            parse_mode = "HTML"
            markup = gallery_keyboard(record, include_save=not msg.is_private)

    if placeholder is None:
        await bot.send_message(
            msg.chat_id, text, parse_mode=parse_mode, reply_markup=markup
        )
        return True
    edited = await bot.edit_message_text(
        msg.chat_id,
        placeholder["message_id"],
        text,
        parse_mode=parse_mode,
        reply_markup=markup,
    )
    if edited is None:
        logger.error(
            "bot.gallery.edit_failed",
            chat_id=msg.chat_id,
            gallery_id=gallery_id,
        )
    return True


async def handle_save_callback(
    bot: BotClient,
    gallery: GalleryClient,
    *,
    callback_query_id: str,
    data: str,
    user_id: int,
) -> bool:
    gallery_id = parse_save_callback(data)
    if gallery_id is None:
        await bot.answer_callback_query(callback_query_id)
        return False
    try:
        record = await gallery.resolve(gallery_id)
    except GalleryTransportError:
        record = None
    if record is None:
        await bot.answer_callback_query(
            callback_query_id, text=SAVE_MISSING_TEXT, show_alert=True
        )
        return False
    sent = await bot.send_message(
        user_id,
        render_gallery_message(record, saved=True),
        disable_notification=True,
        parse_mode="HTML",
        reply_markup=gallery_keyboard(record, include_save=False),
    )
    if sent is None:
        logger.error("bot.save.dm_failed", user_id=user_id, gallery_id=gallery_id)
        await bot.answer_callback_query(
            callback_query_id, text=SAVE_BLOCKED_TEXT, show_alert=True
        )
        return False
    await bot.answer_callback_query(callback_query_id, text=SAVE_SENT_TEXT)
    return True


async def _bot_is_privileged(bot: BotClient, chat_id: int, bot_id: int) -> bool:
    member = await bot.get_chat_member(chat_id, bot_id)
    if member is None:
        logger.error("bot.links.member_lookup_failed", chat_id=chat_id)
        return False
    return member.get("status") in PRIVILEGED_MEMBER_STATUSES


async def _repost_cleaned(
    bot: BotClient, msg: IncomingMessage, matches: list[LinkMatch]
) -> bool:
    """Replace the user's message with a cleaned copy; False if it stays."""
    if not await bot.delete_message(msg.chat_id, msg.message_id):
        logger.warning(
            "bot.links.delete_failed",
            chat_id=msg.chat_id,
            message_id=msg.message_id,
        )
        return False
    await bot.send_message(
        msg.chat_id,
        f"{msg.display_name}: {apply_rewrites(msg.text, matches)}",
        disable_link_preview=wants_preview_suppressed(matches),
    )
    return True


async def handle_links(
    bot: BotClient,
    rewriter: LinkRewriter,
    groups: GroupRegistry,
    msg: IncomingMessage,
    *,
    bot_id: int | None = None,
) -> bool:
    """Answer recognized links.

    When ``bot_id`` is given and the bot administers the chat, the original
    message is deleted and reposted with every link rewritten. Otherwise, or
    when the delete fails, each family gets its own reply.
    """
    kinds = rewriter.detected_kinds(msg.text)
    if not kinds:
        return False
    if is_group_chat_type(msg.chat_type):
        await groups.record_group(msg.chat_id)

    rewrites: list[tuple[LinkKind, list[LinkMatch]]] = []
    for kind in kinds:
        matches = rewriter.rewrite(kind, msg.text)
        if matches:
            rewrites.append((kind, matches))
    if not rewrites:
        return False

    if bot_id is not None and await _bot_is_privileged(bot, msg.chat_id, bot_id):
        every_match = [match for _, matches in rewrites for match in matches]
        if await _repost_cleaned(bot, msg, every_match):
            return True

    for kind, matches in rewrites:
        if kind is LinkKind.MUSIC:
            await bot.send_message(
                msg.chat_id,
                TRACKING_REMOVED_HEADER,
                reply_to_message_id=msg.message_id,
                reply_markup=cleaned_links_keyboard(matches),
            )
        else:
            await bot.send_message(
                msg.chat_id,
                f"{EMBED_LINKS_HEADER}\n{apply_rewrites(msg.text, matches)}",
                reply_to_message_id=msg.message_id,
                disable_link_preview=wants_preview_suppressed(matches),
            )
    return True


async def handle_question(
    bot: BotClient,
    asker: Asker,
    replies: ReplyTracker,
    msg: IncomingMessage,
    settings: PlanaSettings,
) -> bool:
    if msg.sender_is_bot or not msg.text.strip():
        return False
    question = extract_question(msg.text, settings.question_prefixes)
    if question is None:
        if msg.reply_to_message_id is None or not await replies.is_known_reply(
            msg.chat_id, msg.reply_to_message_id
        ):
            return False
        question = msg.text.strip()
    if not is_question_allowed(
        msg.chat_id,
        msg.sender_id,
        is_private=msg.is_private,
        allowed_chat_ids=settings.allowed_chat_ids,
        allowed_user_ids=settings.allowed_user_ids,
    ):
        logger.info(
            "bot.question.denied", chat_id=msg.chat_id, user_id=msg.sender_id
        )
        return False

    if not question:
        answer = EMPTY_QUESTION_MESSAGE
    else:
        user_id = str(msg.sender_id) if msg.sender_id is not None else "unknown"
        try:
            answer = truncate_message((await asker.ask(question, user_id)).strip())
        except AskError as exc:
            logger.error("bot.question.ask_failed", chat_id=msg.chat_id, error=str(exc))
            answer = ASK_FAILED_MESSAGE

    sent = await bot.send_message(
        msg.chat_id, answer, reply_to_message_id=msg.message_id
    )
    if sent is not None:
        await replies.record_reply(msg.chat_id, sent["message_id"])
    return True


async def announce_startup(bot: BotClient, groups: GroupRegistry) -> int:
    """Send the startup message to every known group; returns the sent count."""
    sent = 0
    for chat_id in sorted(await groups.list_groups()):
        result = await bot.send_message(chat_id, STARTUP_MESSAGE)
        if result is None:
            logger.warning("bot.startup.announce_failed", chat_id=chat_id)
            continue
        sent += 1
    return sent
