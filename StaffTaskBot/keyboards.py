from typing import Dict, Iterable, Optional, Sequence

from aiogram.types import ReplyKeyboardMarkup, KeyboardButton, InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.keyboard import ReplyKeyboardBuilder, InlineKeyboardBuilder

import utils
from countdown import Countdown
from models import Assignment, AssignmentStatus, ReferralRecord
from sharing import ShareChannel, ShareMode, SharePayload, referral_whatsapp_url
from transitions import allowed_targets

MENU_TASKS = "📋 My Tasks"
MENU_STATISTICS = "📊 Statistics"
MENU_REFERRALS = "🎁 Referrals"
MENU_REFRESH = "🔄 Refresh"
BACK_TO_MENU = "⬅️ Back to menu"
CANCEL = "❌ Cancel"
SKIP = "⏭️ Skip"

FILTERS = (
    ("All", "all"),
    ("📥", AssignmentStatus.ASSIGNED.value),
    ("👌", AssignmentStatus.ACCEPTED.value),
    ("⏳", AssignmentStatus.IN_PROGRESS.value),
    ("✅", AssignmentStatus.COMPLETED.value),
    ("❌", AssignmentStatus.REJECTED.value),
)

SHARE_LABELS = {
    ShareChannel.WHATSAPP: "💬 WhatsApp",
    ShareChannel.EMAIL: "📧 Email",
    ShareChannel.TWITTER: "🐦 Twitter",
    ShareChannel.FACEBOOK: "📘 Facebook",
    ShareChannel.LINKEDIN: "💼 LinkedIn",
    ShareChannel.TELEGRAM: "✈️ Telegram",
}


def get_main_menu_keyboard() -> ReplyKeyboardMarkup:
    """Создает главное меню"""
    builder = ReplyKeyboardBuilder()
    builder.add(KeyboardButton(text=MENU_TASKS))
    builder.add(KeyboardButton(text=MENU_STATISTICS))
    builder.add(KeyboardButton(text=MENU_REFERRALS))
    builder.add(KeyboardButton(text=MENU_REFRESH))
    builder.adjust(2)
    return builder.as_markup(resize_keyboard=True)


def get_back_keyboard() -> ReplyKeyboardMarkup:
    """Создает клавиатуру с кнопкой 'Назад'"""
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=BACK_TO_MENU)]],
        resize_keyboard=True
    )


def get_cancel_keyboard(allow_skip: bool = False) -> ReplyKeyboardMarkup:
    """Создает клавиатуру с кнопкой 'Отмена'"""
    keyboard = [[KeyboardButton(text=SKIP)]] if allow_skip else []
    keyboard.append([KeyboardButton(text=CANCEL)])
    return ReplyKeyboardMarkup(keyboard=keyboard, resize_keyboard=True)


def task_button_text(assignment: Assignment, countdown: Optional[Countdown] = None) -> str:
    emoji = utils.STATUS_EMOJI.get(assignment.status.value, "📌")
    title = assignment.title or f"Task #{assignment.task_id}"
    if len(title) > 28:
        title = title[:27] + "…"
    text = f"{emoji} {title}"
    if countdown is not None:
        text += f" ⏱ {countdown.display}"
    return text


def get_task_list_keyboard(assignments: Sequence[Assignment],
                           page: int,
                           total_pages: int,
                           current_filter: Optional[AssignmentStatus] = None,
                           countdowns: Optional[Dict[int, Countdown]] = None,
                           has_error: bool = False) -> InlineKeyboardMarkup:
    """Список назначений: задачи, фильтр, страницы"""
    builder = InlineKeyboardBuilder()
    countdowns = countdowns or {}
    rows = []

    for assignment in assignments:
        builder.add(InlineKeyboardButton(
            text=task_button_text(assignment, countdowns.get(assignment.id)),
            callback_data=f"task:{assignment.id}"
        ))
        rows.append(1)

    selected = current_filter.value if current_filter else "all"
    for label, value in FILTERS:
        builder.add(InlineKeyboardButton(
            text=f"• {label} •" if value == selected else label,
            callback_data=f"tasks:filter:{value}"
        ))
    rows.append(len(FILTERS))

    if total_pages > 1:
        builder.add(InlineKeyboardButton(
            text="◀️" if page > 1 else "·",
            callback_data=f"tasks:page:{page - 1}" if page > 1 else "noop"
        ))
        builder.add(InlineKeyboardButton(text=f"{page}/{total_pages}", callback_data="noop"))
        builder.add(InlineKeyboardButton(
            text="▶️" if page < total_pages else "·",
            callback_data=f"tasks:page:{page + 1}" if page < total_pages else "noop"
        ))
        rows.append(3)

    builder.add(InlineKeyboardButton(text="🔄 Refresh", callback_data="tasks:refresh"))
    if has_error:
        builder.add(InlineKeyboardButton(text="✖️ Dismiss", callback_data="tasks:dismiss"))
        rows.append(2)
    else:
        rows.append(1)

    builder.adjust(*rows)
    return builder.as_markup()


def get_task_detail_keyboard(assignment: Assignment, referral_eligible: bool = False) -> InlineKeyboardMarkup:
    """Кнопки доступны только для разрешенных переходов"""
    builder = InlineKeyboardBuilder()
    targets = allowed_targets(assignment.status)

    for target in targets:
        builder.add(InlineKeyboardButton(
            text=f"{utils.STATUS_EMOJI[target.value]} {utils.status_label(target.value)}",
            callback_data=f"status:{assignment.id}:{target.value}"
        ))
    for target in targets:
        builder.add(InlineKeyboardButton(
            text=f"📝 {utils.status_label(target.value)} + note",
            callback_data=f"note:{assignment.id}:{target.value}"
        ))

    extra = []
    if referral_eligible:
        builder.add(InlineKeyboardButton(text="🎁 Share referral", callback_data="ref:open"))
        extra.append(1)

    builder.add(InlineKeyboardButton(text="⬅️ Back to tasks", callback_data="tasks:back"))
    extra.append(1)

    builder.adjust(*([2] * len(targets)), *extra)
    return builder.as_markup()


def get_referral_keyboard(mode: ShareMode = ShareMode.LINK,
                          payloads: Iterable[SharePayload] = ()) -> InlineKeyboardMarkup:
    """Каналы для отправки реферального кода"""
    builder = InlineKeyboardBuilder()
    count = 0

    for payload in payloads:
        if payload.url and payload.url.startswith("http"):
            builder.add(InlineKeyboardButton(text=SHARE_LABELS[payload.channel], url=payload.url))
        else:
            # mailto: Telegram в url-кнопках не принимает
            builder.add(InlineKeyboardButton(
                text=SHARE_LABELS[payload.channel],
                callback_data=f"share:{payload.channel.value}:{mode.value}"
            ))
        count += 1

    other = ShareMode.CODE if mode == ShareMode.LINK else ShareMode.LINK
    builder.add(InlineKeyboardButton(text="📋 Copy link", callback_data=f"copy:{ShareMode.LINK.value}"))
    builder.add(InlineKeyboardButton(text="📋 Copy code", callback_data=f"copy:{ShareMode.CODE.value}"))
    builder.add(InlineKeyboardButton(
        text="📤 Share in Telegram",
        switch_inline_query=""
    ))
    builder.add(InlineKeyboardButton(text=f"🔁 Share {other.value} instead", callback_data=f"ref:mode:{other.value}"))
    builder.add(InlineKeyboardButton(text="👥 My referrals", callback_data="ref:list"))
    builder.add(InlineKeyboardButton(text="✉️ Invite by email", callback_data="ref:invite"))

    builder.adjust(*([2] * ((count + 1) // 2)), 2, 1, 1, 2)
    return builder.as_markup()


def get_referral_list_keyboard(referrals: Sequence[ReferralRecord]) -> InlineKeyboardMarkup:
    """Кнопки WhatsApp для рефералов с телефоном"""
    builder = InlineKeyboardBuilder()

    for referral in referrals:
        url = referral_whatsapp_url(referral.phone, referral.name)
        if url:
            builder.add(InlineKeyboardButton(text=f"💬 {referral.name[:30]}", url=url))

    builder.add(InlineKeyboardButton(text="⬅️ Back", callback_data="ref:open"))
    builder.adjust(1)
    return builder.as_markup()


def get_statistics_keyboard() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.add(InlineKeyboardButton(text="📈 Chart", callback_data="stats:chart"))
    builder.add(InlineKeyboardButton(text="🔄 Refresh", callback_data="stats:refresh"))
    builder.adjust(2)
    return builder.as_markup()
