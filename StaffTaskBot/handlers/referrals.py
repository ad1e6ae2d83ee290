import asyncio
import logging
from typing import Dict, Optional

from aiogram import Router, F, html
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import (
    Message, CallbackQuery, InlineQuery, InlineQueryResultArticle, InputTextMessageContent,
)

import keyboards as kb
import utils
from board import TaskBoard, get_board
from handlers.main_menu import ensure_board
from referrals import is_valid_email
from sharing import CopyAcknowledgement, ShareChannel, ShareMode, build_referral_link

logger = logging.getLogger(__name__)

router = Router()

SHARE_CHANNELS = (
    ShareChannel.WHATSAPP,
    ShareChannel.TELEGRAM,
    ShareChannel.TWITTER,
    ShareChannel.FACEBOOK,
    ShareChannel.LINKEDIN,
    ShareChannel.EMAIL,
)

# Отметки "Скопировано" по пользователям
_copy_acks: Dict[int, CopyAcknowledgement] = {}


class InviteStates(StatesGroup):
    waiting_for_name = State()
    waiting_for_email = State()


async def render_referral_card(board: TaskBoard, mode: ShareMode, copied: Optional[str] = None):
    """Текст и клавиатура карточки реферального кода. None, если кода нет."""
    code = await board.referrals.referral_code()
    if code is None:
        return None

    link = build_referral_link(board.origin, code)
    text = (
        "🎁 <b>YOUR REFERRAL CODE</b>\n\n"
        f"🔑 Code: <code>{html.quote(code)}</code>\n"
        f"🔗 Link: <code>{html.quote(link)}</code>\n\n"
        f"Sharing your <b>{mode.value}</b>. Choose a channel:"
    )
    if copied:
        text += f"\n\n✅ <b>{copied.capitalize()} copied!</b>"

    payloads = []
    for channel in SHARE_CHANNELS:
        payload = await board.share_referral(channel, mode)
        if payload is not None:
            payloads.append(payload)

    return text, kb.get_referral_keyboard(mode, payloads)


async def _edit_card(message: Message, board: TaskBoard, mode: ShareMode, copied: Optional[str] = None) -> None:
    card = await render_referral_card(board, mode, copied)
    if card is None:
        return
    text, markup = card
    try:
        await message.edit_text(text, reply_markup=markup, parse_mode="HTML")
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            raise


@router.message(F.text == kb.MENU_REFERRALS)
async def referrals_menu(message: Message) -> None:
    """Карточка реферального кода"""
    board = await ensure_board(message, message.from_user.id)
    if board is None:
        return

    board.hide_countdowns()
    card = await render_referral_card(board, ShareMode.LINK)
    if card is None:
        await message.answer("⚠️ Referral code is not available right now. Please try again later.")
        return

    text, markup = card
    await message.answer(text, reply_markup=markup, parse_mode="HTML")


@router.callback_query(F.data == "ref:open")
async def referrals_open_callback(callback: CallbackQuery) -> None:
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    board.hide_countdowns()
    card = await render_referral_card(board, ShareMode.LINK)
    if card is None:
        await callback.answer("⚠️ Referral code is not available right now", show_alert=True)
        return

    text, markup = card
    await callback.message.answer(text, reply_markup=markup, parse_mode="HTML")
    await callback.answer()


@router.callback_query(F.data.startswith("ref:mode:"))
async def referral_mode_callback(callback: CallbackQuery) -> None:
    """Переключает отправку ссылки или кода"""
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    mode = ShareMode(callback.data.split(":")[2])
    await _edit_card(callback.message, board, mode)
    await callback.answer()


@router.callback_query(F.data.startswith("share:"))
async def share_callback(callback: CallbackQuery) -> None:
    """Каналы без http-ссылки (email) - отправляем готовое письмо текстом"""
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    _, channel, mode = callback.data.split(":")
    payload = await board.share_referral(ShareChannel(channel), ShareMode(mode))
    if payload is None:
        await callback.answer("⚠️ Referral code is not available right now", show_alert=True)
        return

    text = ""
    if payload.subject:
        text += f"<b>Subject:</b> {html.quote(payload.subject)}\n\n"
    text += html.quote(payload.text)

    await callback.message.answer(text, parse_mode="HTML")
    await callback.answer()


@router.callback_query(F.data.startswith("copy:"))
async def copy_callback(callback: CallbackQuery) -> None:
    """Отправляет код/ссылку для копирования и показывает отметку на 2 секунды"""
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    mode = ShareMode(callback.data.split(":")[1])
    payload = await board.share_referral(ShareChannel.COPY, mode)
    if payload is None:
        await callback.answer("⚠️ Referral code is not available right now", show_alert=True)
        return

    await callback.message.answer(f"<code>{html.quote(payload.text)}</code>", parse_mode="HTML")

    message = callback.message
    telegram_id = callback.from_user.id

    def on_clear() -> None:
        asyncio.get_running_loop().create_task(_edit_card(message, board, ShareMode.LINK))

    ack = _copy_acks.get(telegram_id)
    if ack is None:
        ack = CopyAcknowledgement()
        _copy_acks[telegram_id] = ack
    ack.on_clear = on_clear
    ack.acknowledge(mode.value)

    await _edit_card(message, board, ShareMode.LINK, copied=mode.value)
    await callback.answer("✅ Copied! Tap the message to copy it.")


@router.callback_query(F.data == "ref:list")
async def referral_list_callback(callback: CallbackQuery) -> None:
    """Люди, зарегистрировавшиеся по коду"""
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    referrals = await board.referrals.referrals()
    if referrals is None:
        await callback.answer("❌ Failed to fetch referrals", show_alert=True)
        return

    if not referrals:
        text = "👥 <b>MY REFERRALS</b>\n\n📭 Nobody has joined with your code yet."
    else:
        text = f"👥 <b>MY REFERRALS</b> ({len(referrals)})\n\n"
        for referral in referrals:
            text += f"• <b>{html.quote(referral.name)}</b>"
            if referral.email:
                text += f" · {html.quote(referral.email)}"
            text += f" · joined {utils.format_date(referral.joined_at)}\n"

    await callback.message.answer(text, parse_mode="HTML", reply_markup=kb.get_referral_list_keyboard(referrals))
    await callback.answer()


# === ПРИГЛАШЕНИЕ ПО EMAIL ===

@router.callback_query(F.data == "ref:invite")
async def invite_start(callback: CallbackQuery, state: FSMContext) -> None:
    await state.set_state(InviteStates.waiting_for_name)
    await callback.message.answer("👤 Enter the name of the person you want to invite:",
                                  reply_markup=kb.get_cancel_keyboard())
    await callback.answer()


@router.message(InviteStates.waiting_for_name)
async def invite_name(message: Message, state: FSMContext) -> None:
    if message.text == kb.CANCEL:
        await state.clear()
        await message.answer("❌ Invitation cancelled", reply_markup=kb.get_main_menu_keyboard())
        return

    name = (message.text or "").strip()
    if len(name) < 2:
        await message.answer("❌ Name must be at least 2 characters")
        return

    await state.update_data(name=name)
    await state.set_state(InviteStates.waiting_for_email)
    await message.answer("📧 Enter their email:", reply_markup=kb.get_cancel_keyboard())


@router.message(InviteStates.waiting_for_email)
async def invite_email(message: Message, state: FSMContext) -> None:
    if message.text == kb.CANCEL:
        await state.clear()
        await message.answer("❌ Invitation cancelled", reply_markup=kb.get_main_menu_keyboard())
        return

    email = (message.text or "").strip()
    if not is_valid_email(email):
        await message.answer("❌ Please enter a valid email")
        return

    board = await ensure_board(message, message.from_user.id)
    if board is None:
        await state.clear()
        return

    data = await state.get_data()
    await state.clear()

    _, result = await board.referrals.invite(data["name"], email)
    await message.answer(result, reply_markup=kb.get_main_menu_keyboard())


# === ОТПРАВКА ЧЕРЕЗ TELEGRAM (inline) ===

@router.inline_query()
async def inline_share(inline_query: InlineQuery) -> None:
    """Кнопка "Share in Telegram": готовое сообщение с реферальной ссылкой"""
    board = get_board(inline_query.from_user.id)
    payload = await board.share_referral(ShareChannel.TELEGRAM) if board is not None else None

    if payload is None:
        await inline_query.answer([], cache_time=5, is_personal=True)
        return

    result = InlineQueryResultArticle(
        id="referral",
        title="🎁 Share my referral link",
        description=payload.text,
        input_message_content=InputTextMessageContent(message_text=payload.text),
    )
    await inline_query.answer([result], cache_time=5, is_personal=True)
