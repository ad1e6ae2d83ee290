import logging
from typing import Optional

from aiogram import Router, F, html
from aiogram.filters import CommandStart, ExceptionTypeFilter
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, CallbackQuery, ErrorEvent
from sqlalchemy.orm import Session

import config
import keyboards as kb
from board import TaskBoard, close_board, get_board, open_board
from database import delete_staff_session, fetch_staff_session, get_db
from errors import Unauthorized

logger = logging.getLogger(__name__)

router = Router()

SIGN_IN_HINT = (
    f"Sign in on the portal ({config.config.APP_ORIGIN}) and link your Telegram account, "
    "then send /start again."
)
SIGN_IN_TEXT = "🔐 <b>You are not signed in.</b>\n\n" + SIGN_IN_HINT


async def ensure_board(message: Message, telegram_id: int) -> Optional[TaskBoard]:
    """Доска пользователя. Открывает ее по сохраненной сессии, если нужно."""
    board = get_board(telegram_id)
    if board is not None:
        return board

    db: Session = next(get_db())
    session = fetch_staff_session(db, telegram_id)
    if session is None:
        await message.answer(SIGN_IN_TEXT, parse_mode="HTML")
        return None

    board = open_board(telegram_id, session)
    await board.open()
    return board


@router.message(CommandStart())
async def start_command(message: Message, state: FSMContext) -> None:
    """Обработчик команды /start"""
    await state.clear()
    close_board(message.from_user.id)

    board = await ensure_board(message, message.from_user.id)
    if board is None:
        return

    await show_main_menu(message, board)


async def show_main_menu(message: Message, board: TaskBoard) -> None:
    """Показывает главное меню"""
    session = board.session
    welcome_text = f"👋 Welcome, <b>{html.quote(session.display_name)}</b>!\n\n"
    if session.category:
        welcome_text += f"🩺 {session.category.capitalize()}\n\n"

    if board.error:
        welcome_text += f"⚠️ {board.error}\n\n"
    else:
        welcome_text += f"📋 You have <b>{board.store.total}</b> assigned tasks.\n\n"

    welcome_text += "Choose an action:"

    await message.answer(
        welcome_text,
        reply_markup=kb.get_main_menu_keyboard(),
        parse_mode="HTML"
    )


@router.message(F.text == kb.BACK_TO_MENU)
async def back_to_menu(message: Message, state: FSMContext) -> None:
    """Возврат в главное меню"""
    await state.clear()
    board = await ensure_board(message, message.from_user.id)
    if board is None:
        return
    board.hide_countdowns()
    await show_main_menu(message, board)


@router.callback_query(F.data == "back_to_menu")
async def back_to_menu_callback(callback: CallbackQuery) -> None:
    """Возврат в главное меню из inline-кнопки"""
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is not None:
        board.hide_countdowns()
        await show_main_menu(callback.message, board)
    await callback.answer()


@router.callback_query(F.data == "noop")
async def noop_callback(callback: CallbackQuery) -> None:
    await callback.answer()


@router.errors(ExceptionTypeFilter(Unauthorized))
async def unauthorized_error(event: ErrorEvent) -> bool:
    """Сессия истекла: закрываем доску и просим войти заново"""
    update = event.update
    source = update.message or update.callback_query
    if source is None:
        logger.warning(f"Unauthorized outside of a chat update: {event.exception}")
        return True

    telegram_id = source.from_user.id
    logger.info(f"Session of Telegram user {telegram_id} is no longer valid")
    close_board(telegram_id)

    db: Session = next(get_db())
    delete_staff_session(db, telegram_id)

    message = update.message or update.callback_query.message
    if update.callback_query is not None:
        await update.callback_query.answer("🔐 Session expired", show_alert=True)
    if message is not None:
        await message.answer(
            "🔐 <b>Your session has expired.</b>\n\n" + SIGN_IN_HINT,
            parse_mode="HTML"
        )
    return True
