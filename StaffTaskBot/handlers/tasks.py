import logging
from typing import Dict, Mapping, Optional

from aiogram import Router, F, html
from aiogram.exceptions import TelegramBadRequest, TelegramRetryAfter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import Message, CallbackQuery

import keyboards as kb
import utils
from board import TaskBoard
from countdown import Countdown, countdown_for
from handlers.main_menu import ensure_board
from models import Assignment
from referrals import calculate_progress, is_referral_eligible, referral_progress_text

logger = logging.getLogger(__name__)

router = Router()


class NoteStates(StatesGroup):
    waiting_for_note = State()


# === ОТРИСОВКА ===

def render_task_list(board: TaskBoard, countdowns: Optional[Dict[int, Countdown]] = None) -> str:
    store = board.store
    title = "📋 <b>MY TASKS</b>"
    if store.status_filter:
        title += f" · {utils.status_label(store.status_filter.value)}"

    text = f"{title}\n"
    text += f"Page {store.page}/{store.total_pages} · {store.total} total\n\n"

    if board.error:
        text += f"⚠️ <b>{html.quote(board.error)}</b>\n\n"

    if not store.items:
        text += "📭 No tasks here yet."
        return text

    countdowns = countdowns or {}
    for assignment in store.items:
        task = assignment.task
        priority = utils.PRIORITY_EMOJI.get(task.priority.value, "") if task else ""
        text += f"{utils.STATUS_EMOJI[assignment.status.value]} {priority} {html.quote(assignment.title)}"
        if assignment.due_date:
            text += f" · due {utils.format_date(assignment.due_date)}"
        progress = referral_progress_text(assignment)
        if progress:
            text += f" · 👥 {progress}"
        countdown = countdowns.get(assignment.id)
        if countdown is not None:
            text += f" · {'🔴' if countdown.is_urgent else '⏱'} {countdown.display}"
        text += "\n"

    page = board.page_statistics()
    text += (
        f"\n<i>This page: {page.pending} pending · {page.in_progress} in progress · "
        f"{page.completed} completed · {page.overdue} overdue</i>"
    )
    return text


def render_task_detail(assignment: Assignment, countdown: Optional[Countdown] = None) -> str:
    task = assignment.task
    text = f"📌 <b>{html.quote(assignment.title)}</b>\n\n"

    if task is not None:
        text += f"🗂 <b>Type:</b> {utils.task_type_label(task.task_type.value)}\n"
        text += f"{utils.PRIORITY_EMOJI.get(task.priority.value, '')} <b>Priority:</b> {task.priority.value.capitalize()}\n"
    text += f"{utils.STATUS_EMOJI[assignment.status.value]} <b>Status:</b> {utils.status_label(assignment.status.value)}\n"
    text += f"📅 <b>Due:</b> {utils.format_date(assignment.due_date)}\n"

    if assignment.started_at:
        text += f"▶️ <b>Started:</b> {utils.format_date(assignment.started_at)}\n"
    if assignment.completed_at:
        text += f"🏁 <b>Completed:</b> {utils.format_date(assignment.completed_at)}\n"

    text += f"📈 <b>Progress:</b> {calculate_progress(assignment)}%\n"

    progress = referral_progress_text(assignment)
    if progress:
        text += f"👥 <b>Referrals:</b> {progress}"
        if task is not None and task.target_count > 1:
            text += f" of {task.target_count}"
        text += "\n"

    if countdown is not None:
        if countdown.is_expired:
            text += "⌛ <b>Referral window expired</b>\n"
        else:
            text += f"{'🔴' if countdown.is_urgent else '⏱'} <b>Time left:</b> {countdown.display}\n"

    if task is not None and task.description:
        text += f"\n📝 {html.quote(task.description)}\n"
    if assignment.notes:
        text += f"\n🗒 <b>Notes:</b> {html.quote(assignment.notes)}\n"
    return text


async def _edit(message: Message, text: str, reply_markup) -> None:
    try:
        await message.edit_text(text, reply_markup=reply_markup, parse_mode="HTML")
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            raise


def _list_listener(board: TaskBoard, message: Message):
    async def on_tick(values: Mapping[int, Countdown]) -> None:
        countdowns = board.countdowns()
        try:
            await _edit(message, render_task_list(board, countdowns), _list_keyboard(board, countdowns))
        except TelegramRetryAfter as e:
            logger.warning(f"Countdown update throttled for {e.retry_after}s")
    return on_tick


def _detail_listener(board: TaskBoard, message: Message, assignment_id: int):
    async def on_tick(values: Mapping[int, Countdown]) -> None:
        if assignment_id not in values:
            return
        assignment = board.store.get(assignment_id)
        if assignment is None:
            return
        try:
            await _edit(
                message,
                render_task_detail(assignment, values[assignment_id]),
                kb.get_task_detail_keyboard(assignment, is_referral_eligible(assignment)),
            )
        except TelegramRetryAfter as e:
            logger.warning(f"Countdown update throttled for {e.retry_after}s")
    return on_tick


def _list_keyboard(board: TaskBoard, countdowns: Dict[int, Countdown]):
    store = board.store
    return kb.get_task_list_keyboard(
        store.items,
        store.page,
        store.total_pages,
        store.status_filter,
        countdowns,
        has_error=board.error is not None,
    )


async def show_task_list(message: Message, board: TaskBoard, edit: bool = False) -> None:
    """Показывает список и подписывает его на тик таймеров"""
    if not edit:
        message = await message.answer(render_task_list(board), reply_markup=_list_keyboard(board, {}), parse_mode="HTML")

    countdowns = board.show_countdowns(_list_listener(board, message))
    if edit or countdowns:
        await _edit(message, render_task_list(board, countdowns), _list_keyboard(board, countdowns))


async def show_task_detail(message: Message, board: TaskBoard, assignment: Assignment) -> None:
    board.show_countdowns(_detail_listener(board, message, assignment.id))
    await _edit(
        message,
        render_task_detail(assignment, countdown_for(assignment)),
        kb.get_task_detail_keyboard(assignment, is_referral_eligible(assignment)),
    )


# === СПИСОК ===

@router.message(F.text == kb.MENU_TASKS)
async def my_tasks(message: Message) -> None:
    """Список назначений сотрудника"""
    board = await ensure_board(message, message.from_user.id)
    if board is None:
        return
    await show_task_list(message, board)


@router.message(F.text == kb.MENU_REFRESH)
async def refresh_tasks(message: Message) -> None:
    board = await ensure_board(message, message.from_user.id)
    if board is None:
        return
    if await board.refresh():
        await message.answer("🔄 Tasks refreshed")
    await show_task_list(message, board)


@router.callback_query(F.data.startswith("tasks:"))
async def task_list_callback(callback: CallbackQuery) -> None:
    """Фильтр, страницы, обновление списка"""
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    parts = callback.data.split(":")
    action = parts[1]

    if action == "filter":
        value = parts[2]
        await board.change_filter(None if value == "all" else value)
    elif action == "page":
        await board.change_page(int(parts[2]))
    elif action == "refresh":
        await board.refresh()
    elif action == "dismiss":
        board.dismiss_error()
    # tasks:back - просто перерисовываем список

    await show_task_list(callback.message, board, edit=True)
    await callback.answer(f"⚠️ {board.error}" if board.error else None)


@router.callback_query(F.data.startswith("task:"))
async def task_detail_callback(callback: CallbackQuery) -> None:
    """Карточка назначения"""
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    assignment = board.store.get(int(callback.data.split(":")[1]))
    if assignment is None:
        await callback.answer("❌ Task not found, refresh the list", show_alert=True)
        return

    await show_task_detail(callback.message, board, assignment)
    await callback.answer()


# === СМЕНА СТАТУСА ===

@router.callback_query(F.data.startswith("status:"))
async def change_status_callback(callback: CallbackQuery) -> None:
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    _, assignment_id, new_status = callback.data.split(":")
    outcome = await board.request_transition(int(assignment_id), new_status)
    await callback.answer(outcome.message, show_alert=not outcome.success)

    assignment = board.store.get(int(assignment_id))
    if assignment is not None:
        await show_task_detail(callback.message, board, assignment)
    else:
        await show_task_list(callback.message, board, edit=True)


@router.callback_query(F.data.startswith("note:"))
async def change_status_with_note(callback: CallbackQuery, state: FSMContext) -> None:
    """Сначала спрашиваем заметку, потом меняем статус"""
    _, assignment_id, new_status = callback.data.split(":")
    await state.set_state(NoteStates.waiting_for_note)
    await state.update_data(assignment_id=int(assignment_id), new_status=new_status)

    await callback.message.answer(
        f"🗒 Enter a note for <b>{utils.status_label(new_status)}</b> (or press 'Skip'):",
        reply_markup=kb.get_cancel_keyboard(allow_skip=True),
        parse_mode="HTML"
    )
    await callback.answer()


@router.message(NoteStates.waiting_for_note)
async def process_note(message: Message, state: FSMContext) -> None:
    board = await ensure_board(message, message.from_user.id)
    if board is None:
        await state.clear()
        return

    if message.text == kb.CANCEL:
        await state.clear()
        await message.answer("❌ Status change cancelled", reply_markup=kb.get_main_menu_keyboard())
        return

    data = await state.get_data()
    await state.clear()

    notes = None if message.text == kb.SKIP else (message.text or "").strip() or None
    outcome = await board.request_transition(data["assignment_id"], data["new_status"], notes)
    await message.answer(outcome.message, reply_markup=kb.get_main_menu_keyboard())
    await show_task_list(message, board)
