import asyncio
import logging

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery, FSInputFile

import keyboards as kb
from board import TaskBoard
from graph_generator import GraphGenerator
from handlers.main_menu import ensure_board
from task_stats import completion_rate

logger = logging.getLogger(__name__)

router = Router()


def render_statistics(board: TaskBoard) -> str:
    """Карточка по всем назначениям + сводка по текущей странице"""
    stats_text = "📊 <b>TASK STATISTICS</b>\n\n"

    stats = board.statistics
    if stats is not None:
        stats_text += f"📋 Total: <b>{stats.total}</b>\n"
        stats_text += f"📥 Pending: <b>{stats.pending}</b>\n"
        stats_text += f"⏳ In progress: <b>{stats.in_progress}</b>\n"
        stats_text += f"✅ Completed: <b>{stats.completed}</b>\n"
        stats_text += f"⏰ Overdue: <b>{stats.overdue}</b>\n"
        stats_text += f"🎯 Completion rate: <b>{completion_rate(stats):.1f}%</b>\n\n"

    page = board.page_statistics()
    stats_text += f"<i>This page ({page.total} tasks): {page.pending} pending, "
    stats_text += f"{page.in_progress} in progress, {page.completed} completed, {page.overdue} overdue</i>"
    return stats_text


@router.message(F.text == kb.MENU_STATISTICS)
async def get_statistics(message: Message) -> None:
    """Отображает статистику сотрудника"""
    board = await ensure_board(message, message.from_user.id)
    if board is None:
        return

    board.hide_countdowns()
    await message.answer(render_statistics(board), parse_mode="HTML", reply_markup=kb.get_statistics_keyboard())


@router.callback_query(F.data == "stats:refresh")
async def refresh_statistics(callback: CallbackQuery) -> None:
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    await board.refresh()
    await callback.message.answer(render_statistics(board), parse_mode="HTML",
                                  reply_markup=kb.get_statistics_keyboard())
    await callback.answer(f"⚠️ {board.error}" if board.error else "🔄 Updated")


@router.callback_query(F.data == "stats:chart")
async def statistics_chart(callback: CallbackQuery) -> None:
    """График статистики"""
    board = await ensure_board(callback.message, callback.from_user.id)
    if board is None:
        await callback.answer()
        return

    await callback.answer("🔄 Generating chart...")

    generator = GraphGenerator()
    generator.cleanup_old_graphs()

    try:
        graph_path = await asyncio.to_thread(
            generator.generate_statistics_graph,
            board.statistics,
            board.store.items,
            board.session.staff_id,
        )
    except (OSError, ValueError) as e:
        logger.error(f"Failed to render statistics chart: {e}")
        await callback.message.answer("❌ Failed to generate the chart")
        return

    await callback.message.answer_photo(
        FSInputFile(graph_path),
        caption="📈 <b>Task statistics</b>",
        parse_mode="HTML"
    )
