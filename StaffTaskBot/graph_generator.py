import logging
import os
from datetime import datetime, timedelta
from typing import Iterable, Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

import config
from models import Assignment, Statistics
from utils import status_label

logger = logging.getLogger(__name__)

# Настройки стиля графиков
plt.style.use('seaborn-v0_8-darkgrid')
sns.set_palette("husl")

STATUS_ORDER = ['assigned', 'accepted', 'in_progress', 'completed', 'rejected']
PRIORITY_ORDER = ['low', 'medium', 'high', 'urgent']


class GraphGenerator:
    """Генератор графиков статистики назначений"""

    def __init__(self, graphs_dir: Optional[str] = None):
        self.graphs_dir = graphs_dir or config.config.GRAPHS_DIR
        os.makedirs(self.graphs_dir, exist_ok=True)

    def _save_graph(self, filename: str) -> str:
        """Сохраняет график и возвращает путь к файлу"""
        path = os.path.join(self.graphs_dir, filename)
        plt.tight_layout()
        plt.savefig(path, dpi=150, bbox_inches='tight')
        plt.close()
        return path

    def generate_statistics_graph(self,
                                  stats: Optional[Statistics],
                                  assignments: Iterable[Assignment],
                                  staff_id: int = 0) -> str:
        """
        Слева - сводка (из отдельного запроса статистики), справа -
        тепловая карта статус x приоритет по загруженной странице.
        """
        rows = [
            {
                'status': a.status.value,
                'priority': a.task.priority.value if a.task else 'medium',
            }
            for a in assignments
        ]

        if stats is None and not rows:
            return self._generate_empty_graph("No task data yet", staff_id)

        fig, (ax_summary, ax_matrix) = plt.subplots(1, 2, figsize=(14, 6))

        if stats is not None:
            labels = ['Total', 'Pending', 'In Progress', 'Completed', 'Overdue']
            values = [stats.total, stats.pending, stats.in_progress, stats.completed, stats.overdue]
            colors = ['#3498db', '#f1c40f', '#9b59b6', '#2ecc71', '#e74c3c']
            positions = np.arange(len(labels))

            bars = ax_summary.bar(positions, values, color=colors, alpha=0.85)
            ax_summary.set_xticks(positions)
            ax_summary.set_xticklabels(labels, rotation=20)
            ax_summary.set_title('All assignments', fontsize=14, fontweight='bold')

            for bar, value in zip(bars, values):
                ax_summary.annotate(f'{value}',
                                    xy=(bar.get_x() + bar.get_width() / 2, bar.get_height()),
                                    xytext=(0, 3), textcoords='offset points',
                                    ha='center', va='bottom', fontsize=11)
        else:
            ax_summary.text(0.5, 0.5, 'Statistics unavailable',
                            ha='center', va='center', fontsize=13,
                            transform=ax_summary.transAxes)
            ax_summary.set_axis_off()

        if rows:
            df = pd.DataFrame(rows)
            matrix = pd.crosstab(df['status'], df['priority'])
            matrix = matrix.reindex(index=STATUS_ORDER, columns=PRIORITY_ORDER, fill_value=0)
            matrix.index = [status_label(s) for s in matrix.index]

            sns.heatmap(matrix, annot=True, fmt='d', cmap='YlGnBu', cbar=False, ax=ax_matrix)
            ax_matrix.set_title('This page: status by priority', fontsize=14, fontweight='bold')
            ax_matrix.set_xlabel('Priority')
            ax_matrix.set_ylabel('')
        else:
            ax_matrix.text(0.5, 0.5, 'No tasks on this page',
                           ha='center', va='center', fontsize=13,
                           transform=ax_matrix.transAxes)
            ax_matrix.set_axis_off()

        fig.suptitle('📊 Task statistics', fontsize=16, fontweight='bold')
        return self._save_graph(f'statistics_{staff_id}.png')

    def _generate_empty_graph(self, message: str, staff_id: int = 0) -> str:
        """Создает пустой график с сообщением"""
        plt.figure(figsize=(8, 6))
        plt.text(0.5, 0.5, message,
                 ha='center', va='center',
                 fontsize=14, fontweight='bold',
                 transform=plt.gca().transAxes)
        plt.title('📊 Task statistics', fontsize=16, fontweight='bold')
        plt.axis('off')
        return self._save_graph(f'empty_{staff_id}.png')

    def cleanup_old_graphs(self, hours: int = 1) -> int:
        """Удаляет старые графики, возвращает число удаленных"""
        removed = 0
        try:
            for filename in os.listdir(self.graphs_dir):
                filepath = os.path.join(self.graphs_dir, filename)
                if os.path.isfile(filepath):
                    # Проверяем время изменения
                    modified = datetime.fromtimestamp(os.path.getmtime(filepath))
                    if datetime.now() - modified > timedelta(hours=hours):
                        os.remove(filepath)
                        removed += 1
        except OSError as e:
            logger.warning(f"Failed to clean up graphs: {e}")
        return removed


def render_statistics_chart(stats: Optional[Statistics],
                            assignments: Iterable[Assignment],
                            staff_id: int = 0,
                            graphs_dir: Optional[str] = None) -> str:
    """Рисует карточку статистики в PNG и возвращает путь"""
    return GraphGenerator(graphs_dir).generate_statistics_graph(stats, assignments, staff_id)
