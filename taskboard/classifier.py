"""
Rule-based column classifier.

Boards have no typed "column kind" field: owners name columns freely
("Done ✅", "WIP", "Backlog"). The status a task should carry when it lands in
a column is inferred from that name. Names that match nothing classify as
UNKNOWN and callers leave the task status alone.
"""
import re
from enum import Enum
from typing import Iterable, Optional

from .schema import Column, TaskStatus


class ColumnClass(Enum):
    DONE = "DONE"
    IN_PROGRESS = "IN_PROGRESS"
    TODO = "TODO"
    UNKNOWN = "UNKNOWN"

    @property
    def status(self) -> Optional[TaskStatus]:
        """Task status implied by this class, None for UNKNOWN."""
        if self is ColumnClass.UNKNOWN:
            return None
        return TaskStatus(self.value)


# Checked in this order: "Done & Archived" must never hit the "doing" rules.
DONE_WORDS = ["done", "complete", "completed", "finished", "closed"]
IN_PROGRESS_WORDS = ["progress", "doing", "active", "working"]
IN_PROGRESS_NORMALIZED = ["inprogress", "wip"]
TODO_WORDS = ["to do", "todo", "backlog", "queue", "planned"]


def classify_column(name: str) -> ColumnClass:
    """Map a free-text column name to a lifecycle class."""
    text = (name or "").lower()
    normalized = re.sub(r"[\s-]", "", text)

    if any(w in text for w in DONE_WORDS):
        return ColumnClass.DONE

    if any(w in text for w in IN_PROGRESS_WORDS) or \
            any(w in normalized for w in IN_PROGRESS_NORMALIZED):
        return ColumnClass.IN_PROGRESS

    if any(w in text for w in TODO_WORDS):
        return ColumnClass.TODO

    return ColumnClass.UNKNOWN


def find_column_for(columns: Iterable[Column], target: ColumnClass) -> Optional[Column]:
    """
    First column (in board order) whose name classifies as target.

    For DONE the project's default column wins when it classifies as done too.
    """
    matches = [c for c in columns if classify_column(c.name) is target]
    if not matches:
        return None
    if target is ColumnClass.DONE:
        for column in matches:
            if column.is_default:
                return column
    return matches[0]
