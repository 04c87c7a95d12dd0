"""
Tests for column name classification.
"""
import pytest

from taskboard.classifier import ColumnClass, classify_column, find_column_for
from taskboard.schema import Column, TaskStatus


@pytest.mark.parametrize("name", [
    "Done", "Done ✅", "Completed Tasks", "closed-issues", "FINISHED", "Complete",
    "Done & Archived",
])
def test_done_columns(name):
    assert classify_column(name) is ColumnClass.DONE


@pytest.mark.parametrize("name", [
    "In Progress", "in-progress", "wip", "W I P", "Active Sprint", "Doing", "Working on it",
])
def test_in_progress_columns(name):
    assert classify_column(name) is ColumnClass.IN_PROGRESS


@pytest.mark.parametrize("name", ["To Do", "todo", "Backlog", "Queue", "Planned work"])
def test_todo_columns(name):
    assert classify_column(name) is ColumnClass.TODO


@pytest.mark.parametrize("name", ["Blocked", "Review", "", "QA", "Ideas"])
def test_unknown_columns(name):
    assert classify_column(name) is ColumnClass.UNKNOWN


def test_none_name_is_unknown():
    assert classify_column(None) is ColumnClass.UNKNOWN


def test_done_beats_in_progress():
    # "progress" would match too, DONE is checked first
    assert classify_column("Progress done") is ColumnClass.DONE


def test_in_progress_beats_todo():
    assert classify_column("Backlog (active)") is ColumnClass.IN_PROGRESS


def test_status_mapping():
    assert ColumnClass.DONE.status is TaskStatus.DONE
    assert ColumnClass.IN_PROGRESS.status is TaskStatus.IN_PROGRESS
    assert ColumnClass.TODO.status is TaskStatus.TODO
    assert ColumnClass.UNKNOWN.status is None


class TestFindColumnFor:

    def _columns(self):
        return [
            Column(id="c1", project_id="p", name="Backlog", position=1),
            Column(id="c2", project_id="p", name="Doing", position=2),
            Column(id="c3", project_id="p", name="Closed", position=3),
            Column(id="c4", project_id="p", name="Done", position=4, is_default=True),
        ]

    def test_first_match_in_board_order(self):
        assert find_column_for(self._columns(), ColumnClass.TODO).id == "c1"
        assert find_column_for(self._columns(), ColumnClass.IN_PROGRESS).id == "c2"

    def test_default_column_preferred_for_done(self):
        assert find_column_for(self._columns(), ColumnClass.DONE).id == "c4"

    def test_no_match(self):
        columns = [Column(id="x", project_id="p", name="Review")]
        assert find_column_for(columns, ColumnClass.DONE) is None
