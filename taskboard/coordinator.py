"""
Board mutation coordinator: creates, moves and edits tasks.

Each mutation follows the same shape:
  validate → access check → (assignment) → position + status → one write → event

The suggestion call of auto-assignment runs before the write, so a slow LLM
never holds a transaction open. A move into a crowded slot first respaces the
target column in its own write. Writes that fail abort the request with
PersistenceError; publishing is best effort and never fails the request.
"""
import itertools
import logging
from typing import Any, Dict, List, Optional

from .assignment import AssignmentResolver
from .classifier import ColumnClass, classify_column, find_column_for
from .errors import (
    AssignmentIndeterminateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .events import ProjectEventChannel, project_topic
from .positions import allocate, is_crowded, neighbors_at, respace
from .schema import (
    Column,
    Priority,
    Project,
    Task,
    TaskStatus,
    new_id,
    utc_now,
)
from .store import BoardStore

logger = logging.getLogger(__name__)

# Columns every new project starts with: (name, color, is_default)
DEFAULT_COLUMNS = [
    ("To Do", "#64748B", False),
    ("In Progress", "#F59E0B", False),
    ("Done", "#10B981", True),
]


def _required(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


class BoardMutationCoordinator:
    """Orchestrates task creation and movement over a BoardStore."""

    def __init__(
        self,
        store: BoardStore,
        resolver: AssignmentResolver,
        events: Optional[ProjectEventChannel] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.events = events or ProjectEventChannel()

    # ── Access helpers ───────────────────────────────────────────────────────

    def _project_for(self, user_id: str, project_id: str) -> Project:
        project = self.store.get_project(project_id)
        if not project or not self.store.is_participant(project_id, user_id):
            raise NotFoundError("Project not found", field="projectId")
        return project

    def _task_for(self, user_id: str, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if not task or not self.store.is_participant(task.project_id, user_id):
            raise NotFoundError("Task not found", field="taskId")
        return task

    def _column_in(self, project_id: str, column_id: str) -> Column:
        column = self.store.get_column(column_id)
        if not column or column.project_id != project_id:
            raise NotFoundError("Column not found", field="columnId")
        return column

    def _assignee_in(self, project_id: str, assignee_id: Optional[str]) -> Optional[str]:
        """Normalize an explicit assignee; it must be a project participant."""
        if not assignee_id:
            return None
        if not self.store.is_participant(project_id, assignee_id):
            raise ValidationError("Assignee is not a member of this project", field="assigneeId")
        return assignee_id

    def _publish(self, project_id: str, event_name: str, payload: Dict[str, Any]) -> None:
        try:
            self.events.publish(project_topic(project_id), event_name, payload)
        except Exception as e:
            logger.warning(f"Failed to publish {event_name} for project {project_id}: {e}")

    # ── Tasks ────────────────────────────────────────────────────────────────

    def next_task_key(self, project: Project) -> str:
        """First unused "{KEY}-{n}", probing n = 1, 2, ..."""
        for n in itertools.count(1):
            key = f"{project.key}-{n}"
            if not self.store.task_key_exists(key):
                return key

    def create_task(
        self,
        user_id: str,
        title: str,
        description: Optional[str],
        project_id: str,
        column_id: str,
        priority: Optional[str] = None,
        assignee_id: Optional[str] = None,
        use_auto_assign: bool = False,
    ) -> Task:
        """Create a task at the end of a column."""
        title = _required(title, "title")
        project_id = _required(project_id, "projectId")
        column_id = _required(column_id, "columnId")
        parsed_priority = Priority.parse(priority)

        project = self._project_for(user_id, project_id)
        column = self._column_in(project.id, column_id)
        assignee_id = self._assignee_in(project.id, assignee_id)

        if use_auto_assign:
            candidates = self.store.list_candidates(project.id)
            assignee = self.resolver.resolve(
                title, description or "", candidates,
                explicit_assignee_id=assignee_id, project_id=project.id,
            )
            if not assignee:
                raise AssignmentIndeterminateError(
                    "No team member available for automatic assignment",
                    field="assigneeId",
                )
        else:
            assignee = assignee_id

        last = self.store.last_task_in_column(column.id)
        now = utc_now()
        task = Task(
            id=new_id(),
            key=self.next_task_key(project),
            title=title,
            description=description or "",
            project_id=project.id,
            column_id=column.id,
            position=allocate(last.position if last else None, None),
            priority=parsed_priority,
            assignee_id=assignee,
            creator_id=user_id,
            created_at=now,
            updated_at=now,
        )
        task.apply_status(classify_column(column.name).status or TaskStatus.TODO, now)

        self.store.insert_task(task)
        logger.info(f"Created {task.key} in '{column.name}' ({task.status.value})")

        self._publish(project.id, "task-created", {"task": task.to_dict()})
        return task

    def move_task(
        self,
        user_id: str,
        task_id: str,
        target_column_id: str,
        drop_index: Optional[int] = None,
    ) -> Task:
        """
        Move a task to drop_index within a column (same or another).

        drop_index counts the target column's tasks with the moving task
        removed; None appends. The status follows the column name unless the
        name is unrecognized, in which case it is left as is.
        """
        task_id = _required(task_id, "taskId")
        target_column_id = _required(target_column_id, "columnId")

        task = self._task_for(user_id, task_id)
        column = self._column_in(task.project_id, target_column_id)
        column_class = classify_column(column.name)

        siblings = [t for t in self.store.list_column_tasks(column.id) if t.id != task.id]
        positions = [t.position for t in siblings]
        source_column_id = task.column_id

        prev, nxt = neighbors_at(positions, drop_index)
        if is_crowded(prev, nxt):
            positions = respace(len(siblings))
            self.store.set_task_positions([(t.id, p) for t, p in zip(siblings, positions)])
            logger.info(f"Respaced {len(siblings)} tasks in '{column.name}'")
            prev, nxt = neighbors_at(positions, drop_index)

        task.position = allocate(prev, nxt)
        task.column_id = column.id
        if column_class is not ColumnClass.UNKNOWN:
            task.apply_status(column_class.status)

        self.store.update_task(task)
        logger.info(
            f"Moved {task.key} to '{column.name}' at {task.position} ({task.status.value})"
        )

        self._publish(task.project_id, "task-moved", {
            "task": task.to_dict(),
            "fromColumnId": source_column_id,
            "toColumnId": column.id,
        })
        return task

    def update_task(self, user_id: str, task_id: str, **fields) -> Task:
        """Edit title, description, priority, assigneeId or status of a task."""
        task = self._task_for(user_id, _required(task_id, "taskId"))

        if "title" in fields:
            task.title = _required(fields["title"], "title")
        if "description" in fields:
            task.description = fields["description"] or ""
        if "priority" in fields:
            task.priority = Priority.parse(fields["priority"])
        if "assigneeId" in fields:
            task.assignee_id = self._assignee_in(task.project_id, fields["assigneeId"])

        source_column_id = task.column_id
        if "status" in fields:
            self._place_for_status(task, TaskStatus.parse(fields["status"]))

        self.store.update_task(task)
        payload: Dict[str, Any] = {"task": task.to_dict()}
        if task.column_id != source_column_id:
            payload.update(fromColumnId=source_column_id, toColumnId=task.column_id)
        self._publish(task.project_id, "task-updated", payload)
        return task

    def _place_for_status(self, task: Task, status: TaskStatus) -> None:
        """
        Apply an edited status without contradicting the task's column.

        A task in a column whose name implies another status is moved to the
        end of the first column matching the new one. Columns with
        unrecognized names carry any status.
        """
        current = self.store.get_column(task.column_id)
        implied = classify_column(current.name).status if current else None
        if implied is not None and implied != status:
            target = find_column_for(self.store.list_columns(task.project_id),
                                     ColumnClass(status.value))
            if not target:
                raise ValidationError(f"No column for status {status.value}", field="status")
            last = self.store.last_task_in_column(target.id)
            task.column_id = target.id
            task.position = allocate(last.position if last else None, None)
        task.apply_status(status)

    def advance_task(self, user_id: str, task_id: str, status: str) -> Task:
        """Move a task to the end of the first column matching status."""
        target = TaskStatus.parse(status)
        task = self._task_for(user_id, _required(task_id, "taskId"))

        column = find_column_for(self.store.list_columns(task.project_id), ColumnClass(target.value))
        if not column:
            raise NotFoundError(f"No column for status {target.value}", field="column")
        return self.move_task(user_id, task.id, column.id, None)

    def analyze_task(self, user_id: str, project_id: str, title: str,
                     description: Optional[str] = None) -> Dict[str, Any]:
        """Preview auto-assignment and effort estimate for a task not yet created."""
        title = _required(title, "title")
        project = self._project_for(user_id, _required(project_id, "projectId"))
        candidates = self.store.list_candidates(project.id)
        return self.resolver.preview(title, description or "", candidates, project_id=project.id)

    # ── Board setup ──────────────────────────────────────────────────────────

    def create_project(
        self,
        user_id: str,
        name: str,
        key: str,
        description: str = "",
        color: Optional[str] = None,
    ) -> Project:
        """Create a project owned by user_id with the default columns."""
        name = _required(name, "name")
        key = _required(key, "key").upper()
        if not self.store.get_user(user_id):
            raise NotFoundError("User not found", field="userId")
        if self.store.get_project_by_key(key):
            raise ValidationError("Project key already exists", field="key")

        project = Project(
            id=new_id(),
            key=key,
            name=name,
            owner_id=user_id,
            description=description or "",
            color=color or "#3B82F6",
        )
        columns = [
            Column(id=new_id(), project_id=project.id, name=col_name,
                   position=float(i), color=col_color, is_default=is_default)
            for i, (col_name, col_color, is_default) in enumerate(DEFAULT_COLUMNS, start=1)
        ]
        self.store.create_project(project, columns)
        logger.info(f"Created project {project.key} for user {user_id}")
        return project

    def add_member(self, user_id: str, project_id: str, member_id: str,
                   role: str = "MEMBER") -> None:
        project = self._project_for(user_id, project_id)
        if not self.store.get_user(_required(member_id, "userId")):
            raise NotFoundError("User not found", field="userId")
        self.store.add_member(project.id, member_id, role)

    def remove_member(self, user_id: str, project_id: str, member_id: str) -> None:
        """Owner or ADMIN members may remove anyone but the owner."""
        project = self._project_for(user_id, project_id)
        member_id = _required(member_id, "memberId")
        if self.store.member_role(project.id, user_id) not in ("OWNER", "ADMIN"):
            raise PermissionDeniedError("Only the owner or an admin can remove members",
                                        field="memberId")
        if member_id == project.owner_id:
            raise ValidationError("Cannot remove project owner", field="memberId")
        if not self.store.remove_member(project.id, member_id):
            raise NotFoundError("Member not found", field="memberId")

        logger.info(f"Removed {member_id} from project {project.key}")
        self._publish(project.id, "member-removed", {"memberId": member_id, "projectId": project.id})

    def list_members(self, user_id: str, project_id: str) -> List[dict]:
        project = self._project_for(user_id, project_id)
        return self.store.list_members(project.id)

    def list_projects(self, user_id: str) -> List[Project]:
        return self.store.list_projects_for(user_id)

    def get_project(self, user_id: str, project_id: str) -> Project:
        return self._project_for(user_id, project_id)

    def add_column(self, user_id: str, project_id: str, name: str,
                   color: Optional[str] = None) -> Column:
        """Append a column to the right end of the board."""
        project = self._project_for(user_id, project_id)
        existing = self.store.list_columns(project.id)
        column = Column(
            id=new_id(),
            project_id=project.id,
            name=_required(name, "name"),
            position=allocate(existing[-1].position if existing else None, None),
            color=color or "#64748B",
        )
        return self.store.save_column(column)

    def get_board(self, user_id: str, project_id: str) -> Dict[str, Any]:
        """Project with its columns in board order and tasks in position order."""
        project = self._project_for(user_id, project_id)
        columns = self.store.list_columns(project.id)
        by_column: Dict[str, List[dict]] = {c.id: [] for c in columns}
        for task in self.store.list_project_tasks(project.id):
            by_column.setdefault(task.column_id, []).append(task.to_dict())

        return {
            "project": project.to_dict(),
            "columns": [
                {**c.to_dict(), "tasks": by_column.get(c.id, [])} for c in columns
            ],
            "members": [c.to_dict() for c in self.store.list_candidates(project.id)],
        }
