"""
Board schema: projects, columns, tasks, and assignment candidates.

Task lifecycle:
  TODO → IN_PROGRESS → DONE

Transitions are not enforced: the status follows whatever the column a task is
dropped into implies, including moving backwards (DONE → IN_PROGRESS clears
the completion timestamp).
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import uuid

from .errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _parse_dt(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class TaskStatus(Enum):
    """Lifecycle states a task can carry."""
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"

    @classmethod
    def from_str(cls, value: str) -> "TaskStatus":
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.TODO

    @classmethod
    def parse(cls, value: str) -> "TaskStatus":
        """Strict parse for request input."""
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValidationError(f"Invalid status: {value}", field="status")


class Priority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @classmethod
    def from_str(cls, value: str) -> "Priority":
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.MEDIUM

    @classmethod
    def parse(cls, value: Optional[str]) -> "Priority":
        """Strict parse for request input; empty means MEDIUM."""
        if value is None or value == "":
            return cls.MEDIUM
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValidationError(f"Invalid priority: {value}", field="priority")


@dataclass
class User:
    id: str
    first_name: str
    last_name: str = ""
    email: str = ""
    role: str = "MEMBER"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "role": self.role,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name") or "",
            email=data.get("email") or "",
            role=data.get("role") or "MEMBER",
        )


@dataclass
class Project:
    id: str
    key: str
    name: str
    owner_id: str
    description: str = ""
    color: str = "#3B82F6"
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "ownerId": self.owner_id,
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            key=data["key"],
            name=data.get("name", ""),
            owner_id=data["owner_id"],
            description=data.get("description") or "",
            color=data.get("color") or "#3B82F6",
            created_at=_parse_dt(data.get("created_at")) or utc_now(),
        )


@dataclass
class Column:
    """
    A board column. The name is free text chosen by the project owner and is
    the only signal for which status tasks entering it should carry.
    """
    id: str
    project_id: str
    name: str
    position: float = 1.0
    color: str = "#64748B"
    is_default: bool = False  # canonical "done" column of the project

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "name": self.name,
            "position": self.position,
            "color": self.color,
            "isDefault": self.is_default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            name=data.get("name", ""),
            position=float(data.get("position") or 0.0),
            color=data.get("color") or "#64748B",
            is_default=bool(data.get("is_default", 0)),
        )


@dataclass
class Task:
    """One unit of work on a board."""

    # Identifiers
    id: str
    key: str                        # Human key, e.g. WEB-12

    # Content
    title: str
    description: str = ""

    # Placement
    project_id: str = ""
    column_id: str = ""
    position: float = 1.0           # Ordering key within the column

    # State
    status: TaskStatus = TaskStatus.TODO
    priority: Priority = Priority.MEDIUM
    completed_at: Optional[datetime] = None

    # People
    assignee_id: Optional[str] = None
    creator_id: str = ""

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def apply_status(self, status: TaskStatus, now: Optional[datetime] = None) -> None:
        """Set the status and keep completed_at in step with it."""
        if status == TaskStatus.DONE:
            if self.status != TaskStatus.DONE or self.completed_at is None:
                self.completed_at = now or utc_now()
        else:
            self.completed_at = None
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "position": self.position,
            "columnId": self.column_id,
            "projectId": self.project_id,
            "assigneeId": self.assignee_id,
            "creatorId": self.creator_id,
            "completedAt": _iso(self.completed_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Hydrate from a store row (snake_case keys)."""
        return cls(
            id=data["id"],
            key=data.get("key", ""),
            title=data.get("title", ""),
            description=data.get("description") or "",
            project_id=data.get("project_id", ""),
            column_id=data.get("column_id", ""),
            position=float(data.get("position") or 0.0),
            status=TaskStatus.from_str(data.get("status", "TODO")),
            priority=Priority.from_str(data.get("priority", "MEDIUM")),
            completed_at=_parse_dt(data.get("completed_at")),
            assignee_id=data.get("assignee_id") or None,
            creator_id=data.get("creator_id") or "",
            created_at=_parse_dt(data.get("created_at")) or utc_now(),
            updated_at=_parse_dt(data.get("updated_at")) or utc_now(),
        )


@dataclass
class Candidate:
    """A team member eligible for assignment within one project."""
    id: str
    first_name: str
    last_name: str = ""
    role: str = "MEMBER"
    completed_count: int = 0        # DONE tasks in the project, shown to the LLM
    in_progress_count: int = 0      # Filled by the workload query

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role,
            "completedTasks": self.completed_count,
            "inProgressTasks": self.in_progress_count,
        }
