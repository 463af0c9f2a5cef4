"""Pydantic models matching the frontend TypeScript types."""
from __future__ import annotations

from typing import Annotated, Any, Generic, Literal, Optional, TypeVar

from pydantic import BeforeValidator, BaseModel, Field

from taskforge.date_utils import normalize_iso_date

T = TypeVar("T")

ProjectStatus = Literal["active", "completed", "archived", "on-hold"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
MemberRole = Literal["owner", "admin", "member", "viewer"]

DONE_STATUS = "done"
IN_PROGRESS_STATUS = "in-progress"


def _optional_iso(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    normalized = normalize_iso_date(value)
    if not normalized:
        raise ValueError("must be an ISO-8601 date")
    return normalized


IsoDate = Annotated[Optional[str], BeforeValidator(_optional_iso)]


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int


# ── Project models ─────────────────────────────────────────────────

class NotificationSettings(BaseModel):
    email: bool = True
    inApp: bool = True
    taskAssigned: bool = True
    taskCompleted: bool = True


class ProjectSettings(BaseModel):
    taskStatuses: list[str] = Field(default_factory=lambda: ["todo", "in-progress", "done"])
    taskPriorities: list[str] = Field(default_factory=lambda: ["low", "medium", "high", "urgent"])
    customFields: list[dict[str, Any]] = Field(default_factory=list)
    timezone: str = "UTC"
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


class ProjectStats(BaseModel):
    taskCount: int = 0
    completedTasks: int = 0
    memberCount: int = 0


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    status: ProjectStatus = "active"
    members: list[str] = Field(default_factory=list)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)
    dueDate: IsoDate = None
    attachments: list[str] = Field(default_factory=list)


class ProjectPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    settings: Optional[ProjectSettings] = None
    dueDate: IsoDate = None
    attachments: Optional[list[str]] = None


class Project(BaseModel):
    id: str
    name: str
    description: str = ""
    status: ProjectStatus = "active"
    owner: str
    members: list[str] = Field(default_factory=list)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)
    dueDate: Optional[str] = None
    createdAt: str = ""
    updatedAt: str = ""
    archivedAt: Optional[str] = None
    stats: ProjectStats = Field(default_factory=ProjectStats)
    attachments: list[str] = Field(default_factory=list)


def normalize_project_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Dedupe members and keep ``stats.memberCount`` equal to ``len(members)``."""
    members: list[str] = []
    for member in doc.get("members") or []:
        if member and member not in members:
            members.append(member)
    doc["members"] = members
    stats = dict(doc.get("stats") or {})
    stats.setdefault("taskCount", 0)
    stats.setdefault("completedTasks", 0)
    stats["memberCount"] = len(members)
    doc["stats"] = stats
    return doc


# ── Task models ────────────────────────────────────────────────────

class InlineComment(BaseModel):
    userId: str
    text: str
    createdAt: str = ""


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    projectId: str = Field(min_length=1)
    description: str = ""
    status: str = "todo"
    priority: TaskPriority = "medium"
    assignedTo: Optional[str] = None
    createdBy: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    watchers: list[str] = Field(default_factory=list)
    attachments: list[str] = Field(default_factory=list)
    customFields: dict[str, Any] = Field(default_factory=dict)
    inlineComments: list[InlineComment] = Field(default_factory=list)
    dueDate: IsoDate = None
    parentTaskId: Optional[str] = None
    order: int = 0
    timeSpent: float = Field(default=0.0, ge=0)


class TaskPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[TaskPriority] = None
    assignedTo: Optional[str] = None
    tags: Optional[list[str]] = None
    watchers: Optional[list[str]] = None
    attachments: Optional[list[str]] = None
    customFields: Optional[dict[str, Any]] = None
    inlineComments: Optional[list[InlineComment]] = None
    dueDate: IsoDate = None
    parentTaskId: Optional[str] = None
    order: Optional[int] = None
    timeSpent: Optional[float] = Field(default=None, ge=0)


class Task(BaseModel):
    id: str
    title: str
    description: str = ""
    status: str = "todo"
    priority: TaskPriority = "medium"
    projectId: str
    assignedTo: Optional[str] = None
    createdBy: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    watchers: list[str] = Field(default_factory=list)
    attachments: list[str] = Field(default_factory=list)
    customFields: dict[str, Any] = Field(default_factory=dict)
    inlineComments: list[InlineComment] = Field(default_factory=list)
    dueDate: Optional[str] = None
    completedAt: Optional[str] = None
    parentTaskId: Optional[str] = None
    order: int = 0
    timeSpent: float = 0.0
    createdAt: str = ""
    updatedAt: str = ""


# ── Comments & notifications ───────────────────────────────────────

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    author: str = Field(min_length=1)
    taskId: Optional[str] = None
    projectId: Optional[str] = None


class Comment(BaseModel):
    id: str
    content: str
    author: str
    taskId: Optional[str] = None
    projectId: Optional[str] = None
    createdAt: str = ""


class Notification(BaseModel):
    id: str
    content: str
    user: str
    seen: bool = False
    link: Optional[str] = None
    createdAt: str = ""


# ── Analytics store models ─────────────────────────────────────────

class UserProfile(BaseModel):
    id: str
    username: str
    email: str = ""
    fullName: str = ""
    avatar: Optional[str] = None
    role: str = "user"


class ProjectAnalytics(BaseModel):
    projectId: str
    totalTasks: int = 0
    completedTasks: int = 0
    inProgressTasks: int = 0
    pendingTasks: int = 0
    overdueTasks: int = 0
    totalMembers: int = 0
    totalComments: int = 0
    completionRate: float = 0.0
    createdAt: Optional[str] = None
    lastUpdated: Optional[str] = None


class TaskMetrics(BaseModel):
    taskId: str
    projectId: str
    assignedTo: Optional[str] = None
    status: str = "todo"
    priority: str = "medium"
    timeSpent: float = 0.0
    isCompleted: bool = False
    dueDate: Optional[str] = None
    completedAt: Optional[str] = None
    createdAt: str = ""
    updatedAt: str = ""


class UserStats(BaseModel):
    userId: str
    tasksCreated: int = 0
    tasksAssigned: int = 0
    tasksCompleted: int = 0
    tasksInProgress: int = 0
    totalTimeSpent: float = 0.0
    avgCompletionTime: float = 0.0
    productivityScore: float = 0.0
    lastActivityAt: Optional[str] = None


class ProjectMember(BaseModel):
    projectId: str
    userId: str
    role: MemberRole = "member"
    joinedAt: str = ""


# ── Dashboard models ───────────────────────────────────────────────

class DashboardSummary(BaseModel):
    totalTasks: int = 0
    completedTasks: int = 0
    completionRate: float = 0.0
    productivity: float = 0.0
    avgCompletionTime: float = 0.0
    teamSize: int = 0


class ProjectDashboard(BaseModel):
    projectId: str
    analytics: ProjectAnalytics
    summary: DashboardSummary
    tasksByStatus: dict[str, int] = Field(default_factory=dict)
    topTasks: list[TaskMetrics] = Field(default_factory=list)
    recentActivity: list[TaskMetrics] = Field(default_factory=list)
    members: list[ProjectMember] = Field(default_factory=list)
