from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .access import BOARD_ROLES, GLOBAL_ROLES, normalize_role


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python, readable from ORM rows."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _board_role(value: Optional[str]) -> Optional[str]:
    role = normalize_role(value)
    if value is not None and role not in BOARD_ROLES:
        raise ValueError(f"role must be one of {', '.join(BOARD_ROLES)}")
    return role


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite keeps only the wall-clock time; store aware values as UTC.
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def _global_role(value: Optional[str]) -> Optional[str]:
    role = normalize_role(value)
    if value is not None and role not in GLOBAL_ROLES:
        raise ValueError(f"role must be one of {', '.join(GLOBAL_ROLES)}")
    return role


class Health(BaseModel):
    status: str = "ok"


# === Users ===


class UserIn(ApiModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=6, max_length=72)
    email: Optional[str] = Field(default=None, max_length=320)
    name: Optional[str] = Field(default=None, max_length=128)
    profile_picture: Optional[str] = None
    role: Optional[str] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: Optional[str]) -> Optional[str]:
        return _global_role(value)


class UserPatch(ApiModel):
    email: Optional[str] = Field(default=None, max_length=320)
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    profile_picture: Optional[str] = None
    role: Optional[str] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: Optional[str]) -> Optional[str]:
        return _global_role(value)


class PasswordChange(ApiModel):
    current_password: Optional[str] = None
    new_password: str = Field(min_length=6, max_length=72)


class UserOut(ApiModel):
    id: int
    username: str
    email: str
    name: str
    profile_picture: Optional[str]
    role: str
    created_at: datetime


class MemberUserOut(UserOut):
    board_role: str


# === Boards ===


class BoardIn(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=8000)


class BoardPatch(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=8000)


class BoardOut(ApiModel):
    id: int
    title: str
    description: Optional[str]
    user_id: Optional[int]
    created_at: datetime


class BoardDetailOut(BoardOut):
    username: Optional[str] = None
    my_role: Optional[str] = None


class BoardMemberIn(ApiModel):
    user_id: int
    role: str = "viewer"

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: Optional[str]) -> Optional[str]:
        return _board_role(value)


class BoardMemberPatch(ApiModel):
    role: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: Optional[str]) -> Optional[str]:
        return _board_role(value)


class BoardMemberOut(ApiModel):
    board_id: int
    user_id: int
    role: str
    created_at: datetime


# === Lists ===


class ListIn(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    board_id: int
    order: Optional[int] = None


class ListPatch(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    order: Optional[int] = None


class ListOut(ApiModel):
    id: int
    title: str
    board_id: int
    order: int
    created_at: datetime


# === Cards ===


class CardIn(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=8000)
    list_id: int
    order: Optional[int] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc(value)


class CardPatch(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=8000)
    list_id: Optional[int] = None
    order: Optional[int] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc(value)


class CardOut(ApiModel):
    id: int
    title: str
    description: Optional[str]
    list_id: int
    order: int
    due_date: Optional[datetime]
    created_at: datetime


class LabelIn(ApiModel):
    name: str = Field(min_length=1, max_length=80)
    color: str = Field(min_length=1, max_length=32)
    board_id: int


class LabelOut(ApiModel):
    id: int
    name: str
    color: str
    board_id: int


class CardLabelIn(ApiModel):
    label_id: int


class CardMemberIn(ApiModel):
    user_id: int


class CommentIn(ApiModel):
    content: str = Field(min_length=1, max_length=8000)
    card_id: int


class CommentOut(ApiModel):
    id: int
    content: str
    card_id: int
    user_id: Optional[int]
    user_name: str
    created_at: datetime


# === Checklists ===


class ChecklistIn(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    card_id: int
    order: Optional[int] = None


class ChecklistPatch(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    order: Optional[int] = None


class ChecklistOut(ApiModel):
    id: int
    title: str
    card_id: int
    order: int


class ChecklistItemIn(ApiModel):
    content: str = Field(min_length=1, max_length=2000)
    checklist_id: int
    order: Optional[int] = None
    completed: bool = False
    assigned_to_user_id: Optional[int] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc(value)


class ChecklistItemPatch(ApiModel):
    content: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    order: Optional[int] = None
    completed: Optional[bool] = None
    assigned_to_user_id: Optional[int] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc(value)


class ChecklistItemOut(ApiModel):
    id: int
    content: str
    checklist_id: int
    order: int
    completed: bool
    assigned_to_user_id: Optional[int]
    due_date: Optional[datetime]


# === Read models ===


class ChecklistItemView(ChecklistItemOut):
    is_overdue: bool = False


class ChecklistWithItems(ChecklistOut):
    items: list[ChecklistItemView] = Field(default_factory=list)


DueStatus = Literal["overdue", "due_soon", "upcoming", "no_date"]


class CardDetails(ApiModel):
    card: CardOut
    list_: Optional[ListOut] = Field(default=None, alias="list")
    board: Optional[BoardOut] = None
    members: list[UserOut] = Field(default_factory=list)
    labels: list[LabelOut] = Field(default_factory=list)
    checklists: list[ChecklistWithItems] = Field(default_factory=list)


class CardDigest(CardDetails):
    status: DueStatus = "no_date"
    is_assigned_to_user: bool = False


class BoardStats(ApiModel):
    total_boards: int
    total_cards: int
    completed_cards: int
    overdue_cards: int
    completion_rate: int
    total_users: int
