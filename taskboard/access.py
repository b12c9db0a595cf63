"""Board and card authorization.

The resolver is a pure function of the acting user, the board and the
membership rows at call time. ``user`` is a :class:`~taskboard.db.User` row or
``None`` for an anonymous caller. Denials are plain ``False``; only malformed
input raises ``ValueError``.
"""
from __future__ import annotations

import logging
from typing import Optional

from .db import Board, BoardList, Card, User
from .storage import Storage

logger = logging.getLogger(__name__)

ADMIN = "admin"
USER = "user"
GLOBAL_ROLES = (ADMIN, USER)

OWNER = "owner"
EDITOR = "editor"
VIEWER = "viewer"
BOARD_ROLES = (OWNER, EDITOR, VIEWER)


def normalize_role(role: Optional[str]) -> Optional[str]:
    """Canonical lower-case role, or ``None`` for a missing/blank role."""
    if role is None:
        return None
    if not isinstance(role, str):
        raise ValueError(f"role must be a string, got {role!r}")
    return role.strip().lower() or None


def _require_id(value, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"invalid {what} id: {value!r}")
    return value


class AccessResolver:
    def __init__(self, store: Storage) -> None:
        self.store = store

    def is_admin(self, user: Optional[User]) -> bool:
        return user is not None and normalize_role(user.role) == ADMIN

    def boards_visible_to(self, user: Optional[User]) -> list[Board]:
        if user is None:
            return self.store.public_boards()
        if self.is_admin(user):
            return self.store.list_boards()
        return self.boards_joined_by(user)

    def boards_joined_by(self, user: User) -> list[Board]:
        """Owned boards followed by member boards, de-duplicated by id."""
        boards: dict[int, Board] = {}
        for board in self.store.boards_owned_by(user.id):
            boards[board.id] = board
        for board in self.store.boards_with_member(user.id):
            boards.setdefault(board.id, board)
        return list(boards.values())

    def can_access_board(self, user: Optional[User], board: Board) -> bool:
        if user is None:
            return board.user_id is None
        if self.is_admin(user) or board.user_id == user.id:
            return True
        allowed = self.store.get_board_member(_require_id(board.id, "board"), user.id) is not None
        if not allowed:
            logger.debug("user %s denied access to board %s", user.id, board.id)
        return allowed

    def can_access_card(self, user: Optional[User], card: Card) -> bool:
        board = self._board_of(card)
        return board is not None and self.can_access_board(user, board)

    def effective_board_role(self, user: Optional[User], board: Board) -> Optional[str]:
        """``"owner"`` for the creator, else the membership role, else ``None``.

        A member row with a blank role counts as ``"viewer"``.
        """
        if user is None:
            return None
        if board.user_id == user.id:
            return OWNER
        member = self.store.get_board_member(_require_id(board.id, "board"), user.id)
        if member is None:
            return None
        return normalize_role(member.role) or VIEWER

    def can_edit_board(self, user: Optional[User], board: Board) -> bool:
        if self.is_admin(user):
            return True
        return self.effective_board_role(user, board) in (OWNER, EDITOR)

    def can_edit_card(self, user: Optional[User], card: Card) -> bool:
        board = self._board_of(card)
        return board is not None and self.can_edit_board(user, board)

    def can_delete_board(self, user: Optional[User], board: Board) -> bool:
        return user is not None and (self.is_admin(user) or board.user_id == user.id)

    def can_manage_members(self, user: Optional[User], board: Board) -> bool:
        return user is not None and (self.is_admin(user) or board.user_id == user.id)

    def can_remove_member(self, user: Optional[User], board: Board, target_user_id: int) -> bool:
        _require_id(target_user_id, "user")
        if user is not None and user.id == target_user_id:
            return True
        return self.can_manage_members(user, board)

    def can_manage_users(self, user: Optional[User]) -> bool:
        return self.is_admin(user)

    def can_delete_user(self, user: Optional[User], target_user_id: int) -> bool:
        _require_id(target_user_id, "user")
        return self.can_manage_users(user) and user.id != target_user_id

    def can_edit_user(self, user: Optional[User], target_user_id: int, changes_role: bool = False) -> bool:
        _require_id(target_user_id, "user")
        if user is None:
            return False
        if changes_role:
            return self.is_admin(user)
        return user.id == target_user_id or self.is_admin(user)

    def _board_of(self, card: Card) -> Optional[Board]:
        board_list = self.store.get(BoardList, _require_id(card.list_id, "list"))
        if board_list is None:
            return None
        return self.store.get(Board, board_list.board_id)
