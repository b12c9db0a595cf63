from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db import (
    Base,
    Board,
    BoardList,
    BoardMember,
    Card,
    CardLabel,
    CardMember,
    Checklist,
    ChecklistItem,
    Comment,
    Label,
    SessionLocal,
    User,
)


class StoreError(RuntimeError):
    """A store operation failed (connectivity, constraint violation, ...)."""


class Storage:
    """Relational store for users, boards, lists, cards and their dependents.

    Every write commits on its own unless it runs inside :meth:`transaction`,
    in which case the outermost block commits or rolls back. Driver errors
    surface as :class:`StoreError`.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._depth = 0

    # === Primitives ===

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if not self._depth:
                self.session.rollback()
            raise
        self._depth -= 1
        if not self._depth:
            self._commit()

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(str(exc)) from exc

    def _execute(self, stmt):
        try:
            return self.session.execute(stmt)
        except SQLAlchemyError as exc:
            if not self._depth:
                self.session.rollback()
            raise StoreError(str(exc)) from exc

    def _write(self, stmt) -> int:
        result = self._execute(stmt)
        if not self._depth:
            self._commit()
        return result.rowcount

    def get(self, model: type[Base], key: Any):
        try:
            return self.session.get(model, key)
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def find(self, model: type[Base], *criteria, order_by=None) -> list:
        stmt = select(model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return list(self._execute(stmt).scalars())

    def ids_in(self, column, scope_column, scope_ids: Sequence[int]) -> list[int]:
        """Values of ``column`` for rows whose ``scope_column`` is in ``scope_ids``."""
        if not scope_ids:
            return []
        stmt = select(column).where(scope_column.in_(scope_ids))
        return list(self._execute(stmt).scalars())

    def add(self, obj):
        self.session.add(obj)
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            if not self._depth:
                self.session.rollback()
            raise StoreError(str(exc)) from exc
        if not self._depth:
            self._commit()
        return obj

    def update(self, obj, **fields):
        for name, value in fields.items():
            setattr(obj, name, value)
        if not self._depth:
            self._commit()
        return obj

    def delete_by_id(self, model: type[Base], key: int) -> int:
        return self._write(delete(model).where(model.id == key))

    def delete_where(self, model: type[Base], *criteria) -> int:
        return self._write(delete(model).where(*criteria))

    def delete_in(self, column, ids: Sequence[int]) -> int:
        """Bulk delete rows of ``column``'s table whose ``column`` is in ``ids``."""
        if not ids:
            return 0
        return self._write(delete(column.class_).where(column.in_(ids)))

    def clear_in(self, column, ids: Sequence[int]) -> int:
        """Set the nullable foreign key ``column`` to NULL where it matches ``ids``."""
        if not ids:
            return 0
        return self._write(update(column.class_).where(column.in_(ids)).values({column.key: None}))

    def next_order(self, order_column, scope_column, scope_id: int) -> int:
        stmt = select(func.max(order_column)).where(scope_column == scope_id)
        current = self._execute(stmt).scalar()
        return 0 if current is None else current + 1

    # === Users ===

    def get_user(self, user_id: int) -> Optional[User]:
        return self.get(User, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        found = self.find(User, User.username == username)
        return found[0] if found else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        found = self.find(User, User.email == email)
        return found[0] if found else None

    def list_users(self) -> list[User]:
        return self.find(User, order_by=User.id)

    def count_users(self) -> int:
        return self._execute(select(func.count()).select_from(User)).scalar_one()

    # === Boards ===

    def list_boards(self) -> list[Board]:
        return self.find(Board, order_by=Board.created_at)

    def public_boards(self) -> list[Board]:
        return self.find(Board, Board.user_id.is_(None), order_by=Board.created_at)

    def boards_owned_by(self, user_id: int) -> list[Board]:
        return self.find(Board, Board.user_id == user_id, order_by=Board.created_at)

    def boards_with_member(self, user_id: int) -> list[Board]:
        stmt = (
            select(Board)
            .join(BoardMember, BoardMember.board_id == Board.id)
            .where(BoardMember.user_id == user_id)
            .order_by(Board.created_at)
        )
        return list(self._execute(stmt).scalars())

    def get_board_member(self, board_id: int, user_id: int) -> Optional[BoardMember]:
        return self.get(BoardMember, (board_id, user_id))

    def board_members(self, board_id: int) -> list[tuple[User, BoardMember]]:
        stmt = (
            select(User, BoardMember)
            .join(BoardMember, BoardMember.user_id == User.id)
            .where(BoardMember.board_id == board_id)
            .order_by(BoardMember.created_at)
        )
        return [(user, member) for user, member in self._execute(stmt).all()]

    def labels_of(self, board_id: int) -> list[Label]:
        return self.find(Label, Label.board_id == board_id, order_by=Label.id)

    # === Lists & cards ===

    def lists_of(self, board_id: int) -> list[BoardList]:
        return self.find(BoardList, BoardList.board_id == board_id, order_by=BoardList.order)

    def cards_of(self, list_id: int) -> list[Card]:
        return self.find(Card, Card.list_id == list_id, order_by=Card.order)

    def board_for_list(self, list_id: int) -> Optional[Board]:
        stmt = select(Board).join(BoardList, BoardList.board_id == Board.id).where(BoardList.id == list_id)
        return self._execute(stmt).scalars().first()

    def board_for_card(self, card_id: int) -> Optional[Board]:
        stmt = (
            select(Board)
            .join(BoardList, BoardList.board_id == Board.id)
            .join(Card, Card.list_id == BoardList.id)
            .where(Card.id == card_id)
        )
        return self._execute(stmt).scalars().first()

    def card_labels(self, card_id: int) -> list[Label]:
        stmt = (
            select(Label)
            .join(CardLabel, CardLabel.label_id == Label.id)
            .where(CardLabel.card_id == card_id)
            .order_by(Label.id)
        )
        return list(self._execute(stmt).scalars())

    def card_members(self, card_id: int) -> list[User]:
        stmt = (
            select(User)
            .join(CardMember, CardMember.user_id == User.id)
            .where(CardMember.card_id == card_id)
            .order_by(User.id)
        )
        return list(self._execute(stmt).scalars())

    def comments_of(self, card_id: int) -> list[Comment]:
        return self.find(Comment, Comment.card_id == card_id, order_by=Comment.created_at)

    # === Checklists ===

    def checklists_of(self, card_id: int) -> list[Checklist]:
        return self.find(Checklist, Checklist.card_id == card_id, order_by=Checklist.order)

    def items_of(self, checklist_id: int) -> list[ChecklistItem]:
        return self.find(
            ChecklistItem, ChecklistItem.checklist_id == checklist_id, order_by=ChecklistItem.order
        )


def get_store() -> Iterator[Storage]:
    session = SessionLocal()
    try:
        yield Storage(session)
    finally:
        session.close()
