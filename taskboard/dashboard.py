"""Dashboard read paths: due-date digests, checklist cards and board stats.

Everything here is scoped to :meth:`AccessResolver.boards_visible_to`.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from .access import AccessResolver
from .db import Board, BoardList, Card, User
from .schemas import (
    BoardOut,
    BoardStats,
    CardDetails,
    CardDigest,
    CardOut,
    ChecklistItemView,
    ChecklistWithItems,
    LabelOut,
    ListOut,
    UserOut,
)
from .storage import Storage

logger = logging.getLogger(__name__)

DUE_SOON_DAYS = 3
CHECKLIST_HORIZON_DAYS = 7
DONE_LIST_MARKERS = ("done", "completed", "concluído", "pronto")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def due_status(due: Optional[datetime], now: datetime) -> str:
    due = as_utc(due)
    if due is None:
        return "no_date"
    if due < now:
        return "overdue"
    days = math.ceil((due - now) / timedelta(days=1))
    return "due_soon" if days <= DUE_SOON_DAYS else "upcoming"


def is_done_list(board_list: BoardList) -> bool:
    title = board_list.title.lower()
    return any(marker in title for marker in DONE_LIST_MARKERS)


class Dashboard:
    def __init__(self, store: Storage, resolver: AccessResolver) -> None:
        self.store = store
        self.resolver = resolver

    def card_details(self, card: Card, now: Optional[datetime] = None) -> CardDetails:
        now = now or datetime.now(timezone.utc)
        board_list = self.store.get(BoardList, card.list_id)
        board = self.store.get(Board, board_list.board_id) if board_list else None
        return CardDetails(
            card=CardOut.model_validate(card),
            list_=ListOut.model_validate(board_list) if board_list else None,
            board=BoardOut.model_validate(board) if board else None,
            members=[UserOut.model_validate(u) for u in self.store.card_members(card.id)],
            labels=[LabelOut.model_validate(label) for label in self.store.card_labels(card.id)],
            checklists=self._checklists(card, now),
        )

    def overdue_cards_for(self, user: User, now: Optional[datetime] = None) -> list[CardDigest]:
        now = now or datetime.now(timezone.utc)
        return self._digests(user, now, lambda card: as_utc(card.due_date) < now)

    def upcoming_cards_for(self, user: User, now: Optional[datetime] = None) -> list[CardDigest]:
        now = now or datetime.now(timezone.utc)
        horizon = now + timedelta(days=DUE_SOON_DAYS)
        return self._digests(user, now, lambda card: now <= as_utc(card.due_date) < horizon)

    def checklist_cards_for(self, user: User, now: Optional[datetime] = None) -> list[CardDigest]:
        """Cards with checklists that are assigned to ``user`` or due within a week."""
        now = now or datetime.now(timezone.utc)
        horizon = now + timedelta(days=CHECKLIST_HORIZON_DAYS)
        digests = []
        for board, board_list, card in self._visible_cards(user):
            assigned = self._is_assigned(card, user)
            due = as_utc(card.due_date)
            if not assigned and (due is None or due >= horizon):
                continue
            checklists = self._checklists(card, now)
            if not checklists:
                continue
            digests.append(self._digest(board, board_list, card, user, now, checklists))
        return sorted(digests, key=_due_key)

    def board_stats_for(self, user: User, now: Optional[datetime] = None) -> BoardStats:
        now = now or datetime.now(timezone.utc)
        boards = self.resolver.boards_visible_to(user)
        total = completed = overdue = 0
        for board in boards:
            for board_list in self.store.lists_of(board.id):
                cards = self.store.cards_of(board_list.id)
                total += len(cards)
                if is_done_list(board_list):
                    completed += len(cards)
                overdue += sum(1 for card in cards if due_status(card.due_date, now) == "overdue")
        return BoardStats(
            total_boards=len(boards),
            total_cards=total,
            completed_cards=completed,
            overdue_cards=overdue,
            completion_rate=round(completed / total * 100) if total else 0,
            total_users=self.store.count_users() if self.resolver.can_manage_users(user) else 0,
        )

    # === Helpers ===

    def _visible_cards(self, user: User) -> Iterator[tuple[Board, BoardList, Card]]:
        for board in self.resolver.boards_visible_to(user):
            for board_list in self.store.lists_of(board.id):
                for card in self.store.cards_of(board_list.id):
                    yield board, board_list, card

    def _digests(self, user: User, now: datetime, keep: Callable[[Card], bool]) -> list[CardDigest]:
        digests = [
            self._digest(board, board_list, card, user, now)
            for board, board_list, card in self._visible_cards(user)
            if card.due_date is not None and keep(card)
        ]
        logger.debug("%d dashboard cards for user %s", len(digests), user.id)
        return sorted(digests, key=_due_key)

    def _digest(self, board, board_list, card, user, now, checklists=None) -> CardDigest:
        members = self.store.card_members(card.id)
        return CardDigest(
            card=CardOut.model_validate(card),
            list_=ListOut.model_validate(board_list),
            board=BoardOut.model_validate(board),
            members=[UserOut.model_validate(u) for u in members],
            labels=[LabelOut.model_validate(label) for label in self.store.card_labels(card.id)],
            checklists=checklists or [],
            status=due_status(card.due_date, now),
            is_assigned_to_user=any(member.id == user.id for member in members),
        )

    def _checklists(self, card: Card, now: datetime) -> list[ChecklistWithItems]:
        result = []
        for checklist in self.store.checklists_of(card.id):
            items = [
                ChecklistItemView.model_validate(item).model_copy(
                    update={"is_overdue": not item.completed and due_status(item.due_date, now) == "overdue"}
                )
                for item in self.store.items_of(checklist.id)
            ]
            result.append(ChecklistWithItems.model_validate(checklist).model_copy(update={"items": items}))
        return result

    def _is_assigned(self, card: Card, user: User) -> bool:
        return any(member.id == user.id for member in self.store.card_members(card.id))


def _due_key(digest: CardDigest):
    due = as_utc(digest.card.due_date)
    return (due is None, due or datetime.max.replace(tzinfo=timezone.utc), digest.card.id)
