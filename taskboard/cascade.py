"""Bottom-up deletion of boards, lists, cards, checklists and users.

Foreign keys carry no ``ON DELETE CASCADE``, so every dependent row is removed
before the row it references: card labels, card members, comments and
checklist items first, then checklists and cards, then lists, then the
board-scoped labels and memberships, and the root last.

Each public operation returns ``True`` when the target row existed and was
removed. A missing target is a plain ``False``. A failing step is logged with
its name and the target id and also yields ``False``; steps already committed
stay committed unless the deleter was built with ``atomic=True``.
"""
from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import Callable, Sequence

from .db import (
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
    User,
)
from .storage import Storage, StoreError

logger = logging.getLogger(__name__)


class CascadeDeleter:
    def __init__(self, store: Storage, atomic: bool = False) -> None:
        self.store = store
        self.atomic = atomic

    def delete_board(self, board_id: int) -> bool:
        return self._run("board", Board, board_id, self._purge_board)

    def delete_list(self, list_id: int) -> bool:
        return self._run("list", BoardList, list_id, self._purge_list)

    def delete_card(self, card_id: int) -> bool:
        return self._run("card", Card, card_id, self._purge_card)

    def delete_checklist(self, checklist_id: int) -> bool:
        return self._run("checklist", Checklist, checklist_id, self._purge_checklist)

    def delete_user(self, user_id: int) -> bool:
        """Remove a user and the rows that only make sense with them.

        Refuses (``False``) while the user still owns boards.
        """
        return self._run("user", User, user_id, self._purge_user)

    # === Runner ===

    def _run(self, kind: str, model, entity_id: int, purge: Callable[[int], bool]) -> bool:
        try:
            if self.store.get(model, entity_id) is None:
                logger.debug("%s %s not found, nothing to delete", kind, entity_id)
                return False
            with self.store.transaction() if self.atomic else nullcontext():
                removed = purge(entity_id)
        except StoreError:
            logger.error("Deleting %s %s failed", kind, entity_id)
            return False
        if removed:
            logger.info("Deleted %s %s", kind, entity_id)
        return removed

    def _step(self, name: str, entity_id: int, operation: Callable, *args):
        try:
            return operation(*args)
        except StoreError:
            logger.exception("Cascade step %s failed for id=%s", name, entity_id)
            raise

    # === Purges ===

    def _purge_card_children(self, card_ids: Sequence[int], entity_id: int) -> None:
        store = self.store
        self._step("card_labels", entity_id, store.delete_in, CardLabel.card_id, card_ids)
        self._step("card_members", entity_id, store.delete_in, CardMember.card_id, card_ids)
        self._step("comments", entity_id, store.delete_in, Comment.card_id, card_ids)
        checklist_ids = self._step(
            "find_checklists", entity_id, store.ids_in, Checklist.id, Checklist.card_id, card_ids
        )
        self._step(
            "checklist_items", entity_id, store.delete_in, ChecklistItem.checklist_id, checklist_ids
        )
        self._step("checklists", entity_id, store.delete_in, Checklist.card_id, card_ids)

    def _purge_list_children(self, list_id: int, entity_id: int) -> None:
        card_ids = self._step("find_cards", entity_id, self.store.ids_in, Card.id, Card.list_id, [list_id])
        self._purge_card_children(card_ids, entity_id)
        self._step("cards", entity_id, self.store.delete_in, Card.list_id, [list_id])

    def _purge_card(self, card_id: int) -> bool:
        self._purge_card_children([card_id], card_id)
        return self._step("card", card_id, self.store.delete_by_id, Card, card_id) > 0

    def _purge_list(self, list_id: int) -> bool:
        self._purge_list_children(list_id, list_id)
        return self._step("list", list_id, self.store.delete_by_id, BoardList, list_id) > 0

    def _purge_board(self, board_id: int) -> bool:
        store = self.store
        list_ids = self._step("find_lists", board_id, store.ids_in, BoardList.id, BoardList.board_id, [board_id])
        for list_id in list_ids:
            self._purge_list_children(list_id, board_id)
        self._step("lists", board_id, store.delete_in, BoardList.board_id, [board_id])
        label_ids = self._step("find_labels", board_id, store.ids_in, Label.id, Label.board_id, [board_id])
        # labels of this board may still be applied to cards on other boards
        self._step("label_links", board_id, store.delete_in, CardLabel.label_id, label_ids)
        self._step("labels", board_id, store.delete_in, Label.board_id, [board_id])
        self._step("board_members", board_id, store.delete_in, BoardMember.board_id, [board_id])
        return self._step("board", board_id, store.delete_by_id, Board, board_id) > 0

    def _purge_checklist(self, checklist_id: int) -> bool:
        store = self.store
        self._step("checklist_items", checklist_id, store.delete_in, ChecklistItem.checklist_id, [checklist_id])
        return self._step("checklist", checklist_id, store.delete_by_id, Checklist, checklist_id) > 0

    def _purge_user(self, user_id: int) -> bool:
        store = self.store
        if store.boards_owned_by(user_id):
            logger.warning("User %s still owns boards, not deleting", user_id)
            return False
        self._step("board_members", user_id, store.delete_in, BoardMember.user_id, [user_id])
        self._step("card_members", user_id, store.delete_in, CardMember.user_id, [user_id])
        # comments keep their denormalized author name
        self._step("comment_authors", user_id, store.clear_in, Comment.user_id, [user_id])
        self._step("item_assignees", user_id, store.clear_in, ChecklistItem.assigned_to_user_id, [user_id])
        return self._step("user", user_id, store.delete_by_id, User, user_id) > 0
