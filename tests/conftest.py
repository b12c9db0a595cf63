"""Shared fixtures: an in-memory store and a row factory."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard.db import (
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
    init_db,
    make_engine,
)
from taskboard.main import app
from taskboard.storage import Storage, get_store


class Factory:
    def __init__(self, store: Storage) -> None:
        self.store = store

    def user(self, username, role="user"):
        return self.store.add(
            User(
                username=username,
                email=f"{username}@example.com",
                password="not-a-real-hash",
                name=username.title(),
                role=role,
            )
        )

    def board(self, owner=None, title="Board"):
        return self.store.add(Board(title=title, user_id=owner.id if owner else None))

    def member(self, board, user, role="editor"):
        return self.store.add(BoardMember(board_id=board.id, user_id=user.id, role=role))

    def board_list(self, board, title="To do", order=0):
        return self.store.add(BoardList(title=title, board_id=board.id, order=order))

    def card(self, board_list, title="Card", order=0, due_date=None):
        return self.store.add(Card(title=title, list_id=board_list.id, order=order, due_date=due_date))

    def label(self, board, name="bug", color="red"):
        return self.store.add(Label(name=name, color=color, board_id=board.id))

    def tag(self, card, label):
        return self.store.add(CardLabel(card_id=card.id, label_id=label.id))

    def assign(self, card, user):
        return self.store.add(CardMember(card_id=card.id, user_id=user.id))

    def comment(self, card, user=None, content="Looks good"):
        return self.store.add(
            Comment(
                content=content,
                card_id=card.id,
                user_id=user.id if user else None,
                user_name=user.name if user else "Anonymous",
            )
        )

    def checklist(self, card, title="Steps", order=0):
        return self.store.add(Checklist(title=title, card_id=card.id, order=order))

    def item(self, checklist, content="Step", completed=False, due_date=None, assignee=None):
        return self.store.add(
            ChecklistItem(
                content=content,
                checklist_id=checklist.id,
                completed=completed,
                due_date=due_date,
                assigned_to_user_id=assignee.id if assignee else None,
            )
        )


@pytest.fixture
def store():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    session = sessionmaker(autoflush=False, bind=engine)()
    yield Storage(session)
    session.close()
    engine.dispose()


@pytest.fixture
def factory(store):
    return Factory(store)


@pytest.fixture
def count(store):
    def _count(model, *criteria):
        return len(store.find(model, *criteria))

    return _count


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer {user.id}"}


@pytest.fixture
def headers():
    return auth
