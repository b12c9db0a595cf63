from datetime import datetime, timedelta, timezone

import pytest

from taskboard.access import AccessResolver
from taskboard.dashboard import Dashboard, due_status, is_done_list
from taskboard.db import BoardList
from taskboard.schemas import ChecklistItemPatch

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def dashboard(store):
    return Dashboard(store, AccessResolver(store))


@pytest.fixture
def board(factory):
    u1 = factory.user("u1")
    u2 = factory.user("u2")
    admin = factory.user("root", role="admin")
    mine = factory.board(owner=u1, title="Mine")
    todo = factory.board_list(mine, title="To Do")
    done = factory.board_list(mine, title="Done", order=1)
    cards = {
        "late": factory.card(todo, title="late", due_date=NOW - timedelta(days=2)),
        "soon": factory.card(todo, title="soon", order=1, due_date=NOW + timedelta(days=1)),
        "later": factory.card(todo, title="later", order=2, due_date=NOW + timedelta(days=5)),
        "undated": factory.card(todo, title="undated", order=3),
        "shipped": factory.card(done, title="shipped"),
    }
    soon_steps = factory.checklist(cards["soon"])
    factory.item(soon_steps, "missed", due_date=NOW - timedelta(hours=1))
    factory.item(soon_steps, "finished", completed=True, due_date=NOW - timedelta(hours=1))
    factory.item(factory.checklist(cards["later"]), "plan")
    factory.item(factory.checklist(cards["undated"]), "someday")
    factory.assign(cards["undated"], u1)

    theirs = factory.board(owner=u2, title="Theirs")
    factory.card(factory.board_list(theirs), title="hidden", due_date=NOW - timedelta(days=1))
    return {"u1": u1, "u2": u2, "admin": admin, "cards": cards}


def titles(digests):
    return [digest.card.title for digest in digests]


def test_due_status_buckets():
    assert due_status(None, NOW) == "no_date"
    assert due_status(NOW - timedelta(minutes=1), NOW) == "overdue"
    assert due_status(NOW + timedelta(days=3), NOW) == "due_soon"
    assert due_status(NOW + timedelta(days=3, hours=1), NOW) == "upcoming"
    # naive values are read as UTC
    assert due_status(datetime(2024, 5, 9), NOW) == "overdue"


def test_done_list_markers():
    assert is_done_list(BoardList(title="Done ✅"))
    assert is_done_list(BoardList(title="Concluído"))
    assert not is_done_list(BoardList(title="Doing"))


def test_overdue_cards_are_scoped_to_visible_boards(dashboard, board):
    digests = dashboard.overdue_cards_for(board["u1"], now=NOW)

    assert titles(digests) == ["late"]
    assert digests[0].status == "overdue"
    assert digests[0].board.title == "Mine"
    assert digests[0].list_.title == "To Do"


def test_upcoming_cards_use_three_day_window(dashboard, board):
    digests = dashboard.upcoming_cards_for(board["u1"], now=NOW)

    assert titles(digests) == ["soon"]
    assert digests[0].status == "due_soon"


def test_checklist_cards_are_assigned_or_due_within_a_week(dashboard, board):
    digests = dashboard.checklist_cards_for(board["u1"], now=NOW)

    assert titles(digests) == ["soon", "later", "undated"]
    assert [d.is_assigned_to_user for d in digests] == [False, False, True]
    items = {item.content: item for item in digests[0].checklists[0].items}
    assert items["missed"].is_overdue is True
    assert items["finished"].is_overdue is False


def test_board_stats_for_member(dashboard, board):
    stats = dashboard.board_stats_for(board["u1"], now=NOW)

    assert stats.total_boards == 1
    assert stats.total_cards == 5
    assert stats.completed_cards == 1
    assert stats.overdue_cards == 1
    assert stats.completion_rate == 20
    assert stats.total_users == 0


def test_board_stats_for_admin_counts_everything(dashboard, board):
    stats = dashboard.board_stats_for(board["admin"], now=NOW)

    assert stats.total_boards == 2
    assert stats.total_cards == 6
    assert stats.overdue_cards == 2
    assert stats.total_users == 3


def test_board_stats_without_cards(dashboard, factory):
    stats = dashboard.board_stats_for(factory.user("lonely"), now=NOW)

    assert stats.total_cards == 0
    assert stats.completion_rate == 0


def test_card_details_serializes_list_key(dashboard, board):
    details = dashboard.card_details(board["cards"]["soon"], now=NOW)
    payload = details.model_dump(by_alias=True)

    assert payload["list"]["title"] == "To Do"
    assert payload["board"]["title"] == "Mine"
    assert len(payload["checklists"][0]["items"]) == 2


def test_incoming_due_dates_are_normalized_to_utc():
    patch = ChecklistItemPatch(due_date="2024-05-10T17:00:00+05:00")

    assert patch.due_date == NOW
    assert patch.due_date.utcoffset() == timedelta(0)
    assert due_status(patch.due_date - timedelta(hours=1), NOW) == "overdue"
