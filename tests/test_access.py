import pytest

from taskboard.access import AccessResolver, normalize_role


@pytest.fixture
def resolver(store):
    return AccessResolver(store)


@pytest.fixture
def people(factory):
    return {
        "admin": factory.user("root", role="admin"),
        "u1": factory.user("u1"),
        "u2": factory.user("u2"),
        "u3": factory.user("u3"),
    }


def test_normalize_role():
    assert normalize_role(" Editor ") == "editor"
    assert normalize_role("") is None
    assert normalize_role(None) is None
    with pytest.raises(ValueError):
        normalize_role(3)


def test_owner_role_wins_over_membership_row(resolver, factory, people):
    board = factory.board(owner=people["u1"])
    factory.member(board, people["u1"], role="viewer")

    assert resolver.effective_board_role(people["u1"], board) == "owner"


def test_member_role_is_normalized(resolver, factory, people):
    board = factory.board(owner=people["u1"])
    factory.member(board, people["u2"], role="EDITOR")

    assert resolver.effective_board_role(people["u2"], board) == "editor"
    assert resolver.can_edit_board(people["u2"], board) is True


def test_blank_member_role_falls_back_to_viewer(resolver, factory, people):
    board = factory.board(owner=people["u1"])
    factory.member(board, people["u2"], role="  ")

    assert resolver.effective_board_role(people["u2"], board) == "viewer"
    assert resolver.can_edit_board(people["u2"], board) is False


def test_non_member_has_no_role(resolver, factory, people):
    board = factory.board(owner=people["u1"])

    assert resolver.effective_board_role(people["u3"], board) is None
    assert resolver.effective_board_role(None, board) is None


def test_anonymous_access_depends_on_ownership(resolver, factory, people):
    owned = factory.board(owner=people["u1"])
    public = factory.board(owner=None, title="Public")

    assert resolver.can_access_board(None, owned) is False
    assert resolver.can_access_board(None, public) is True


def test_board_access_rules(resolver, factory, people):
    board = factory.board(owner=people["u1"])
    factory.member(board, people["u2"], role="viewer")

    assert resolver.can_access_board(people["u1"], board) is True
    assert resolver.can_access_board(people["u2"], board) is True
    assert resolver.can_access_board(people["admin"], board) is True
    assert resolver.can_access_board(people["u3"], board) is False


def test_admin_role_is_case_insensitive(resolver, factory, people, store):
    shouty = store.update(people["u3"], role="ADMIN")
    board = factory.board(owner=people["u1"])

    assert resolver.is_admin(shouty) is True
    assert resolver.can_access_board(shouty, board) is True


def test_boards_visible_to_members_only(resolver, factory, people):
    b2 = factory.board(owner=people["u1"], title="B2")
    factory.member(b2, people["u2"], role="editor")
    factory.board(owner=None, title="Public")

    assert [b.id for b in resolver.boards_visible_to(people["u2"])] == [b2.id]
    assert resolver.boards_visible_to(people["u3"]) == []


def test_boards_visible_to_anonymous_and_admin(resolver, factory, people):
    owned = factory.board(owner=people["u1"])
    public = factory.board(owner=None, title="Public")

    assert [b.id for b in resolver.boards_visible_to(None)] == [public.id]
    assert {b.id for b in resolver.boards_visible_to(people["admin"])} == {owned.id, public.id}


def test_boards_visible_are_deduplicated_owned_first(resolver, factory, people):
    shared = factory.board(owner=people["u2"], title="Shared")
    own = factory.board(owner=people["u1"], title="Own")
    factory.member(own, people["u1"], role="owner")
    factory.member(shared, people["u1"], role="viewer")

    assert [b.id for b in resolver.boards_visible_to(people["u1"])] == [own.id, shared.id]


def test_member_management(resolver, factory, people):
    board = factory.board(owner=people["u1"])
    factory.member(board, people["u2"], role="editor")

    assert resolver.can_manage_members(people["u1"], board) is True
    assert resolver.can_manage_members(people["admin"], board) is True
    assert resolver.can_manage_members(people["u2"], board) is False
    assert resolver.can_manage_members(None, board) is False
    # anyone may leave a board
    assert resolver.can_remove_member(people["u2"], board, people["u2"].id) is True
    assert resolver.can_remove_member(people["u2"], board, people["u1"].id) is False


def test_board_deletion_is_owner_or_admin(resolver, factory, people):
    board = factory.board(owner=people["u1"])
    factory.member(board, people["u2"], role="editor")

    assert resolver.can_delete_board(people["u1"], board) is True
    assert resolver.can_delete_board(people["admin"], board) is True
    assert resolver.can_delete_board(people["u2"], board) is False


def test_admin_cannot_delete_self(resolver, people):
    admin = people["admin"]

    assert resolver.can_manage_users(admin) is True
    assert resolver.can_delete_user(admin, admin.id) is False
    assert resolver.can_delete_user(admin, people["u1"].id) is True
    assert resolver.can_manage_users(people["u1"]) is False
    assert resolver.can_delete_user(people["u1"], people["u2"].id) is False


def test_user_edit_rules(resolver, people):
    u1 = people["u1"]

    assert resolver.can_edit_user(u1, u1.id) is True
    assert resolver.can_edit_user(u1, people["u2"].id) is False
    assert resolver.can_edit_user(u1, u1.id, changes_role=True) is False
    assert resolver.can_edit_user(people["admin"], u1.id, changes_role=True) is True


def test_card_access_follows_its_board(resolver, factory, people):
    board = factory.board(owner=people["u1"])
    factory.member(board, people["u2"], role="viewer")
    card = factory.card(factory.board_list(board))

    assert resolver.can_access_card(people["u2"], card) is True
    assert resolver.can_edit_card(people["u2"], card) is False
    assert resolver.can_access_card(people["u3"], card) is False
    assert resolver.can_edit_card(people["u1"], card) is True


def test_malformed_ids_raise(resolver, people):
    with pytest.raises(ValueError):
        resolver.can_delete_user(people["admin"], "7")
    with pytest.raises(ValueError):
        resolver.can_remove_member(people["admin"], None, 1.5)
