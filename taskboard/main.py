import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from .access import VIEWER, AccessResolver, normalize_role
from .auth import get_current_user, hash_password, require_user, verify_password
from .cascade import CascadeDeleter
from .config import CASCADE_ATOMIC, LOG_LEVEL, SEED_ADMIN
from .dashboard import Dashboard
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
    SessionLocal,
    User,
    init_db,
)
from .schemas import (
    BoardDetailOut,
    BoardIn,
    BoardMemberIn,
    BoardMemberOut,
    BoardMemberPatch,
    BoardOut,
    BoardPatch,
    BoardStats,
    CardDetails,
    CardDigest,
    CardIn,
    CardLabelIn,
    CardMemberIn,
    CardOut,
    CardPatch,
    ChecklistIn,
    ChecklistItemIn,
    ChecklistItemOut,
    ChecklistItemPatch,
    ChecklistOut,
    ChecklistPatch,
    CommentIn,
    CommentOut,
    Health,
    LabelIn,
    LabelOut,
    ListIn,
    ListOut,
    ListPatch,
    MemberUserOut,
    PasswordChange,
    UserIn,
    UserOut,
    UserPatch,
)
from .seeder import seed_admin
from .storage import Storage, StoreError, get_store

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if SEED_ADMIN:
        session = SessionLocal()
        try:
            seed_admin(Storage(session))
        finally:
            session.close()
    yield


app = FastAPI(title="Taskboard API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(StoreError)
async def store_error(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "internal_error"})


# === Dependencies ===


def get_resolver(store: Storage = Depends(get_store)) -> AccessResolver:
    return AccessResolver(store)


def get_deleter(store: Storage = Depends(get_store)) -> CascadeDeleter:
    return CascadeDeleter(store, atomic=CASCADE_ATOMIC)


def get_dashboard(
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
) -> Dashboard:
    return Dashboard(store, resolver)


# === Helpers ===


def load(store: Storage, model, key: int, what: str):
    obj = store.get(model, key)
    if obj is None:
        raise HTTPException(status_code=404, detail=f"{what}_not_found")
    return obj


def ensure(allowed: bool) -> None:
    if not allowed:
        raise HTTPException(status_code=403, detail="forbidden")


def changes(payload, nullable: tuple[str, ...] = ()) -> dict:
    """Fields the client sent; explicit nulls only for nullable columns."""
    fields = payload.model_dump(exclude_unset=True)
    return {k: v for k, v in fields.items() if v is not None or k in nullable}


def deleted_response(deleted: bool, store: Storage, model, key: int, what: str) -> Response:
    if deleted:
        return Response(status_code=204)
    if store.get(model, key) is None:
        raise HTTPException(status_code=404, detail=f"{what}_not_found")
    raise HTTPException(status_code=500, detail="delete_failed")


def readable_board(store: Storage, resolver: AccessResolver, board_id: int, user: Optional[User]) -> Board:
    board = load(store, Board, board_id, "board")
    ensure(resolver.can_access_board(user, board))
    return board


def readable_card(store: Storage, resolver: AccessResolver, card_id: int, user: Optional[User]) -> Card:
    card = load(store, Card, card_id, "card")
    ensure(resolver.can_access_card(user, card))
    return card


def editable_card(store: Storage, resolver: AccessResolver, card_id: int, user: User) -> Card:
    card = load(store, Card, card_id, "card")
    ensure(resolver.can_edit_card(user, card))
    return card


# === Health ===


@app.get("/v1/health", response_model=Health)
def health() -> Health:
    return Health()


# === Boards ===


@app.get("/v1/boards", response_model=list[BoardOut])
def list_boards(
    user: Optional[User] = Depends(get_current_user),
    resolver: AccessResolver = Depends(get_resolver),
):
    return resolver.boards_visible_to(user)


@app.get("/v1/user-boards", response_model=list[BoardOut])
def user_boards(user: User = Depends(require_user), resolver: AccessResolver = Depends(get_resolver)):
    return resolver.boards_joined_by(user)


@app.get("/v1/boards/{board_id}", response_model=BoardDetailOut)
def get_board(
    board_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board = readable_board(store, resolver, board_id, user)
    owner = store.get_user(board.user_id) if board.user_id is not None else None
    return BoardDetailOut.model_validate(board).model_copy(
        update={
            "username": owner.username if owner else None,
            "my_role": resolver.effective_board_role(user, board),
        }
    )


@app.post("/v1/boards", response_model=BoardOut, status_code=201)
def create_board(payload: BoardIn, user: User = Depends(require_user), store: Storage = Depends(get_store)):
    board = Board(title=payload.title.strip(), description=payload.description, user_id=user.id)
    return store.add(board)


@app.patch("/v1/boards/{board_id}", response_model=BoardOut)
def update_board(
    board_id: int,
    payload: BoardPatch,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board = load(store, Board, board_id, "board")
    ensure(resolver.can_edit_board(user, board))
    return store.update(board, **changes(payload, nullable=("description",)))


@app.delete("/v1/boards/{board_id}", status_code=204)
def delete_board(
    board_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
    deleter: CascadeDeleter = Depends(get_deleter),
):
    board = load(store, Board, board_id, "board")
    ensure(resolver.can_delete_board(user, board))
    return deleted_response(deleter.delete_board(board_id), store, Board, board_id, "board")


# === Board members ===


@app.get("/v1/boards/{board_id}/members", response_model=list[MemberUserOut])
def list_board_members(
    board_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    readable_board(store, resolver, board_id, user)
    return [
        MemberUserOut(
            **UserOut.model_validate(member_user).model_dump(),
            board_role=normalize_role(member.role) or VIEWER,
        )
        for member_user, member in store.board_members(board_id)
    ]


@app.get("/v1/boards/{board_id}/members/{user_id}", response_model=BoardMemberOut)
def get_board_member(
    board_id: int,
    user_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    readable_board(store, resolver, board_id, user)
    return load(store, BoardMember, (board_id, user_id), "member")


@app.post("/v1/boards/{board_id}/members", response_model=BoardMemberOut, status_code=201)
def add_board_member(
    board_id: int,
    payload: BoardMemberIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board = load(store, Board, board_id, "board")
    load(store, User, payload.user_id, "user")
    ensure(resolver.can_manage_members(user, board))
    if store.get_board_member(board_id, payload.user_id) is not None:
        raise HTTPException(status_code=409, detail="already_member")
    return store.add(BoardMember(board_id=board_id, user_id=payload.user_id, role=payload.role))


@app.patch("/v1/boards/{board_id}/members/{user_id}", response_model=BoardMemberOut)
def update_board_member(
    board_id: int,
    user_id: int,
    payload: BoardMemberPatch,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board = load(store, Board, board_id, "board")
    ensure(resolver.can_manage_members(user, board))
    member = load(store, BoardMember, (board_id, user_id), "member")
    return store.update(member, role=payload.role)


@app.delete("/v1/boards/{board_id}/members/{user_id}", status_code=204)
def remove_board_member(
    board_id: int,
    user_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board = load(store, Board, board_id, "board")
    ensure(resolver.can_remove_member(user, board, user_id))
    removed = store.delete_where(BoardMember, BoardMember.board_id == board_id, BoardMember.user_id == user_id)
    if not removed:
        raise HTTPException(status_code=404, detail="member_not_found")
    return Response(status_code=204)


# === Lists ===


@app.get("/v1/boards/{board_id}/lists", response_model=list[ListOut])
def list_lists(
    board_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    readable_board(store, resolver, board_id, user)
    return store.lists_of(board_id)


@app.post("/v1/lists", response_model=ListOut, status_code=201)
def create_list(
    payload: ListIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board = load(store, Board, payload.board_id, "board")
    ensure(resolver.can_edit_board(user, board))
    order = payload.order
    if order is None:
        order = store.next_order(BoardList.order, BoardList.board_id, board.id)
    return store.add(BoardList(title=payload.title.strip(), board_id=board.id, order=order))


@app.patch("/v1/lists/{list_id}", response_model=ListOut)
def update_list(
    list_id: int,
    payload: ListPatch,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board_list = load(store, BoardList, list_id, "list")
    ensure(resolver.can_edit_board(user, store.get(Board, board_list.board_id)))
    return store.update(board_list, **changes(payload))


@app.delete("/v1/lists/{list_id}", status_code=204)
def delete_list(
    list_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
    deleter: CascadeDeleter = Depends(get_deleter),
):
    board_list = load(store, BoardList, list_id, "list")
    ensure(resolver.can_edit_board(user, store.get(Board, board_list.board_id)))
    return deleted_response(deleter.delete_list(list_id), store, BoardList, list_id, "list")


# === Cards ===


@app.get("/v1/lists/{list_id}/cards", response_model=list[CardOut])
def list_cards(
    list_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board_list = load(store, BoardList, list_id, "list")
    ensure(resolver.can_access_board(user, store.get(Board, board_list.board_id)))
    return store.cards_of(list_id)


@app.get("/v1/cards/{card_id}", response_model=CardOut)
def get_card(
    card_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    return readable_card(store, resolver, card_id, user)


@app.get("/v1/cards/{card_id}/details", response_model=CardDetails)
def get_card_details(
    card_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
    dashboard: Dashboard = Depends(get_dashboard),
):
    return dashboard.card_details(readable_card(store, resolver, card_id, user))


@app.post("/v1/cards", response_model=CardOut, status_code=201)
def create_card(
    payload: CardIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board_list = load(store, BoardList, payload.list_id, "list")
    ensure(resolver.can_edit_board(user, store.get(Board, board_list.board_id)))
    order = payload.order
    if order is None:
        order = store.next_order(Card.order, Card.list_id, board_list.id)
    card = Card(
        title=payload.title.strip(),
        description=payload.description,
        list_id=board_list.id,
        order=order,
        due_date=payload.due_date,
    )
    return store.add(card)


@app.patch("/v1/cards/{card_id}", response_model=CardOut)
def update_card(
    card_id: int,
    payload: CardPatch,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    card = editable_card(store, resolver, card_id, user)
    fields = changes(payload, nullable=("description", "due_date"))
    if "list_id" in fields and fields["list_id"] != card.list_id:
        target = load(store, BoardList, fields["list_id"], "list")
        current = store.get(BoardList, card.list_id)
        if target.board_id != current.board_id:
            raise HTTPException(status_code=400, detail="wrong_board")
    return store.update(card, **fields)


@app.delete("/v1/cards/{card_id}", status_code=204)
def delete_card(
    card_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
    deleter: CascadeDeleter = Depends(get_deleter),
):
    editable_card(store, resolver, card_id, user)
    return deleted_response(deleter.delete_card(card_id), store, Card, card_id, "card")


# === Labels ===


@app.get("/v1/boards/{board_id}/labels", response_model=list[LabelOut])
def list_labels(
    board_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    readable_board(store, resolver, board_id, user)
    return store.labels_of(board_id)


@app.post("/v1/labels", response_model=LabelOut, status_code=201)
def create_label(
    payload: LabelIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    board = load(store, Board, payload.board_id, "board")
    ensure(resolver.can_edit_board(user, board))
    return store.add(Label(name=payload.name.strip(), color=payload.color, board_id=board.id))


@app.get("/v1/cards/{card_id}/labels", response_model=list[LabelOut])
def list_card_labels(
    card_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    readable_card(store, resolver, card_id, user)
    return store.card_labels(card_id)


@app.post("/v1/cards/{card_id}/labels", response_model=LabelOut, status_code=201)
def add_card_label(
    card_id: int,
    payload: CardLabelIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    card = editable_card(store, resolver, card_id, user)
    label = load(store, Label, payload.label_id, "label")
    board = store.board_for_card(card.id)
    if board is None or label.board_id != board.id:
        raise HTTPException(status_code=400, detail="wrong_board")
    if store.find(CardLabel, CardLabel.card_id == card.id, CardLabel.label_id == label.id):
        raise HTTPException(status_code=409, detail="already_applied")
    store.add(CardLabel(card_id=card.id, label_id=label.id))
    return label


@app.delete("/v1/cards/{card_id}/labels/{label_id}", status_code=204)
def remove_card_label(
    card_id: int,
    label_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    editable_card(store, resolver, card_id, user)
    if not store.delete_where(CardLabel, CardLabel.card_id == card_id, CardLabel.label_id == label_id):
        raise HTTPException(status_code=404, detail="label_not_found")
    return Response(status_code=204)


# === Comments ===


@app.get("/v1/cards/{card_id}/comments", response_model=list[CommentOut])
def list_comments(
    card_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    readable_card(store, resolver, card_id, user)
    return store.comments_of(card_id)


@app.post("/v1/comments", response_model=CommentOut, status_code=201)
def create_comment(
    payload: CommentIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    card = readable_card(store, resolver, payload.card_id, user)
    comment = Comment(content=payload.content, card_id=card.id, user_id=user.id, user_name=user.name)
    return store.add(comment)


@app.delete("/v1/comments/{comment_id}", status_code=204)
def delete_comment(
    comment_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    comment = load(store, Comment, comment_id, "comment")
    if comment.user_id != user.id:
        ensure(resolver.can_edit_card(user, store.get(Card, comment.card_id)))
    if not store.delete_by_id(Comment, comment_id):
        raise HTTPException(status_code=404, detail="comment_not_found")
    return Response(status_code=204)


# === Card members ===


@app.get("/v1/cards/{card_id}/members", response_model=list[UserOut])
def list_card_members(
    card_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    readable_card(store, resolver, card_id, user)
    return store.card_members(card_id)


@app.post("/v1/cards/{card_id}/members", response_model=UserOut, status_code=201)
def add_card_member(
    card_id: int,
    payload: CardMemberIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    card = editable_card(store, resolver, card_id, user)
    member = load(store, User, payload.user_id, "user")
    if store.get(CardMember, (card.id, member.id)) is not None:
        raise HTTPException(status_code=409, detail="already_member")
    store.add(CardMember(card_id=card.id, user_id=member.id))
    return member


@app.delete("/v1/cards/{card_id}/members/{user_id}", status_code=204)
def remove_card_member(
    card_id: int,
    user_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    card = load(store, Card, card_id, "card")
    if user.id != user_id:
        ensure(resolver.can_edit_card(user, card))
    if not store.delete_where(CardMember, CardMember.card_id == card_id, CardMember.user_id == user_id):
        raise HTTPException(status_code=404, detail="member_not_found")
    return Response(status_code=204)


# === Checklists ===


@app.get("/v1/cards/{card_id}/checklists", response_model=list[ChecklistOut])
def list_checklists(
    card_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    readable_card(store, resolver, card_id, user)
    return store.checklists_of(card_id)


@app.get("/v1/checklists/{checklist_id}", response_model=ChecklistOut)
def get_checklist(
    checklist_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    checklist = load(store, Checklist, checklist_id, "checklist")
    readable_card(store, resolver, checklist.card_id, user)
    return checklist


@app.post("/v1/checklists", response_model=ChecklistOut, status_code=201)
def create_checklist(
    payload: ChecklistIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    card = editable_card(store, resolver, payload.card_id, user)
    order = payload.order
    if order is None:
        order = store.next_order(Checklist.order, Checklist.card_id, card.id)
    return store.add(Checklist(title=payload.title.strip(), card_id=card.id, order=order))


@app.patch("/v1/checklists/{checklist_id}", response_model=ChecklistOut)
def update_checklist(
    checklist_id: int,
    payload: ChecklistPatch,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    checklist = load(store, Checklist, checklist_id, "checklist")
    editable_card(store, resolver, checklist.card_id, user)
    return store.update(checklist, **changes(payload))


@app.delete("/v1/checklists/{checklist_id}", status_code=204)
def delete_checklist(
    checklist_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
    deleter: CascadeDeleter = Depends(get_deleter),
):
    checklist = load(store, Checklist, checklist_id, "checklist")
    editable_card(store, resolver, checklist.card_id, user)
    return deleted_response(deleter.delete_checklist(checklist_id), store, Checklist, checklist_id, "checklist")


@app.get("/v1/checklists/{checklist_id}/items", response_model=list[ChecklistItemOut])
def list_checklist_items(
    checklist_id: int,
    user: Optional[User] = Depends(get_current_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    checklist = load(store, Checklist, checklist_id, "checklist")
    readable_card(store, resolver, checklist.card_id, user)
    return store.items_of(checklist_id)


@app.post("/v1/checklist-items", response_model=ChecklistItemOut, status_code=201)
def create_checklist_item(
    payload: ChecklistItemIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    checklist = load(store, Checklist, payload.checklist_id, "checklist")
    editable_card(store, resolver, checklist.card_id, user)
    if payload.assigned_to_user_id is not None:
        load(store, User, payload.assigned_to_user_id, "user")
    fields = payload.model_dump()
    if fields["order"] is None:
        fields["order"] = store.next_order(ChecklistItem.order, ChecklistItem.checklist_id, checklist.id)
    return store.add(ChecklistItem(**fields))


@app.patch("/v1/checklist-items/{item_id}", response_model=ChecklistItemOut)
def update_checklist_item(
    item_id: int,
    payload: ChecklistItemPatch,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    item = load(store, ChecklistItem, item_id, "item")
    checklist = load(store, Checklist, item.checklist_id, "checklist")
    editable_card(store, resolver, checklist.card_id, user)
    fields = changes(payload, nullable=("assigned_to_user_id", "due_date"))
    if fields.get("assigned_to_user_id") is not None:
        load(store, User, fields["assigned_to_user_id"], "user")
    return store.update(item, **fields)


@app.delete("/v1/checklist-items/{item_id}", status_code=204)
def delete_checklist_item(
    item_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    item = load(store, ChecklistItem, item_id, "item")
    checklist = load(store, Checklist, item.checklist_id, "checklist")
    editable_card(store, resolver, checklist.card_id, user)
    if not store.delete_by_id(ChecklistItem, item_id):
        raise HTTPException(status_code=404, detail="item_not_found")
    return Response(status_code=204)


# === Users ===


@app.get("/v1/users", response_model=list[UserOut])
def list_users(user: User = Depends(require_user), store: Storage = Depends(get_store)):
    return store.list_users()


@app.post("/v1/users", response_model=UserOut, status_code=201)
def create_user(
    payload: UserIn,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    ensure(resolver.can_manage_users(user))
    if store.get_user_by_username(payload.username) is not None:
        raise HTTPException(status_code=409, detail="username_taken")
    email = payload.email or f"{payload.username}@example.com"
    if store.get_user_by_email(email) is not None:
        raise HTTPException(status_code=409, detail="email_taken")
    created = User(
        username=payload.username,
        email=email,
        password=hash_password(payload.password),
        name=payload.name or payload.username,
        profile_picture=payload.profile_picture,
        role=payload.role or "user",
    )
    return store.add(created)


@app.patch("/v1/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    payload: UserPatch,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    fields = changes(payload, nullable=("profile_picture",))
    ensure(resolver.can_edit_user(user, user_id, changes_role="role" in fields))
    target = load(store, User, user_id, "user")
    if "email" in fields:
        holder = store.get_user_by_email(fields["email"])
        if holder is not None and holder.id != target.id:
            raise HTTPException(status_code=409, detail="email_taken")
    return store.update(target, **fields)


@app.post("/v1/users/{user_id}/change-password", status_code=204)
def change_password(
    user_id: int,
    payload: PasswordChange,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
):
    ensure(resolver.can_edit_user(user, user_id))
    target = load(store, User, user_id, "user")
    # admins resetting someone else's password skip the current-password check
    if not resolver.is_admin(user) or user.id == user_id:
        if not payload.current_password or not verify_password(payload.current_password, target.password):
            raise HTTPException(status_code=400, detail="invalid_password")
    store.update(target, password=hash_password(payload.new_password))
    return Response(status_code=204)


@app.delete("/v1/users/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    user: User = Depends(require_user),
    store: Storage = Depends(get_store),
    resolver: AccessResolver = Depends(get_resolver),
    deleter: CascadeDeleter = Depends(get_deleter),
):
    ensure(resolver.can_manage_users(user))
    if not resolver.can_delete_user(user, user_id):
        raise HTTPException(status_code=400, detail="cannot_delete_self")
    load(store, User, user_id, "user")
    if store.boards_owned_by(user_id):
        raise HTTPException(status_code=409, detail="user_owns_boards")
    return deleted_response(deleter.delete_user(user_id), store, User, user_id, "user")


# === Dashboard ===


@app.get("/v1/dashboard/stats", response_model=BoardStats)
def dashboard_stats(user: User = Depends(require_user), dashboard: Dashboard = Depends(get_dashboard)):
    return dashboard.board_stats_for(user)


@app.get("/v1/dashboard/overdue", response_model=list[CardDigest])
def dashboard_overdue(user: User = Depends(require_user), dashboard: Dashboard = Depends(get_dashboard)):
    return dashboard.overdue_cards_for(user)


@app.get("/v1/dashboard/upcoming", response_model=list[CardDigest])
def dashboard_upcoming(user: User = Depends(require_user), dashboard: Dashboard = Depends(get_dashboard)):
    return dashboard.upcoming_cards_for(user)


@app.get("/v1/dashboard/checklists", response_model=list[CardDigest])
def dashboard_checklists(user: User = Depends(require_user), dashboard: Dashboard = Depends(get_dashboard)):
    return dashboard.checklist_cards_for(user)
