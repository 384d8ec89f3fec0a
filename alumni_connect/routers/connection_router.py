from typing import Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from alumni_connect.auth.supabase_auth import get_current_user
from alumni_connect.core.connection_store import ConnectionStore, ACCEPT, REJECT
from alumni_connect.core.profile_access import get_profiles
from alumni_connect.database import get_db
from alumni_connect.models.connection import Connection
from alumni_connect.models.profile import Profile
from alumni_connect.schemas.connection_schema import (
    ConnectionCreate,
    ConnectionIndexOut,
    ConnectionMineOut,
    ConnectionOut,
    ConnectionStatusOut,
    ProfilePreview,
)


router = APIRouter(prefix="/connections", tags=["Connections"])


# --------------------------------------------------
# CONNECTION SERIALISER (MUST BE ABOVE ROUTES)
# --------------------------------------------------
def build_connection_out(
    conn: Connection,
    my_user_id: str,
    profiles: Dict[str, Profile],
) -> dict:
    if conn.sender_id == my_user_id:
        direction = "outgoing"
    else:
        direction = "incoming"

    other_id = conn.other_party(my_user_id)
    profile = profiles.get(other_id)

    return {
        "id": conn.id,
        "sender_id": conn.sender_id,
        "receiver_id": conn.receiver_id,
        "status": conn.status,
        "direction": direction,  # viewer-specific
        "other_user_id": other_id,
        "profile": ProfilePreview.model_validate(profile) if profile else None,
        "created_at": conn.created_at,
        "updated_at": conn.updated_at,
    }


def build_connection_list(
    db: Session,
    connections: List[Connection],
    my_user_id: str,
) -> List[dict]:
    profiles = get_profiles(db, (c.other_party(my_user_id) for c in connections))
    return [build_connection_out(c, my_user_id, profiles) for c in connections]


def get_store(db: Session = Depends(get_db)) -> ConnectionStore:
    return ConnectionStore(db)


# --------------------------------------------------
# REQUEST CONNECTION
# --------------------------------------------------
@router.post("/request", response_model=ConnectionOut, status_code=201)
def request_connection(
    payload: ConnectionCreate,
    store: ConnectionStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    my_id = current_user["sub"]
    conn = store.request(my_id, payload.receiver_id)
    return build_connection_list(store.db, [conn], my_id)[0]


# --------------------------------------------------
# ACCEPT / REJECT CONNECTION
# --------------------------------------------------
@router.post("/{connection_id}/accept", response_model=ConnectionOut)
def accept_connection(
    connection_id: int,
    store: ConnectionStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    my_id = current_user["sub"]
    conn = store.respond(connection_id, my_id, ACCEPT)
    return build_connection_list(store.db, [conn], my_id)[0]


@router.post("/{connection_id}/reject", response_model=ConnectionOut)
def reject_connection(
    connection_id: int,
    store: ConnectionStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    my_id = current_user["sub"]
    conn = store.respond(connection_id, my_id, REJECT)
    return build_connection_list(store.db, [conn], my_id)[0]


# --------------------------------------------------
# LISTINGS
# --------------------------------------------------
@router.get("/incoming", response_model=List[ConnectionOut])
def list_incoming(
    store: ConnectionStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    my_id = current_user["sub"]
    return build_connection_list(store.db, store.list_incoming_pending(my_id), my_id)


@router.get("/accepted", response_model=List[ConnectionOut])
def list_accepted(
    store: ConnectionStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    my_id = current_user["sub"]
    return build_connection_list(store.db, store.list_accepted(my_id), my_id)


@router.get("/mine", response_model=ConnectionMineOut)
def get_my_connections(
    store: ConnectionStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    my_id = current_user["sub"]

    incoming = store.list_incoming_pending(my_id)

    return {
        "incoming_pending": build_connection_list(store.db, incoming, my_id),
        "outgoing_pending": build_connection_list(
            store.db, store.list_outgoing_pending(my_id), my_id
        ),
        "accepted": build_connection_list(store.db, store.list_accepted(my_id), my_id),
        "pending_incoming_count": len(incoming),
    }


# --------------------------------------------------
# CONNECTION INDEX (read-only helpers)
#
# Other workers write to the same table, so every fetch reloads the
# viewer's index from the database and refreshes the process cache.
# --------------------------------------------------
@router.get("/index", response_model=ConnectionIndexOut)
def get_connection_index(
    store: ConnectionStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    return store.rebuild_index(current_user["sub"]).as_dict()


@router.get("/status/{user_id}", response_model=ConnectionStatusOut)
def get_connection_status(
    user_id: str,
    store: ConnectionStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    my_id = current_user["sub"]

    if user_id == my_id:
        return {"user_id": user_id, "status": "self", "button_state": "self"}

    index = store.rebuild_index(my_id)

    return {
        "user_id": user_id,
        "status": index.status_of(user_id),
        "button_state": index.button_state(user_id),
        "connection_id": index.connection_id_for(user_id),
    }
