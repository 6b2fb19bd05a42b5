"""
FastAPI backend: pairing, relationship lifecycle, and relationship-scoped posts.
Run with uvicorn: uvicorn api.main:app --reload
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from repo root (when run from repo root or from Docker)
for path in (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path.cwd() / ".env",
):
    if path.exists():
        load_dotenv(path)
        break

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from neo4j import GraphDatabase
from pydantic import BaseModel

from pairbook.application import (
    AlreadyPaired,
    Clock,
    CreatorAlreadyPaired,
    Ended,
    Forbidden,
    GenerationExhausted,
    GracePeriodExpired,
    InvalidPost,
    InvalidStartDate,
    InvitationNotFound,
    InvitationService,
    NoActiveRelationship,
    NoEndedRelationship,
    NoPendingResume,
    PairingService,
    PairingStore,
    Paired,
    PendingPartnerApproval,
    PostCreated,
    PostNotFound,
    PostRepository,
    PostService,
    RelationshipService,
    RelationshipView,
    Resumed,
    SelfAccept,
    StoreError,
    Valid,
    WrongRelationship,
)
from pairbook.domain import Post
from pairbook.domain.entities import utcnow
from pairbook.infrastructure import (
    InMemoryPairingStore,
    InMemoryPostRepository,
    Neo4jPairingStore,
    Neo4jPostRepository,
    ensure_constraints,
)

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

# Identity is resolved upstream; the authenticated user id arrives in this header.
USER_ID_HEADER = "X-User-Id"

STORAGE_NEO4J = "neo4j"
STORAGE_MEMORY = "memory"


@dataclass
class Services:
    invitations: InvitationService
    pairing: PairingService
    relationships: RelationshipService
    posts: PostService


def build_services(
    store: PairingStore, post_repository: PostRepository, clock: Clock = utcnow
) -> Services:
    relationships = RelationshipService(store, clock=clock)
    return Services(
        invitations=InvitationService(store, clock=clock),
        pairing=PairingService(store, clock=clock),
        relationships=relationships,
        posts=PostService(post_repository, relationships, clock=clock),
    )


def build_memory_services(clock: Clock = utcnow) -> Services:
    return build_services(InMemoryPairingStore(), InMemoryPostRepository(), clock)


def _storage_backend() -> str:
    return os.environ.get("PAIRBOOK_STORAGE", STORAGE_NEO4J).strip().lower()


def _get_driver():
    uri = os.environ.get("NEO4J_URI", "bolt://localhost:7687").strip()
    user = os.environ.get("NEO4J_USER", "neo4j").strip()
    password = os.environ.get("NEO4J_PASSWORD", "password").strip()
    return GraphDatabase.driver(uri, auth=(user, password))


def _get_services(app: FastAPI) -> Services:
    if getattr(app.state, "services", None) is None:
        if _storage_backend() == STORAGE_MEMORY:
            app.state.services = build_memory_services()
        else:
            if getattr(app.state, "driver", None) is None:
                app.state.driver = _get_driver()
            app.state.services = build_services(
                Neo4jPairingStore(app.state.driver),
                Neo4jPostRepository(app.state.driver),
            )
    return app.state.services


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.driver = None
    backend = _storage_backend()
    logger.info("Pairbook API starting with %s storage", backend)
    try:
        if backend != STORAGE_MEMORY:
            app.state.driver = _get_driver()
            ensure_constraints(app.state.driver)
        yield
    finally:
        if getattr(app.state, "driver", None) is not None:
            app.state.driver.close()


app = FastAPI(title="Pairbook API", lifespan=lifespan)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable. Please try again."},
    )


def _current_user(x_user_id: str | None) -> int:
    raw = (x_user_id or "").strip()
    if not raw.isdigit() or int(raw) <= 0:
        raise HTTPException(status_code=401, detail="Authentication required")
    return int(raw)


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


# --- REST: health ---


@app.get("/health")
def health():
    return {"status": "ok"}


# --- REST: invitations ---


class AcceptInviteBody(BaseModel):
    invite_code: str


class StartDateBody(BaseModel):
    start_date: str


def _invitation_error(result) -> HTTPException:
    if isinstance(result, AlreadyPaired):
        return HTTPException(status_code=409, detail="User is already in a relationship")
    if isinstance(result, InvitationNotFound):
        return HTTPException(status_code=404, detail="Invitation not found")
    if isinstance(result, SelfAccept):
        return HTTPException(
            status_code=400,
            detail="Invalid invitation: You cannot accept your own invitation",
        )
    if isinstance(result, CreatorAlreadyPaired):
        return HTTPException(
            status_code=400,
            detail="Invalid invitation: Invitation creator is already in a relationship",
        )
    if isinstance(result, GenerationExhausted):
        return HTTPException(
            status_code=503,
            detail="Failed to generate unique invite code. Please try again.",
        )
    return HTTPException(status_code=400, detail="Invalid invitation")


@app.post("/relationship/invite/create")
def create_invite(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).invitations.create_invitation(user_id)
    if isinstance(result, AlreadyPaired | GenerationExhausted):
        raise _invitation_error(result)
    return JSONResponse(
        content={"invite_code": result.code, "created_at": _iso(result.created_at)},
        status_code=201,
    )


@app.get("/relationship/invite")
def get_invite_code(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).invitations.get_or_create(user_id)
    if isinstance(result, AlreadyPaired | GenerationExhausted):
        raise _invitation_error(result)
    return {"invite_code": result.code, "created_at": _iso(result.created_at)}


@app.get("/relationship/invite/{code}")
def validate_invite(
    code: str,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).invitations.validate(code, user_id)
    if not isinstance(result, Valid):
        raise _invitation_error(result)
    return {
        "invite_code": result.invitation.code,
        "created_by": result.invitation.created_by,
    }


@app.post("/relationship/invite/accept")
def accept_invite(
    body: AcceptInviteBody,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).pairing.accept_invitation(
        body.invite_code, user_id
    )
    if not isinstance(result, Paired):
        raise _invitation_error(result)
    return {
        "relationship": {
            "id": result.relationship_id,
            "partner_id": result.user1_id,
            "status": "active",
        }
    }


# --- REST: relationship lifecycle ---


def _relationship_to_dict(view: RelationshipView) -> dict:
    resume_request = None
    if view.resume_request is not None:
        resume_request = {
            "requested_by": view.resume_request.requested_by,
            "requested_at": _iso(view.resume_request.requested_at),
        }
    return {
        "id": view.id,
        "partner_id": view.partner_id,
        "relationship_start_date": view.start_date.isoformat()
        if view.start_date
        else None,
        "status": view.status,
        "created_at": _iso(view.created_at),
        "permanent_deletion_at": _iso(view.permanent_deletion_at),
        "resume_request": resume_request,
    }


@app.get("/relationship")
def get_relationship(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    view = _get_services(request.app).relationships.get_relationship(user_id)
    return {"relationship": _relationship_to_dict(view) if view else None}


@app.post("/relationship/end")
def end_relationship(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).relationships.end(user_id)
    if not isinstance(result, Ended):
        raise HTTPException(status_code=404, detail="No active relationship found")
    return {
        "message": "Relationship ended. All posts will be permanently deleted after grace period.",
        "permanent_deletion_at": _iso(result.permanent_deletion_at),
    }


@app.post("/relationship/resume")
def resume_relationship(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).relationships.resume(user_id)
    if isinstance(result, NoEndedRelationship):
        raise HTTPException(
            status_code=404, detail="No relationship in pending deletion state found"
        )
    if isinstance(result, GracePeriodExpired):
        raise HTTPException(
            status_code=400,
            detail="Grace period has expired. Relationship cannot be resumed.",
        )
    if isinstance(result, AlreadyPaired):
        raise HTTPException(status_code=409, detail="User is already in a relationship")
    if isinstance(result, PendingPartnerApproval):
        message = (
            "You have already requested to resume. Waiting for partner."
            if result.already_requested
            else "Resume request sent. Waiting for partner approval."
        )
        return JSONResponse(
            content={
                "message": message,
                "status": "pending_partner_approval",
                "requested_by": result.requested_by,
            },
            status_code=202,
        )
    if isinstance(result, Resumed):
        return {"message": "Relationship resumed successfully.", "status": "active"}
    raise HTTPException(status_code=400, detail="Relationship cannot be resumed")


@app.post("/relationship/resume/cancel")
def cancel_resume_request(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).relationships.cancel_resume(user_id)
    if isinstance(result, NoPendingResume):
        raise HTTPException(status_code=404, detail="No pending resume request found")
    if isinstance(result, Forbidden):
        raise HTTPException(status_code=403, detail=result.reason)
    return {"message": "Resume request cancelled successfully."}


@app.put("/relationship/start-date")
def update_start_date(
    body: StartDateBody,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).relationships.update_start_date(
        user_id, body.start_date
    )
    if isinstance(result, InvalidStartDate):
        raise HTTPException(status_code=400, detail=result.reason)
    if isinstance(result, NoActiveRelationship):
        raise HTTPException(status_code=404, detail="No active relationship found")
    return {
        "message": "Relationship start date updated successfully",
        "relationship_start_date": result.start_date.isoformat(),
    }


# --- REST: posts ---


class CreatePostBody(BaseModel):
    text: str


class PostItem(BaseModel):
    id: int
    text: str
    created_by: int
    relationship_id: int
    created_at: str
    updated_at: str | None = None


def _post_item(post: Post) -> PostItem:
    return PostItem(
        id=post.id,
        text=post.text,
        created_by=post.created_by,
        relationship_id=post.relationship_id,
        created_at=post.created_at.isoformat(),
        updated_at=_iso(post.updated_at),
    )


@app.post("/posts")
def create_post(
    body: CreatePostBody,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).posts.create_post(user_id, body.text)
    if isinstance(result, InvalidPost):
        raise HTTPException(status_code=400, detail=result.reason)
    if isinstance(result, NoActiveRelationship):
        raise HTTPException(
            status_code=403,
            detail="You must pair with a partner before performing this action",
        )
    if not isinstance(result, PostCreated):
        raise HTTPException(status_code=400, detail="Failed to create post")
    return JSONResponse(
        content=_post_item(result.post).model_dump(),
        status_code=201,
    )


@app.get("/posts")
def list_posts(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    return [_post_item(p) for p in _get_services(request.app).posts.list_posts(user_id)]


@app.delete("/posts/{post_id}")
def delete_post(
    post_id: int,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _current_user(x_user_id)
    result = _get_services(request.app).posts.delete_post(user_id, post_id)
    if isinstance(result, PostNotFound):
        raise HTTPException(
            status_code=404,
            detail="Post not found or you don't have permission to access it",
        )
    if isinstance(result, WrongRelationship):
        raise HTTPException(
            status_code=403, detail="Post does not belong to your current relationship"
        )
    return {"post_id": result.post_id, "deleted": True}
