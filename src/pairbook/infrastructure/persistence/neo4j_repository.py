"""Neo4j implementations of PairingStore and PostRepository.

Graph: (:Invitation {id, code, created_by, created_at}),
(:Relationship {id, user1_id, user2_id, status, ...}), (:Post {id, relationship_id, ...}).
(:Account {id}) nodes exist only as lock targets for the one-active-relationship guard.
Integer ids come from (:Sequence {name, value}) counters. Timestamps are stored as UTC ISO strings.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import TypeVar

from neo4j.exceptions import DriverError, Neo4jError

from pairbook.application.ports import StoreError
from pairbook.domain import Invitation, Post, Relationship, RelationshipStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONSTRAINT_QUERIES = (
    "CREATE CONSTRAINT account_id_unique IF NOT EXISTS "
    "FOR (a:Account) REQUIRE a.id IS UNIQUE",
    "CREATE CONSTRAINT sequence_name_unique IF NOT EXISTS "
    "FOR (s:Sequence) REQUIRE s.name IS UNIQUE",
    "CREATE CONSTRAINT invitation_code_unique IF NOT EXISTS "
    "FOR (i:Invitation) REQUIRE i.code IS UNIQUE",
    "CREATE CONSTRAINT relationship_id_unique IF NOT EXISTS "
    "FOR (r:Relationship) REQUIRE r.id IS UNIQUE",
    "CREATE CONSTRAINT post_id_unique IF NOT EXISTS "
    "FOR (p:Post) REQUIRE p.id IS UNIQUE",
    "CREATE INDEX relationship_user1 IF NOT EXISTS FOR (r:Relationship) ON (r.user1_id)",
    "CREATE INDEX relationship_user2 IF NOT EXISTS FOR (r:Relationship) ON (r.user2_id)",
    "CREATE INDEX post_relationship IF NOT EXISTS FOR (p:Post) ON (p.relationship_id)",
)

_NEXT_ID_QUERY = """
MERGE (s:Sequence {name: $name})
SET s.value = coalesce(s.value, 0) + 1
RETURN s.value AS value
"""

_LOCK_ACCOUNTS_QUERY = """
UNWIND $user_ids AS user_id
MERGE (a:Account {id: user_id})
SET a.lock_seq = coalesce(a.lock_seq, 0) + 1
"""

_LOCK_RELATIONSHIP_QUERY = """
MATCH (r:Relationship {id: $id})
SET r.lock_seq = coalesce(r.lock_seq, 0) + 1
RETURN r
"""

_FIND_RELATIONSHIP_BY_STATUS_QUERY = """
MATCH (r:Relationship)
WHERE (r.user1_id = $user_id OR r.user2_id = $user_id) AND r.status = $status
RETURN r
ORDER BY r.ended_at DESC, r.id DESC
LIMIT 1
"""

_INSERT_RELATIONSHIP_QUERY = """
CREATE (r:Relationship {
    id: $id,
    user1_id: $user1_id,
    user2_id: $user2_id,
    status: $status,
    start_date: null,
    created_at: $now,
    updated_at: $now
})
RETURN r
"""

_SAVE_RELATIONSHIP_QUERY = """
MATCH (r:Relationship {id: $id})
SET r.status = $status,
    r.start_date = $start_date,
    r.updated_at = $updated_at,
    r.ended_at = $ended_at,
    r.resume_requested_by = $resume_requested_by,
    r.resume_requested_at = $resume_requested_at
RETURN r.id AS id
"""

_FIND_INVITATION_BY_CODE_QUERY = """
MATCH (i:Invitation {code: $code})
RETURN i
LIMIT 1
"""

_FIND_LATEST_INVITATION_QUERY = """
MATCH (i:Invitation {created_by: $creator_id})
RETURN i
ORDER BY i.created_at DESC, i.id DESC
LIMIT 1
"""

_INSERT_INVITATION_QUERY = """
CREATE (i:Invitation {id: $id, code: $code, created_by: $creator_id, created_at: $now})
RETURN i
"""

_DELETE_INVITATION_QUERY = """
MATCH (i:Invitation {id: $id})
DELETE i
RETURN count(*) AS removed
"""

_DELETE_INVITATIONS_BY_CREATOR_QUERY = """
MATCH (i:Invitation {created_by: $creator_id})
DELETE i
RETURN count(*) AS removed
"""

_INSERT_POST_QUERY = """
CREATE (p:Post {
    id: $id,
    text: $text,
    created_by: $created_by,
    relationship_id: $relationship_id,
    created_at: $now,
    updated_at: $now
})
RETURN p
"""


def _datetime_to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    # Fixed width so stored strings sort chronologically.
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _iso_to_datetime(s: str | None) -> datetime | None:
    if not s:
        return None
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _record_to_relationship(node) -> Relationship:
    start_date = node.get("start_date")
    return Relationship(
        id=node["id"],
        user1_id=node["user1_id"],
        user2_id=node["user2_id"],
        status=RelationshipStatus(node["status"]),
        start_date=date.fromisoformat(start_date) if start_date else None,
        created_at=_iso_to_datetime(node["created_at"]),
        updated_at=_iso_to_datetime(node.get("updated_at") or node["created_at"]),
        ended_at=_iso_to_datetime(node.get("ended_at")),
        resume_requested_by=node.get("resume_requested_by"),
        resume_requested_at=_iso_to_datetime(node.get("resume_requested_at")),
    )


def _record_to_invitation(node) -> Invitation:
    return Invitation(
        id=node["id"],
        code=node["code"],
        created_by=node["created_by"],
        created_at=_iso_to_datetime(node["created_at"]),
    )


def _record_to_post(node) -> Post:
    return Post(
        id=node["id"],
        text=node["text"],
        created_by=node["created_by"],
        relationship_id=node["relationship_id"],
        created_at=_iso_to_datetime(node["created_at"]),
        updated_at=_iso_to_datetime(node.get("updated_at")),
    )


def _next_id(tx, name: str) -> int:
    return tx.run(_NEXT_ID_QUERY, name=name).single()["value"]


def ensure_constraints(driver) -> None:
    """Create uniqueness constraints and lookup indexes if missing."""
    with driver.session() as session:
        for query in _CONSTRAINT_QUERIES:
            session.run(query)


class _Neo4jUnit:
    """PairingUnit over one managed Neo4j transaction."""

    def __init__(self, tx) -> None:
        self._tx = tx

    def lock_users(self, *user_ids: int) -> None:
        if user_ids:
            # Sorted so concurrent units lock in the same order.
            self._tx.run(_LOCK_ACCOUNTS_QUERY, user_ids=sorted(set(user_ids))).consume()

    def lock_relationship(self, relationship_id: int) -> Relationship | None:
        record = self._tx.run(_LOCK_RELATIONSHIP_QUERY, id=relationship_id).single()
        return _record_to_relationship(record["r"]) if record else None

    def _find_by_status(
        self, user_id: int, status: RelationshipStatus
    ) -> Relationship | None:
        record = self._tx.run(
            _FIND_RELATIONSHIP_BY_STATUS_QUERY, user_id=user_id, status=status.value
        ).single()
        return _record_to_relationship(record["r"]) if record else None

    def find_active_relationship(self, user_id: int) -> Relationship | None:
        return self._find_by_status(user_id, RelationshipStatus.ACTIVE)

    def find_ended_relationship(self, user_id: int) -> Relationship | None:
        return self._find_by_status(user_id, RelationshipStatus.PENDING_DELETION)

    def insert_relationship(
        self, user1_id: int, user2_id: int, now: datetime
    ) -> Relationship:
        record = self._tx.run(
            _INSERT_RELATIONSHIP_QUERY,
            id=_next_id(self._tx, "relationship"),
            user1_id=user1_id,
            user2_id=user2_id,
            status=RelationshipStatus.ACTIVE.value,
            now=_datetime_to_iso(now),
        ).single()
        return _record_to_relationship(record["r"])

    def save_relationship(self, relationship: Relationship) -> None:
        record = self._tx.run(
            _SAVE_RELATIONSHIP_QUERY,
            id=relationship.id,
            status=relationship.status.value,
            start_date=relationship.start_date.isoformat()
            if relationship.start_date
            else None,
            updated_at=_datetime_to_iso(relationship.updated_at),
            ended_at=_datetime_to_iso(relationship.ended_at),
            resume_requested_by=relationship.resume_requested_by,
            resume_requested_at=_datetime_to_iso(relationship.resume_requested_at),
        ).single()
        if record is None:
            raise KeyError(f"Relationship {relationship.id} does not exist")

    def find_invitation_by_code(self, code: str) -> Invitation | None:
        record = self._tx.run(_FIND_INVITATION_BY_CODE_QUERY, code=code).single()
        return _record_to_invitation(record["i"]) if record else None

    def find_latest_invitation(self, creator_id: int) -> Invitation | None:
        record = self._tx.run(
            _FIND_LATEST_INVITATION_QUERY, creator_id=creator_id
        ).single()
        return _record_to_invitation(record["i"]) if record else None

    def insert_invitation(self, code: str, creator_id: int, now: datetime) -> Invitation:
        record = self._tx.run(
            _INSERT_INVITATION_QUERY,
            id=_next_id(self._tx, "invitation"),
            code=code,
            creator_id=creator_id,
            now=_datetime_to_iso(now),
        ).single()
        return _record_to_invitation(record["i"])

    def delete_invitation(self, invitation_id: int) -> bool:
        record = self._tx.run(_DELETE_INVITATION_QUERY, id=invitation_id).single()
        return bool(record and record["removed"])

    def delete_invitations_by_creator(self, creator_id: int) -> int:
        record = self._tx.run(
            _DELETE_INVITATIONS_BY_CREATOR_QUERY, creator_id=creator_id
        ).single()
        return record["removed"] if record else 0


class Neo4jPairingStore:
    """Stores invitations and relationships in Neo4j.
    Each atomic unit is a managed write transaction; the driver retries it on transient conflicts.
    """

    def __init__(self, driver: object) -> None:
        self._driver = driver

    def run_atomic(self, work: Callable[[_Neo4jUnit], T]) -> T:
        try:
            with self._driver.session() as session:
                return session.execute_write(lambda tx: work(_Neo4jUnit(tx)))
        except (Neo4jError, DriverError) as exc:
            logger.exception("Neo4j write transaction failed")
            raise StoreError("Relationship store unavailable") from exc

    def run_read(self, work: Callable[[_Neo4jUnit], T]) -> T:
        try:
            with self._driver.session() as session:
                return session.execute_read(lambda tx: work(_Neo4jUnit(tx)))
        except (Neo4jError, DriverError) as exc:
            logger.exception("Neo4j read transaction failed")
            raise StoreError("Relationship store unavailable") from exc


class Neo4jPostRepository:
    """Stores posts in Neo4j as (:Post) nodes keyed by relationship_id."""

    def __init__(self, driver: object) -> None:
        self._driver = driver

    def _run(self, work: Callable, *, write: bool):
        try:
            with self._driver.session() as session:
                if write:
                    return session.execute_write(work)
                return session.execute_read(work)
        except (Neo4jError, DriverError) as exc:
            logger.exception("Neo4j post query failed")
            raise StoreError("Post store unavailable") from exc

    def add(
        self, text: str, created_by: int, relationship_id: int, now: datetime
    ) -> Post:
        def work(tx):
            record = tx.run(
                _INSERT_POST_QUERY,
                id=_next_id(tx, "post"),
                text=text,
                created_by=created_by,
                relationship_id=relationship_id,
                now=_datetime_to_iso(now),
            ).single()
            return _record_to_post(record["p"])

        return self._run(work, write=True)

    def get_by_id(self, post_id: int) -> Post | None:
        def work(tx):
            record = tx.run("MATCH (p:Post {id: $id}) RETURN p", id=post_id).single()
            return _record_to_post(record["p"]) if record else None

        return self._run(work, write=False)

    def list_by_relationship(self, relationship_id: int) -> list[Post]:
        def work(tx):
            result = tx.run(
                """
                MATCH (p:Post {relationship_id: $relationship_id})
                RETURN p
                ORDER BY p.created_at DESC, p.id DESC
                """,
                relationship_id=relationship_id,
            )
            return [_record_to_post(rec["p"]) for rec in result]

        return self._run(work, write=False)

    def delete(self, post_id: int) -> bool:
        def work(tx):
            record = tx.run(
                "MATCH (p:Post {id: $id}) DELETE p RETURN count(*) AS removed",
                id=post_id,
            ).single()
            return bool(record and record["removed"])

        return self._run(work, write=True)
