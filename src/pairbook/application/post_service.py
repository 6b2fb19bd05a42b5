"""Content boundary: posts are scoped to the author's relationship at write time."""

import logging

from pairbook.application.dto import (
    InvalidPost,
    NoActiveRelationship,
    PostCreated,
    PostDeleted,
    PostNotFound,
    WrongRelationship,
)
from pairbook.application.ports import Clock, PostRepository
from pairbook.application.relationship_service import RelationshipService
from pairbook.domain import Post
from pairbook.domain.entities import POST_TEXT_MAX_LENGTH, utcnow

logger = logging.getLogger(__name__)


class PostService:
    """Reads relationship state, never mutates it."""

    def __init__(
        self,
        posts: PostRepository,
        relationships: RelationshipService,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._posts = posts
        self._relationships = relationships
        self._clock = clock

    def create_post(
        self, user_id: int, text: str
    ) -> PostCreated | NoActiveRelationship | InvalidPost:
        text_clean = (text or "").strip()
        if not text_clean:
            return InvalidPost(reason="Post text is required.")
        if len(text_clean) > POST_TEXT_MAX_LENGTH:
            return InvalidPost(
                reason=f"Post text must be at most {POST_TEXT_MAX_LENGTH} chars."
            )
        relationship = self._relationships.get_active_relationship(user_id)
        if relationship is None:
            return NoActiveRelationship(user_id=user_id)
        post = self._posts.add(text_clean, user_id, relationship.id, self._clock())
        return PostCreated(post=post)

    def list_posts(self, user_id: int) -> list[Post]:
        """Posts of the caller's current relationship, newest first. Empty when unpaired."""
        relationship = self._relationships.get_active_relationship(user_id)
        if relationship is None:
            return []
        return self._posts.list_by_relationship(relationship.id)

    def delete_post(
        self, user_id: int, post_id: int
    ) -> PostDeleted | PostNotFound | WrongRelationship:
        """Only the author may delete, and only within their current relationship."""
        relationship = self._relationships.get_active_relationship(user_id)
        post = self._posts.get_by_id(post_id)
        if post is None or post.created_by != user_id:
            return PostNotFound(post_id=post_id)
        if relationship is not None and post.relationship_id != relationship.id:
            return WrongRelationship(post_id=post_id)
        self._posts.delete(post_id)
        logger.info("Post %s deleted by user %s", post_id, user_id)
        return PostDeleted(post_id=post_id)
