import logging
from typing import Dict, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from jam.errors import BadRequest, Forbidden, NotFound
from jam.models import Like, Post, Profile, Visibility
from jam.pagination import PageParams, read_page
from jam.schemas import Author, CommentCreate, CommentOut, LikerOut, Page, PostCreate, PostOut
from jam.services.social_graph import SocialGraph, commit_or_fail

logger = logging.getLogger(__name__)


class PostService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.graph = SocialGraph(db)

    # Enrichment: one grouped query per derived field for the whole page

    def _like_counts(self, post_ids: List[str]) -> Dict[str, int]:
        if not post_ids:
            return {}
        rows = (
            self.db.query(Like.post_id, func.count(Like.id))
            .filter(Like.post_id.in_(post_ids))
            .group_by(Like.post_id)
        )
        return {post_id: count for post_id, count in rows}

    def _comment_counts(self, post_ids: List[str]) -> Dict[str, int]:
        if not post_ids:
            return {}
        rows = (
            self.db.query(Post.parent_id, func.count(Post.id))
            .filter(Post.parent_id.in_(post_ids))
            .group_by(Post.parent_id)
        )
        return {post_id: count for post_id, count in rows}

    def _liked_by(self, post_ids: List[str], viewer_id: Optional[str]) -> Set[str]:
        if not post_ids or viewer_id is None:
            return set()
        rows = self.db.query(Like.post_id).filter(Like.post_id.in_(post_ids), Like.user_id == viewer_id)
        return {post_id for (post_id,) in rows}

    def enrich(self, posts: List[Post], viewer_id: Optional[str]) -> List[PostOut]:
        post_ids = [post.id for post in posts]
        likes = self._like_counts(post_ids)
        comments = self._comment_counts(post_ids)
        liked = self._liked_by(post_ids, viewer_id)
        return [
            PostOut(
                id=post.id,
                author_id=post.author_id,
                text=post.text or "",
                audio_url=post.audio_url or "",
                visibility=post.visibility,
                created_at=post.created_at,
                author=Author.from_profile(post.author),
                likes_count=likes.get(post.id, 0),
                comments_count=comments.get(post.id, 0),
                is_liked=post.id in liked,
            )
            for post in posts
        ]

    def _enrich_comments(self, comments: List[Post], viewer_id: Optional[str]) -> List[CommentOut]:
        comment_ids = [comment.id for comment in comments]
        likes = self._like_counts(comment_ids)
        liked = self._liked_by(comment_ids, viewer_id)
        return [
            CommentOut(
                id=comment.id,
                post_id=comment.parent_id,
                author_id=comment.author_id,
                author=Author.from_profile(comment.author),
                text=comment.text or "",
                audio_url=comment.audio_url or "",
                created_at=comment.created_at,
                likes_count=likes.get(comment.id, 0),
                is_liked=comment.id in liked,
            )
            for comment in comments
        ]

    # Lookups

    def _load(self, post_id: str) -> Post:
        post = (
            self.db.query(Post)
            .options(joinedload(Post.author))
            .filter(Post.id == post_id)
            .first()
        )
        if not post:
            raise NotFound("Post not found")
        return post

    def _load_visible(self, post_id: str, viewer_id: Optional[str]) -> Post:
        post = self._load(post_id)
        if not self.graph.can_view_post(viewer_id, post):
            raise Forbidden("This post is only visible to followers")
        return post

    def get_post(self, post_id: str, viewer_id: Optional[str] = None) -> PostOut:
        post = self._load_visible(post_id, viewer_id)
        return self.enrich([post], viewer_id)[0]

    def _top_level_page(self, name: str, params: PageParams, viewer_id: Optional[str], *conditions) -> Page:
        def fetch():
            query = self.db.query(Post).filter(
                Post.parent_id.is_(None),
                self.graph.visible_posts(viewer_id),
                *conditions,
            )
            total = query.count()
            posts = (
                query.options(joinedload(Post.author))
                .order_by(Post.created_at.desc(), Post.id.desc())
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            return self.enrich(posts, viewer_id), total

        return read_page(self.db, name, params, fetch)

    def feed(self, viewer_id: Optional[str], params: PageParams) -> Page:
        return self._top_level_page("feed", params, viewer_id)

    def posts_by_username(self, username: str, viewer_id: Optional[str], params: PageParams) -> Page:
        profile = self.db.query(Profile).filter(Profile.username == username).first()
        if not profile:
            raise NotFound("User not found")
        return self._top_level_page("posts_by_user", params, viewer_id, Post.author_id == profile.id)

    # Mutations

    def create_post(self, author_id: str, payload: PostCreate) -> PostOut:
        if not payload.text and not payload.audio_url:
            raise BadRequest("Post must have either text or audio")

        post = Post(
            author_id=author_id,
            parent_id=None,
            text=payload.text or None,
            audio_url=payload.audio_url or None,
            visibility=payload.visibility,
        )
        self.db.add(post)
        commit_or_fail(self.db, "Failed to create post")
        return self.get_post(post.id, author_id)

    def delete_post(self, post_id: str, user_id: str) -> None:
        post = self.db.query(Post).filter(Post.id == post_id).first()
        if not post:
            raise NotFound("Post not found")
        if post.author_id != user_id:
            raise Forbidden("You can only delete your own posts")
        self.db.delete(post)
        self.db.commit()
        logger.info("Post %s deleted by %s", post_id, user_id)

    def toggle_like(self, post_id: str, user_id: str) -> PostOut:
        self._load_visible(post_id, user_id)

        existing = (
            self.db.query(Like)
            .filter(Like.post_id == post_id, Like.user_id == user_id)
            .first()
        )
        if existing:
            self.db.delete(existing)
            self.db.commit()
        else:
            self.db.add(Like(post_id=post_id, user_id=user_id))
            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent request liked it first; the post ends up liked either way
                self.db.rollback()
                logger.info("Duplicate like on %s by %s ignored", post_id, user_id)

        return self.get_post(post_id, user_id)

    def likes(self, post_id: str, params: PageParams) -> Page:
        def fetch():
            self._load(post_id)
            query = self.db.query(Like).filter(Like.post_id == post_id)
            total = query.count()
            rows = (
                query.options(joinedload(Like.user))
                .order_by(Like.created_at.desc(), Like.id.desc())
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            return [LikerOut.from_profile(row.user, liked_at=row.created_at) for row in rows], total

        return read_page(self.db, "post_likes", params, fetch)

    def comments(self, post_id: str, viewer_id: Optional[str], params: PageParams, order: str = "asc") -> Page:
        def fetch():
            self._load_visible(post_id, viewer_id)
            query = self.db.query(Post).filter(Post.parent_id == post_id)
            total = query.count()
            if order == "desc":
                ordering = (Post.created_at.desc(), Post.id.desc())
            else:
                ordering = (Post.created_at.asc(), Post.id.asc())
            rows = (
                query.options(joinedload(Post.author))
                .order_by(*ordering)
                .limit(params.limit)
                .offset(params.offset)
                .all()
            )
            return self._enrich_comments(rows, viewer_id), total

        return read_page(self.db, "comments", params, fetch)

    def create_comment(self, post_id: str, author_id: str, payload: CommentCreate) -> CommentOut:
        self._load_visible(post_id, author_id)
        if not payload.content and not payload.audio_url:
            raise BadRequest("Comment must have either content or audio_url")

        comment = Post(
            author_id=author_id,
            parent_id=post_id,
            text=payload.content or None,
            audio_url=payload.audio_url or None,
            visibility=Visibility.PUBLIC,
        )
        self.db.add(comment)
        commit_or_fail(self.db, "Failed to create comment")
        comment = self._load(comment.id)
        return self._enrich_comments([comment], author_id)[0]
