"""Service layer for users, categories, posts and comments."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import UploadFile
from prometheus_client import Counter
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .auth import AuthContext, authorize_owner, create_access_token, hash_password, verify_password
from .errors import BlogAPIError, InternalError, InvalidCredentials, NotFound, ValidationFailed
from .models import AccessToken, Category, Comment, Post, User, UserRole
from .slugs import post_slug, slugify
from .storage import delete_banner, store_banner


logger = logging.getLogger(__name__)

# Prometheus counters for key service events
USER_REGISTER_COUNTER = Counter("users_registered_total", "Total users registered")
LOGIN_FAILURE_COUNTER = Counter("login_failures_total", "Total rejected login attempts")
POST_COUNTER = Counter("posts_created_total", "Total posts created")
COMMENT_COUNTER = Counter("comments_created_total", "Total comments created")

EMAIL_TAKEN = "The email has already been taken."
INVALID_CATEGORY = "The selected category id is invalid."


def _handle_service_error(session: Session, exc: Exception, message: str) -> None:
    """Rollback the transaction and re-raise as an API error.

    Errors that are already part of the API contract pass through untouched;
    anything else is logged and reported with a generic message.
    """
    session.rollback()
    if isinstance(exc, BlogAPIError):
        raise exc
    if isinstance(exc, SQLAlchemyError):
        logger.exception("database error: %s", message)
    else:
        logger.exception("service layer error: %s", message)
    raise InternalError(message) from exc


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def register_user(session: Session, name: str, email: str, password: str) -> Tuple[str, User]:
    """Create an author account and issue its first token."""

    logger.info("register user email=%s", email)
    try:
        if session.query(User.id).filter(User.email == email).first():
            raise ValidationFailed.for_field("email", EMAIL_TAKEN)

        user = User(
            name=name,
            email=email,
            password=hash_password(password),
            role=UserRole.AUTHOR.value,
        )
        session.add(user)
        try:
            session.flush()
        except IntegrityError as exc:
            raise ValidationFailed.for_field("email", EMAIL_TAKEN) from exc

        token = create_access_token(session, user)
        session.commit()
        session.refresh(user)
        USER_REGISTER_COUNTER.inc()
        logger.info("registered user id=%s", user.id)
        return token, user
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to register user")


def authenticate(session: Session, email: str, password: str) -> Tuple[str, User]:
    """Check credentials and issue a new token.

    An unknown email and a wrong password are reported identically.
    """

    try:
        user = session.query(User).filter(User.email == email).first()
        if user is None or not verify_password(password, user.password):
            LOGIN_FAILURE_COUNTER.inc()
            logger.warning("rejected login attempt")
            raise InvalidCredentials()

        token = create_access_token(session, user)
        session.commit()
        session.refresh(user)
        logger.info("user id=%s logged in", user.id)
        return token, user
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to log in")


def revoke_token(session: Session, token: AccessToken) -> None:
    """Delete only the token the current request was made with."""

    try:
        user_id, token_id = token.user_id, token.id
        session.delete(token)
        session.commit()
        logger.info("revoked token id=%s user=%s", token_id, user_id)
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to log out")


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def list_categories(session: Session) -> List[Category]:
    try:
        return session.query(Category).order_by(Category.id).all()
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to fetch categories")


def get_category(session: Session, category_id: int) -> Category:
    category = session.get(Category, category_id)
    if category is None:
        raise NotFound.resource("Category")
    return category


def create_category(session: Session, name: str) -> Category:
    try:
        category = Category(name=name, slug=slugify(name))
        session.add(category)
        session.commit()
        session.refresh(category)
        logger.info("created category id=%s slug=%s", category.id, category.slug)
        return category
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to create category")


def update_category(session: Session, category_id: int, name: Optional[str] = None) -> Category:
    """Apply a partial update; the slug follows the name."""

    try:
        category = get_category(session, category_id)
        if name is not None:
            category.name = name
            category.slug = slugify(name)
            session.commit()
            session.refresh(category)
            logger.info("updated category id=%s", category.id)
        return category
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to update category")


def delete_category(session: Session, category_id: int) -> None:
    """Hard-delete a category. Its posts survive with no category."""

    try:
        category = get_category(session, category_id)
        detached = (
            session.query(Post)
            .filter(Post.category_id == category.id)
            .update({Post.category_id: None}, synchronize_session="fetch")
        )
        session.delete(category)
        session.commit()
        logger.info("deleted category id=%s detached_posts=%s", category_id, detached)
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to delete category")


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


def _post_query(session: Session):
    return session.query(Post).options(joinedload(Post.user), joinedload(Post.category))


def _load_post(session: Session, post_id: int) -> Post:
    post = _post_query(session).filter(Post.id == post_id).first()
    if post is None:
        raise NotFound.resource("Post")
    return post


def _check_category(session: Session, category_id: Optional[int]) -> None:
    if category_id is None:
        return
    if session.get(Category, category_id) is None:
        raise ValidationFailed.for_field("category_id", INVALID_CATEGORY)


def list_user_posts(session: Session, user_id: int) -> List[Post]:
    try:
        return (
            _post_query(session)
            .filter(Post.user_id == user_id)
            .order_by(Post.created_at.desc(), Post.id.desc())
            .all()
        )
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to fetch posts")


def list_published_posts(session: Session) -> List[Post]:
    try:
        return (
            _post_query(session)
            .filter(Post.is_published.is_(True))
            .order_by(Post.created_at.desc(), Post.id.desc())
            .all()
        )
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to fetch posts")


def list_posts_by_category(
    session: Session, category_id: int, include_unpublished: bool = True
) -> List[Post]:
    try:
        get_category(session, category_id)
        query = _post_query(session).filter(Post.category_id == category_id)
        if not include_unpublished:
            query = query.filter(Post.is_published.is_(True))
        return query.order_by(Post.created_at.desc(), Post.id.desc()).all()
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to fetch posts")


def get_post(session: Session, post_id: int) -> Post:
    try:
        return _load_post(session, post_id)
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to fetch post")


def create_post(
    session: Session,
    context: AuthContext,
    title: str,
    content: str,
    category_id: Optional[int] = None,
    is_published: bool = False,
    banner: Optional[UploadFile] = None,
) -> Post:
    """Create a post owned by the caller, storing the banner if one is sent."""

    logger.info("create post user=%s title=%r", context.user.id, title)
    stored: Optional[str] = None
    try:
        _check_category(session, category_id)
        if banner is not None:
            stored = store_banner(banner)

        post = Post(
            user_id=context.user.id,
            category_id=category_id,
            title=title,
            slug=post_slug(title),
            content=content,
            banner=stored,
            is_published=bool(is_published),
        )
        session.add(post)
        session.commit()
    except Exception as exc:
        delete_banner(stored)
        _handle_service_error(session, exc, "Failed to create post")

    POST_COUNTER.inc()
    logger.info("created post id=%s user=%s slug=%s", post.id, context.user.id, post.slug)
    return get_post(session, post.id)


def update_post(
    session: Session,
    context: AuthContext,
    post_id: int,
    fields: Dict[str, Any],
    banner: Optional[UploadFile] = None,
) -> Post:
    """Apply a partial update on behalf of the owner or an admin.

    ``fields`` holds only the attributes the client sent. A new title
    regenerates the slug; a new banner replaces and removes the old file.
    """

    stored: Optional[str] = None
    previous_banner: Optional[str] = None
    try:
        post = _load_post(session, post_id)
        authorize_owner(context, post)

        if "category_id" in fields:
            _check_category(session, fields["category_id"])
        if banner is not None:
            stored = store_banner(banner)

        previous_banner = post.banner
        for key in ("title", "content", "category_id", "is_published"):
            if key in fields:
                setattr(post, key, fields[key])
        if "title" in fields:
            post.slug = post_slug(fields["title"])
        if stored is not None:
            post.banner = stored

        session.commit()
    except Exception as exc:
        delete_banner(stored)
        _handle_service_error(session, exc, "Failed to update post")

    # The row now points at the new file; only the replaced one may go.
    if stored is not None and previous_banner:
        delete_banner(previous_banner)
    logger.info("updated post id=%s by user=%s fields=%s", post_id, context.user.id, sorted(fields))
    return get_post(session, post_id)


def toggle_publish(session: Session, context: AuthContext, post_id: int) -> Post:
    try:
        post = _load_post(session, post_id)
        authorize_owner(context, post)
        post.is_published = not post.is_published
        session.commit()
        logger.info("post id=%s is_published=%s", post_id, post.is_published)
        return _load_post(session, post_id)
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to update post")


def delete_post(session: Session, context: AuthContext, post_id: int) -> None:
    try:
        post = _load_post(session, post_id)
        authorize_owner(context, post)
        banner = post.banner
        session.delete(post)
        session.commit()
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to delete post")

    delete_banner(banner)
    logger.info("deleted post id=%s by user=%s", post_id, context.user.id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


def list_comments(session: Session, post_id: int) -> List[Comment]:
    try:
        if session.get(Post, post_id) is None:
            raise NotFound.resource("Post")
        return (
            session.query(Comment)
            .options(joinedload(Comment.user))
            .filter(Comment.post_id == post_id)
            .order_by(Comment.created_at, Comment.id)
            .all()
        )
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to fetch comments")


def create_comment(session: Session, context: AuthContext, post_id: int, body: str) -> Comment:
    try:
        if session.get(Post, post_id) is None:
            raise NotFound.resource("Post")
        comment = Comment(
            post_id=post_id,
            user_id=context.user.id,
            body=body,
            is_approved=True,
        )
        session.add(comment)
        session.commit()
        session.refresh(comment)
        COMMENT_COUNTER.inc()
        logger.info("created comment id=%s post=%s user=%s", comment.id, post_id, context.user.id)
        return comment
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to create comment")


def delete_comment(session: Session, context: AuthContext, comment_id: int) -> None:
    try:
        comment = session.get(Comment, comment_id)
        if comment is None:
            raise NotFound.resource("Comment")
        authorize_owner(context, comment)
        session.delete(comment)
        session.commit()
        logger.info("deleted comment id=%s by user=%s", comment_id, context.user.id)
    except Exception as exc:
        _handle_service_error(session, exc, "Failed to delete comment")
