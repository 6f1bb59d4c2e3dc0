"""ORM models for the blog store."""

from .user import User, UserRole
from .category import Category
from .post import Post
from .comment import Comment
from .token import AccessToken

__all__ = ["User", "UserRole", "Category", "Post", "Comment", "AccessToken"]
