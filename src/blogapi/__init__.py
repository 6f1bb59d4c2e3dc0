"""Blog API package: authentication, posts, categories and comments."""

from .api import app

__all__ = ["app"]
