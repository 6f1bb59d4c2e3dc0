"""Administrative command line for the blog API."""

import argparse
import logging
import sys
from typing import Optional, Sequence

from .auth import hash_password
from .database import SessionLocal, init_db
from .models import User, UserRole

logger = logging.getLogger(__name__)


def create_admin(name: str, email: str, password: Optional[str]) -> User:
    """Create an admin account, or promote the existing user with ``email``."""
    init_db()
    session = SessionLocal()
    try:
        user = session.query(User).filter(User.email == email).first()
        if user is None:
            if not password:
                raise ValueError("a password is required to create a new admin")
            user = User(
                name=name,
                email=email,
                password=hash_password(password),
                role=UserRole.ADMIN.value,
            )
            session.add(user)
            logger.info("creating admin email=%s", email)
        else:
            user.role = UserRole.ADMIN.value
            if password:
                user.password = hash_password(password)
            logger.info("promoting user id=%s to admin", user.id)
        session.commit()
        session.refresh(user)
        return user
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="blog-api", description="Blog API administration.")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create all database tables")

    admin = sub.add_parser("create-admin", help="create or promote an admin user")
    admin.add_argument("--name", default="Administrator", help="display name for a new admin")
    admin.add_argument("--email", required=True, help="admin e-mail address")
    admin.add_argument("--password", help="password (required when creating a new user)")
    return p.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = parse_args(argv)

    if args.command == "init-db":
        init_db()
        logger.info("database tables created")
        return 0

    try:
        user = create_admin(args.name, args.email, args.password)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    logger.info("admin ready id=%s email=%s", user.id, user.email)
    return 0


if __name__ == "__main__":
    sys.exit(main())
