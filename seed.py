"""Utility script to bootstrap the inbox database with demo users and tags."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass

import psycopg
from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from support_inbox.conversations.models import Role
from support_inbox.conversations.tags import PostgresTagRepository
from support_inbox.core.db import ensure_schema
from support_inbox.models import User
from support_inbox.models.session import create_all, get_sessionmaker
from support_inbox.security import hash_password

logger = logging.getLogger("seed")

DEFAULT_PASSWORD = "ChangeMe123!"

DEFAULT_TAGS: tuple[tuple[str, str], ...] = (
    ("VIP", "#FFD700"),
    ("要注意", "#FF0000"),
    ("継続中", "#00FF00"),
    ("解約候補", "#FFA500"),
)


@dataclass(slots=True)
class SeedUser:
    email: str
    name: str
    role: Role


@dataclass(slots=True)
class SeedConfig:
    """Configuration derived from the environment for the seed process."""

    db_url: str
    password: str
    users: list[SeedUser]


def _safe_url(db_url: str) -> str:
    """Return a version of ``db_url`` with any password redacted."""

    try:
        parsed = make_url(db_url)
    except Exception:  # pragma: no cover
        return db_url
    if parsed.password is None:
        return db_url
    redacted = parsed.set(password="***")
    return redacted.render_as_string(hide_password=False)


def _build_database_url() -> str:
    """Compute the database URL from ``DATABASE_URL`` or ``PG*`` variables."""

    direct = os.getenv("DATABASE_URL")
    if direct:
        return direct

    host = os.getenv("PGHOST")
    port = os.getenv("PGPORT", "5432")
    database = os.getenv("PGDATABASE")
    user = os.getenv("PGUSER")
    password = os.getenv("PGPASSWORD")

    if not all([host, database, user]):
        raise RuntimeError(
            "DATABASE_URL is not configured and PGHOST/PGDATABASE/PGUSER are missing."
        )

    auth = user
    if password:
        auth = f"{user}:{password}"
    return f"postgresql://{auth}@{host}:{port}/{database}"


def _load_config() -> SeedConfig:
    domain = os.getenv("SEED_EMAIL_DOMAIN", "example.com").strip().lower()
    return SeedConfig(
        db_url=_build_database_url(),
        password=os.getenv("SEED_PASSWORD", DEFAULT_PASSWORD),
        users=[
            SeedUser(f"admin@{domain}", "管理者", Role.ADMIN),
            SeedUser(f"agent@{domain}", "担当者", Role.AGENT),
            SeedUser(f"viewer@{domain}", "閲覧者", Role.VIEWER),
        ],
    )


def wait_for_database(db_url: str, max_attempts: int = 10, delay: float = 3.0) -> None:
    """Attempt to establish a database connection, retrying if necessary."""

    safe_url = _safe_url(db_url)
    for attempt in range(1, max_attempts + 1):
        try:
            with psycopg.connect(db_url, connect_timeout=5) as connection:
                with connection.cursor() as cursor:
                    cursor.execute("SELECT 1")
        except Exception as exc:  # pragma: no cover - depends on external DB
            logger.info(
                "Database not ready (attempt %d/%d): %s; retrying in %.1fs",
                attempt,
                max_attempts,
                exc,
                delay,
            )
            if attempt >= max_attempts:
                raise RuntimeError("Database did not become ready in time") from exc
            time.sleep(delay)
            continue

        logger.info("Database connection established after %d attempt(s): %s", attempt, safe_url)
        return


def seed_users(factory: sessionmaker[Session], config: SeedConfig) -> int:
    """Create the demo users that do not exist yet; return how many were created."""

    created = 0
    with factory() as session:
        for seed_user in config.users:
            existing = session.execute(
                select(User).where(User.email == seed_user.email)
            ).scalar_one_or_none()
            if existing is not None:
                logger.info("User %s already exists; reusing.", seed_user.email)
                continue
            session.add(
                User(
                    email=seed_user.email,
                    name=seed_user.name,
                    password_hash=hash_password(config.password),
                    role=seed_user.role.value,
                )
            )
            created += 1
            logger.info("Created %s user %s", seed_user.role.value, seed_user.email)
        session.commit()

    if created and config.password == DEFAULT_PASSWORD:
        logger.warning("Default password is in use; change it for production deployments.")
    return created


def seed_tags(conn: psycopg.Connection) -> int:
    """Create the default tag catalogue; existing names are left untouched."""

    repo = PostgresTagRepository(conn)
    created = 0
    for name, color in DEFAULT_TAGS:
        if repo.get_tag_by_name(name) is None:
            repo.create_tag(name, color)
            created += 1
    conn.commit()
    logger.info("Created %d of %d default tags", created, len(DEFAULT_TAGS))
    return created


def main() -> None:
    """Entrypoint for the seeding workflow."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    config = _load_config()
    wait_for_database(config.db_url)
    logger.info("Starting seed process using %s", _safe_url(config.db_url))

    with psycopg.connect(config.db_url) as conn:
        ensure_schema(conn)
        seed_tags(conn)

    create_all(config.db_url)
    seed_users(get_sessionmaker(database_url=config.db_url), config)
    logger.info("Seed process completed.")


if __name__ == "__main__":
    main()
