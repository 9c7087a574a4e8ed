"""
Initialize the database for local development.

- Optionally creates tables straight from the models (SQLite dev only; use Alembic elsewhere).
- Seeds a demo user when DEMO_USER_EMAIL / DEMO_USER_PASSWORD are set (idempotent).

Usage:
  python scripts/init_db.py [--create-tables]
"""

import argparse
import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.models import Base, User  # noqa: E402
from scripts._db_utils import create_script_engine, database_url_from_env, script_session  # noqa: E402


def create_tables(*, database_url: str | None = None) -> None:
    db_url = database_url or database_url_from_env()
    engine = create_script_engine(db_url)
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()
    print("Tables created.")


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed a demo user in an idempotent way.
    Does NOT overwrite an existing user's password.
    """
    email = (os.environ.get("DEMO_USER_EMAIL") or "").strip().lower()
    password = os.environ.get("DEMO_USER_PASSWORD") or ""
    if not email or not password:
        print("DEMO_USER_EMAIL / DEMO_USER_PASSWORD not set; nothing to seed.")
        return

    db_url = database_url or database_url_from_env()
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == email).one_or_none()
        if user:
            print(f"Demo user already exists: {email}")
            return
        s.add(
            User(
                first_name="Demo",
                last_name="User",
                email=email,
                password_hash=generate_password_hash(password),
                is_active=True,
            )
        )
    print(f"Demo user created: {email}")
    print("Password: (from DEMO_USER_PASSWORD)")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--create-tables", action="store_true", help="Create tables from models (dev only)")
    args = parser.parse_args()
    if args.create_tables:
        create_tables()
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
