#!/usr/bin/env python3
"""Activate or deactivate a user account (idempotent).

Deactivated users keep their customers but every token they hold stops working.

Usage:
  python scripts/set_user_active.py --email jo@example.com --inactive
  python scripts/set_user_active.py --email jo@example.com --active
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.models import User  # noqa: E402
from scripts._db_utils import database_url_from_env, script_session  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--active", dest="active", action="store_true")
    group.add_argument("--inactive", dest="active", action="store_false")
    args = parser.parse_args()

    with script_session(database_url_from_env()) as s:
        user = s.query(User).filter(User.email == args.email.strip().lower()).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            return
        if user.is_active == args.active:
            print(f"No change: {args.email} is_active={user.is_active}")
            return
        user.is_active = args.active
    print(f"{args.email} is_active={args.active}")


if __name__ == "__main__":
    main()
