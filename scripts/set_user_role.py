#!/usr/bin/env python3
"""Set a user's role (idempotent).

Usage:
  python scripts/set_user_role.py --email ops@example.com --role operator
"""

import sys
import os
import argparse
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.roledash.models import User  # noqa: E402
from app.roledash.rbac import Role, is_valid_role  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--role", required=True, choices=[r.value for r in Role], help="Role to assign")
    args = parser.parse_args()

    if not is_valid_role(args.role):
        print(f"Unknown role: {args.role}")
        sys.exit(2)

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///roledash.db").strip()
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email.ilike(args.email)).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            return
        if user.role == args.role:
            print(f"User already has role {args.role}: {args.email}")
            return
        previous = user.role
        user.role = args.role
    print(f"Role changed for {args.email}: {previous} -> {args.role}")


if __name__ == "__main__":
    main()
