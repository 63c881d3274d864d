from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from crm.auth.security import hash_password  # noqa: E402
from crm.db.base import SessionLocal  # noqa: E402
from crm.db.repositories.users import UsersRepository  # noqa: E402


def main(name: str, email: str, password: str) -> None:
    session = SessionLocal()
    try:
        user = UsersRepository(session).upsert_admin(
            name=name,
            email=email,
            password_hash=hash_password(password),
        )
        print(f"Admin ready: {user.email} (id={user.id})")
    finally:
        session.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create an admin user, or promote an existing one.")
    parser.add_argument("--email", type=str, required=True, help="Admin email address.")
    parser.add_argument("--password", type=str, required=True, help="Password for local sign-in.")
    parser.add_argument("--name", type=str, default="Admin", help="Display name for a newly created admin.")
    args = parser.parse_args()
    if len(args.password) < 6:
        parser.error("--password must be at least 6 characters")
    main(name=args.name, email=args.email, password=args.password)
