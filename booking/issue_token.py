"""Print a bearer token for an existing user to stdout.

Usage:
    python -m booking.issue_token staff@example.com [--minutes 120]
"""
import argparse
import sys

from booking.auth.jwt_handler import create_access_token
from booking.database import SessionLocal
from booking.models.user import User


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Issue an access token for a user.")
    parser.add_argument("email")
    parser.add_argument("--minutes", type=int, default=None)
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == args.email.strip().lower()).first()
    finally:
        db.close()

    if user is None or not user.is_active:
        print(f"No active user with email {args.email}", file=sys.stderr)
        sys.exit(1)

    print(create_access_token(subject=user.email, expires_minutes=args.minutes, business_id=user.business_id))


if __name__ == "__main__":
    main()
