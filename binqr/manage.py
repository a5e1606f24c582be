"""Administrative commands.

    python -m binqr.manage init-db
    python -m binqr.manage create-user --email a@example.com --password secret1
    python -m binqr.manage mint-invite --email a@example.com
"""

import argparse
import logging
import sys

from sqlmodel import Session, select

from binqr.database import engine, init_db
from binqr.errors import BinQRError
from binqr.models.user import Profile
from binqr.services import auth_service, invite_service


def _create_user(args) -> int:
    with Session(engine) as session:
        profile = auth_service.create_account(
            args.email, args.password, session, full_name=args.name, invites=args.invites
        )
        print(f"Created {profile.email} ({profile.id}) with {profile.invites_remaining} invites")
    return 0


def _mint_invite(args) -> int:
    with Session(engine) as session:
        email = auth_service.normalize_email(args.email)
        profile = session.exec(select(Profile).where(Profile.email == email)).first()
        if not profile:
            print(f"No account for {email}", file=sys.stderr)
            return 1
        invite = invite_service.create_invite(profile.id, session)
        print(f"{invite.code} (expires {invite.expires_at.isoformat()})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="BinQR administration.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables.")

    create = sub.add_parser("create-user", help="Create an account without an invite code.")
    create.add_argument("--email", required=True)
    create.add_argument("--password", required=True)
    create.add_argument("--name", default=None)
    create.add_argument("--invites", type=int, default=None)

    mint = sub.add_parser("mint-invite", help="Create an invite code on behalf of an account.")
    mint.add_argument("--email", required=True)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    init_db()
    try:
        if args.command == "create-user":
            return _create_user(args)
        if args.command == "mint-invite":
            return _mint_invite(args)
    except BinQRError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    print("Database initialized")
    return 0


if __name__ == "__main__":
    sys.exit(main())
