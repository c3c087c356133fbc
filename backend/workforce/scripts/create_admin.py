from __future__ import annotations

import argparse

from workforce.core.security import get_password_hash
from workforce.core.settings import settings
from workforce.db.base import Base
from workforce.db.session import build_engine, build_session_factory
from workforce.models.admin import Admin
from workforce.models.enums import AdminRole, AdminStatus


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or reset an admin console account.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Administrator")
    parser.add_argument(
        "--role",
        default=AdminRole.SUPER_ADMIN.value,
        choices=[role.value for role in AdminRole],
    )
    parser.add_argument("--org-id", default=settings.default_org_id)
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow running in production.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if settings.is_production and not args.allow_production:
        raise RuntimeError("Refusing to run in production without --allow-production")
    if len(args.password) < 12:
        raise SystemExit("Admin passwords must be at least 12 characters")

    engine = build_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    role = AdminRole(args.role)
    email = args.email.strip().lower()

    with build_session_factory(engine)() as db:
        admin = db.query(Admin).filter(Admin.email == email).first()
        if admin:
            action = "updated"
        else:
            admin = Admin(email=email)
            db.add(admin)
            action = "created"
        admin.hashed_password = get_password_hash(args.password)
        admin.name = args.name
        admin.role = role
        admin.org_id = args.org_id
        admin.status = AdminStatus.ACTIVE
        admin.failed_login_attempts = 0
        admin.locked_until = None
        db.commit()
        print(f"{action} admin: {admin.email} ({role.value})")

    engine.dispose()


if __name__ == "__main__":
    main()
