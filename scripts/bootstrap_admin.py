#!/usr/bin/env python3
"""Create the first administrator, or promote an existing account.

Registration only ever produces pending accounts, so somebody has to be an
admin before anyone can be approved.

Usage:
    ADMIN_EMAIL=owner@shop.com ADMIN_PASSWORD='Str0ng!Passw0rd' python scripts/bootstrap_admin.py

    python scripts/bootstrap_admin.py --email owner@shop.com --password 'Str0ng!Passw0rd' --name Owner

Environment Variables:
    ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_NAME: defaults for the flags
    JWT_SECRET_KEY, DATABASE_URL: read the same way the server reads them
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from storefront_auth.context import AuthContext  # noqa: E402
from storefront_auth.core.config import get_settings  # noqa: E402
from storefront_auth.models.user import UserRole  # noqa: E402
from storefront_auth.services.password_service import PasswordPolicy  # noqa: E402


async def bootstrap_admin(context: AuthContext, email: str, password: str, name: str, dry_run: bool = False) -> dict:
    """Create or promote an admin.

    Returns:
        dict with user_id, email and status
        ('created', 'promoted', 'already_admin' or 'dry_run')
    """
    await context.db.init_models()

    async with context.db.session() as db:
        existing_user = await context.users.find_by_email(db, email)

        if existing_user:
            if existing_user.is_admin:
                return {"user_id": existing_user.id, "email": existing_user.email, "status": "already_admin"}
            if dry_run:
                return {"user_id": existing_user.id, "email": existing_user.email, "status": "dry_run"}
            await context.users.set_role(db, existing_user.id, UserRole.ADMIN)
            return {"user_id": existing_user.id, "email": existing_user.email, "status": "promoted"}

        if dry_run:
            return {"user_id": None, "email": email, "status": "dry_run"}

        user = await context.users.create_user(db, name=name, email=email, password=password)
        await context.users.set_role(db, user.id, UserRole.ADMIN)
        return {"user_id": user.id, "email": user.email, "status": "created"}


def main():
    parser = argparse.ArgumentParser(
        description="Bootstrap an admin user for the storefront",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"), help="Admin email (or ADMIN_EMAIL)")
    parser.add_argument("--password", default=os.environ.get("ADMIN_PASSWORD"), help="Admin password (or ADMIN_PASSWORD)")
    parser.add_argument("--name", default=os.environ.get("ADMIN_NAME", "Administrator"), help="Display name")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be done without making changes")
    args = parser.parse_args()

    if not args.email:
        print("Error: --email or ADMIN_EMAIL environment variable required")
        sys.exit(1)
    if not args.password:
        print("Error: --password or ADMIN_PASSWORD environment variable required")
        sys.exit(1)

    check = PasswordPolicy.validate_strength(args.password)
    if not check.valid:
        print("Error: password " + "; ".join(check.violations))
        sys.exit(1)

    context = AuthContext.from_settings(get_settings())

    async def run() -> dict:
        try:
            return await bootstrap_admin(context, args.email, args.password, args.name, args.dry_run)
        finally:
            await context.db.close()

    try:
        result = asyncio.run(run())
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    messages = {
        "created": "Admin user created",
        "promoted": "Existing user promoted to admin",
        "already_admin": "No changes needed - user is already an admin",
        "dry_run": "[DRY RUN] No changes made",
    }
    print(f"{messages[result['status']]}: {result['email']} (id: {result['user_id']})")


if __name__ == "__main__":
    main()
