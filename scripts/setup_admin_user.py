"""
Setup Admin User Script

Creates the initial admin account, or promotes an existing account to admin.
Self registration only creates student accounts, so run this once after
applying database/schema.sql.

Usage:
    python scripts/setup_admin_user.py --email admin@example.com --username admin --password SecurePass123! --name "Admin User"
"""

import os
import sys
import argparse

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from config.loader import get_config
from dojo.constants import Role
from dojo.services.auth_service import hash_password
from dojo.tools.supabase_tool import SupabaseTool


def setup_admin(db, email: str, username: str, password: str, name: str) -> dict:
    """
    Create the admin account, or promote and reactivate an existing one.

    Returns:
        The created or updated user row
    """
    existing = db.get_active_user_by_email(email)
    if existing:
        print(f"[OK] User {email} already exists, promoting to admin")
        return db.update_user(existing["id"], {
            "rol": Role.ADMIN.value,
            "estado": True,
            "password_hash": hash_password(password),
        })

    if db.username_exists(username):
        raise ValueError(f"Username '{username}' is taken by another account")

    user = db.create_user({
        "email": email,
        "username": username,
        "password_hash": hash_password(password),
        "nombre_completo": name,
        "rol": Role.ADMIN.value,
        "estado": True,
    })
    print(f"[OK] Admin user created: {username} <{email}>")
    return user


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create the dojo admin user")
    parser.add_argument("--email", required=True, help="Admin email")
    parser.add_argument("--username", default="admin", help="Admin username")
    parser.add_argument("--password", required=True, help="Admin password (min 6 characters)")
    parser.add_argument("--name", default="Administrador", help="Full name")
    args = parser.parse_args(argv)

    if len(args.password) < 6:
        print("[X] Password must be at least 6 characters")
        return 1

    db = SupabaseTool(get_config())
    try:
        setup_admin(db, args.email, args.username, args.password, args.name)
    except ValueError as e:
        print(f"[X] {e}")
        return 1

    print("\nLog in at /api/v1/auth/login with these credentials.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
