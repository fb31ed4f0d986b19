# make_admin.py
# Usage: python make_admin.py <phone> [password]
# Creates the user if needed, then promotes them to superadmin.

import os
import sys

from app import create_app
from extensions import db
from models import Role, User
from wallet.accounts import register_user
from wallet.errors import WalletError


def make_admin(phone, password=None):
    app = create_app()
    with app.app_context():
        user = User.query.filter_by(phone=phone).first()

        if user:
            print(f"Found user id={user.id}, phone={user.phone}. Promoting to superadmin...")
        else:
            if not password:
                raise SystemExit("No user with that phone; pass a password to create one.")
            print(f"No user with phone {phone} found, creating a new user.")
            try:
                user = register_user(phone, password)
            except WalletError as e:
                raise SystemExit(f"Could not create user: {e.message}")
            print(f"Created user id={user.id} with phone={phone}.")

        user.role = Role.SUPERADMIN.value
        db.session.commit()
        print(f"User (id={user.id}, phone={phone}) is now superadmin.")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        raise SystemExit("Usage: python make_admin.py <phone> [password]")
    make_admin(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else os.getenv("ADMIN_PASSWORD"))
