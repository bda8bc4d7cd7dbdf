"""
Create the first admin account on an empty database.

Usage:
    python scripts/seed_admin.py <email> <password> [--first-name Admin] [--last-name SPS]
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv

load_dotenv()

from sps_dashboard.config import settings
from sps_dashboard.db import Base, engine, SessionLocal
from sps_dashboard.logging import setup_logging
from sps_dashboard.services.bootstrap import seed_admin


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the first admin user")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="SPS")
    args = parser.parse_args(argv)

    if len(args.password) < settings.min_password_length:
        print(f"ERROR: password must be at least {settings.min_password_length} characters")
        return 1

    setup_logging()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        admin = seed_admin(db, args.email, args.password, first_name=args.first_name, last_name=args.last_name)
    finally:
        db.close()
    if admin is None:
        print("Users already exist, nothing to do")
        return 0
    print(f"Admin created: {admin.email}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
