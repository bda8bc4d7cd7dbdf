"""
Import missions from a CSV file.

Usage:
    python scripts/import_missions.py <csv_path> [--admin-email admin@example.com]

Expected columns (header line, comma-separated, French names accepted):
    - client (required)
    - site (required)
    - address (required)
    - city (required)
    - start_date / end_date (required, YYYY-MM-DD or DD/MM/YYYY)
    - postal_code, reference, coordinator_email, instructions
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from sps_dashboard.db import SessionLocal
from sps_dashboard.logging import setup_logging
from sps_dashboard.models.models import User
from sps_dashboard.services.audit import log_activity
from sps_dashboard.services.mission_import import import_missions


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import missions from a CSV file")
    parser.add_argument("csv_path")
    parser.add_argument("--admin-email", help="Admin recorded as creator of the missions")
    args = parser.parse_args(argv)

    setup_logging()
    with open(args.csv_path, "r", encoding="utf-8-sig") as f:
        text = f.read()

    db = SessionLocal()
    try:
        admin = None
        if args.admin_email:
            admin = db.query(User).filter(User.email == args.admin_email.strip().lower()).first()
            if admin is None:
                print(f"ERROR: no user with email {args.admin_email}")
                return 1
        result = import_missions(db, text, created_by=admin)
        log_activity(
            db, admin, "missions_imported", "mission", "import",
            details={
                "filename": os.path.basename(args.csv_path),
                "imported": result.imported,
                "total_rows": result.total_rows,
                "failed_row": result.failed_row,
                "error": result.error,
            },
        )
    finally:
        db.close()

    print(f"Imported {result.imported}/{result.total_rows} missions ({result.created_clients} new clients)")
    if not result.ok:
        where = f" at row {result.failed_row}" if result.failed_row else ""
        print(f"ERROR{where}: {result.error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
