"""
Bulk mission import from CSV text.

Format: a header line naming the columns, then one mission per line,
comma-separated. Quoting is not supported: a comma inside a value shifts the
following columns.

Columns (French names from the legacy template are accepted too):
    client, site, address, city, postal_code, start_date, end_date,
    reference, coordinator_email, instructions

Each row is committed on its own. The import stops at the first failing row;
rows committed before it stay in place and the result says how many.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import Mission, User
from .sites import resolve_client, create_site
from .workflow import MissionStatus, Role

logger = structlog.get_logger(__name__)

COLUMN_ALIASES: Dict[str, str] = {
    "client": "client",
    "client_name": "client",
    "client_nom": "client",
    "site": "site",
    "site_name": "site",
    "chantier": "site",
    "chantier_nom": "site",
    "address": "address",
    "adresse": "address",
    "chantier_adresse": "address",
    "city": "city",
    "ville": "city",
    "chantier_ville": "city",
    "postal_code": "postal_code",
    "code_postal": "postal_code",
    "chantier_code_postal": "postal_code",
    "start_date": "start_date",
    "date_debut": "start_date",
    "end_date": "end_date",
    "date_fin": "end_date",
    "reference": "reference",
    "internal_reference": "reference",
    "reference_interne": "reference",
    "coordinator_email": "coordinator_email",
    "email_coordinateur": "coordinator_email",
    "coordinateur_email": "coordinator_email",
    "instructions": "instructions",
    "consignes": "instructions",
}

REQUIRED_COLUMNS = ("client", "site", "address", "city", "start_date", "end_date")

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")


class ImportRowError(ValueError):
    pass


@dataclass
class ImportResult:
    imported: int = 0
    total_rows: int = 0
    failed_row: Optional[int] = None
    error: Optional[str] = None
    mission_ids: List[str] = field(default_factory=list)
    created_clients: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def normalize_header(name: str) -> str:
    key = name.strip().lower().replace(" ", "_").replace("-", "_")
    return COLUMN_ALIASES.get(key, key)


def parse_date(value: str) -> date:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ImportRowError(f"invalid date '{value}'")


def parse_rows(text: str) -> List[Dict[str, str]]:
    """Split CSV text into dicts keyed by canonical column name. Blank lines are skipped."""
    lines = [line for line in text.replace("\r\n", "\n").split("\n") if line.strip()]
    if not lines:
        return []
    header = [normalize_header(h) for h in lines[0].lstrip("\ufeff").split(",")]
    missing = [c for c in REQUIRED_COLUMNS if c not in header]
    if missing:
        raise ImportRowError(f"missing columns: {', '.join(missing)}")
    rows = []
    for line in lines[1:]:
        values = [v.strip() for v in line.split(",")]
        rows.append({col: (values[i] if i < len(values) else "") for i, col in enumerate(header)})
    return rows


def _find_coordinator(db: Session, email: str) -> Optional[User]:
    if not email:
        return None
    return (
        db.query(User)
        .filter(
            func.lower(User.email) == email.strip().lower(),
            User.role == Role.COORDINATOR.value,
            User.is_active.is_(True),
        )
        .first()
    )


def _import_row(db: Session, row: Dict[str, str], created_by: Optional[User]) -> tuple:
    for col in REQUIRED_COLUMNS:
        if not row.get(col):
            raise ImportRowError(f"missing value for '{col}'")
    start = parse_date(row["start_date"])
    end = parse_date(row["end_date"])
    if end < start:
        raise ImportRowError("end_date is before start_date")

    client, client_created = resolve_client(db, row["client"])
    # Imported rows always get their own site record
    site = create_site(
        db,
        client,
        name=row["site"],
        address=row["address"],
        city=row["city"],
        postal_code=row.get("postal_code") or None,
        internal_reference=row.get("reference") or None,
    )
    coordinator = _find_coordinator(db, row.get("coordinator_email", ""))
    mission = Mission(
        chantier_id=site.id,
        coordinator_id=coordinator.id if coordinator else None,
        start_date=start,
        end_date=end,
        status=(MissionStatus.ASSIGNED if coordinator else MissionStatus.PENDING).value,
        instructions=row.get("instructions") or None,
        created_by=created_by.id if created_by else None,
    )
    db.add(mission)
    db.commit()
    return mission, client_created


def import_missions(db: Session, text: str, created_by: Optional[User] = None) -> ImportResult:
    result = ImportResult()
    try:
        rows = parse_rows(text)
    except ImportRowError as e:
        result.error = str(e)
        return result
    result.total_rows = len(rows)

    for index, row in enumerate(rows, start=1):
        try:
            mission, client_created = _import_row(db, row, created_by)
        except Exception as e:
            db.rollback()
            result.failed_row = index
            result.error = str(e)
            logger.warning("mission_import_row_failed", row=index, error=str(e), imported=result.imported)
            break
        result.imported += 1
        result.mission_ids.append(str(mission.id))
        if client_created:
            result.created_clients += 1

    logger.info(
        "mission_import_finished",
        imported=result.imported,
        total_rows=result.total_rows,
        failed_row=result.failed_row,
    )
    return result
