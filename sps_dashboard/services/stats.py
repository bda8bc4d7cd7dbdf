"""
Dashboard aggregations.

Pure reductions over already-fetched mission/report rows (dicts), so the
route only decides scope and the numbers can be checked without a database.
"""
import math
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

import pytz

from ..config import settings
from .workflow import MissionStatus, ReportStatus

FR_MONTHS_SHORT = [
    "janv.", "févr.", "mars", "avr.", "mai", "juin",
    "juil.", "août", "sept.", "oct.", "nov.", "déc.",
]

SECONDS_PER_DAY = 60 * 60 * 24


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def month_label(year: int, month: int) -> str:
    return f"{FR_MONTHS_SHORT[month - 1]} {year}"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def monthly_counts(
    missions: Iterable[Mapping],
    months: Optional[int] = None,
    tz_name: Optional[str] = None,
) -> List[Dict]:
    """Missions per creation month, oldest first, limited to the latest `months` buckets."""
    months = settings.dashboard_months if months is None else months
    local_tz = pytz.timezone(tz_name or settings.tz_default)
    buckets: Dict[tuple, int] = {}
    for m in missions:
        created = m.get("created_at")
        if not created:
            continue
        local = _as_utc(created).astimezone(local_tz)
        key = (local.year, local.month)
        buckets[key] = buckets.get(key, 0) + 1
    ordered = sorted(buckets.items())
    if months > 0:
        ordered = ordered[-months:]
    else:
        ordered = []
    return [
        {"key": f"{y:04d}-{mo:02d}", "month": month_label(y, mo), "count": count}
        for (y, mo), count in ordered
    ]


def status_breakdown(missions: Iterable[Mapping]) -> List[Dict]:
    counts: "OrderedDict[str, int]" = OrderedDict()
    for m in missions:
        status = m.get("status")
        counts[status] = counts.get(status, 0) + 1
    return [{"status": s, "count": c} for s, c in counts.items()]


def average_processing_days(reports: Iterable[Mapping]) -> int:
    """
    Mean turnaround in whole days over validated / sent reports.
    A report without validated_at counts as zero days.
    """
    done = {ReportStatus.VALIDATED.value, ReportStatus.SENT_TO_CLIENT.value}
    total_seconds = 0.0
    count = 0
    for r in reports:
        if r.get("status") not in done:
            continue
        created = _as_utc(r["created_at"])
        validated = _as_utc(r["validated_at"]) if r.get("validated_at") else created
        total_seconds += (validated - created).total_seconds()
        count += 1
    if count == 0:
        return 0
    return round_half_up(total_seconds / count / SECONDS_PER_DAY)


def top_coordinators(missions: Iterable[Mapping], limit: Optional[int] = None) -> List[Dict]:
    limit = settings.dashboard_top_coordinators if limit is None else limit
    counts: "OrderedDict[str, Dict]" = OrderedDict()
    for m in missions:
        coord_id = m.get("coordinator_id")
        if not coord_id:
            continue
        entry = counts.setdefault(str(coord_id), {
            "coordinator_id": str(coord_id),
            "name": m.get("coordinator_name") or "",
            "count": 0,
        })
        entry["count"] += 1
    # sorted() is stable: ties keep encounter order
    ranked = sorted(counts.values(), key=lambda e: e["count"], reverse=True)
    return ranked[:limit]


def build_dashboard(
    missions: List[Mapping],
    reports: List[Mapping],
    active_coordinators: int,
    include_coordinator_stats: bool,
) -> Dict:
    statuses = [m.get("status") for m in missions]
    report_statuses = [r.get("status") for r in reports]
    return {
        "total_missions": len(missions),
        "pending_missions": sum(1 for s in statuses if s in (MissionStatus.PENDING.value, MissionStatus.ASSIGNED.value)),
        "completed_missions": statuses.count(MissionStatus.COMPLETED.value),
        "total_reports": len(reports),
        "submitted_reports": report_statuses.count(ReportStatus.SUBMITTED.value),
        "validated_reports": report_statuses.count(ReportStatus.VALIDATED.value),
        "sent_reports": report_statuses.count(ReportStatus.SENT_TO_CLIENT.value),
        "total_coordinators": active_coordinators,
        "avg_processing_days": average_processing_days(reports),
        "monthly_missions": monthly_counts(missions),
        "status_breakdown": status_breakdown(missions),
        "coordinator_stats": top_coordinators(missions) if include_coordinator_stats else [],
    }


def empty_dashboard() -> Dict:
    return build_dashboard([], [], 0, False)
