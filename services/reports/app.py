from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session

from hotelops import reports
from hotelops.app_factory import create_service_app, limiter
from hotelops.database import get_db
from hotelops.dependencies import allow_roles, get_current_active_user
from hotelops.errors import ValidationFailed
from hotelops.models import FRONT_OFFICE_ROLES, MANAGEMENT_ROLES, User

app = create_service_app("Reports Service", "reports")

require_manager = allow_roles(*MANAGEMENT_ROLES)
require_front_office = allow_roles(*FRONT_OFFICE_ROLES)

MAX_REPORT_DAYS = 366


def _resolve_range(start_date: Optional[date], end_date: Optional[date]) -> tuple[date, date]:
    end = end_date or date.today()
    start = start_date or end - timedelta(days=29)
    if end < start:
        raise ValidationFailed("end_date must not be before start_date")
    if (end - start).days >= MAX_REPORT_DAYS:
        raise ValidationFailed(f"Report range cannot exceed {MAX_REPORT_DAYS} days")
    return start, end


@app.get("/dashboard/metrics")
@limiter.limit("30/minute")
def dashboard_metrics(
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return reports.dashboard_metrics(db, current_user)


@app.get("/reports/occupancy")
@limiter.limit("30/minute")
def occupancy(
    request: Request,
    on: Optional[date] = Query(None, alias="date"),
    current_user: User = Depends(require_front_office),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return reports.occupancy_report(db, on)


@app.get("/reports/audit")
@limiter.limit("20/minute")
def night_audit(
    request: Request,
    business_date: Optional[date] = None,
    current_user: User = Depends(require_front_office),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return reports.night_audit(db, business_date or date.today())


@app.get("/reports/statistics")
@limiter.limit("20/minute")
def statistics(
    request: Request,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    start, end = _resolve_range(start_date, end_date)
    return reports.statistics_report(db, start, end)


@app.get("/reports/restaurant")
@limiter.limit("20/minute")
def restaurant_sales(
    request: Request,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    start, end = _resolve_range(start_date, end_date)
    return reports.restaurant_report(db, start, end)


@app.get("/analytics/rooms/popularity")
@limiter.limit("30/minute")
def room_popularity(
    request: Request,
    limit: int = Query(5, ge=1, le=25),
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return reports.room_popularity(db, limit)


@app.get("/analytics/users/activity")
@limiter.limit("30/minute")
def user_activity(
    request: Request,
    limit: int = Query(5, ge=1, le=50),
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return reports.user_activity(db, limit)
