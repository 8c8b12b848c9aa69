"""
Cost and usage monitoring endpoints, backed by the cost ledger.

- GET /api/monitoring/ai/cost/today
- GET /api/monitoring/ai/cost             (default: last 7 days)
- GET /api/monitoring/ai/cost/projection
- GET /api/monitoring/ai/usage            (default: last 7 days)
- GET /api/monitoring/ai/usage/month
"""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query

from insights.core.timeutils import as_naive_utc, utc_now
from insights.services.cost_ledger import CostLedger
from insights.services.pipeline import get_cost_ledger

logger = logging.getLogger(__name__)

router = APIRouter()

CURRENCY = "USD"


def _range(start: Optional[datetime], end: Optional[datetime]) -> Tuple[datetime, datetime]:
    end = as_naive_utc(end) if end else utc_now()
    start = as_naive_utc(start) if start else end - timedelta(days=7)
    return start, end


def _month_bounds(now: datetime) -> Tuple[datetime, datetime, int]:
    start = datetime(now.year, now.month, 1)
    days_in_month = calendar.monthrange(now.year, now.month)[1]
    return start, start + timedelta(days=days_in_month), days_in_month


@router.get("/ai/cost/today")
def cost_today(ledger: CostLedger = Depends(get_cost_ledger)):
    today = utc_now().replace(hour=0, minute=0, second=0, microsecond=0)
    cost = ledger.total_cost(today, today + timedelta(days=1))
    return {"date": today.date().isoformat(), "total_cost": cost, "currency": CURRENCY}


@router.get("/ai/cost")
def cost_range(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    ledger: CostLedger = Depends(get_cost_ledger),
):
    start, end = _range(start_date, end_date)
    return {
        "start_date": start.date().isoformat(),
        "end_date": end.date().isoformat(),
        "total_cost": ledger.total_cost(start, end),
        "currency": CURRENCY,
        "days_span": (end - start).days,
    }


@router.get("/ai/cost/projection")
def cost_projection(ledger: CostLedger = Depends(get_cost_ledger)):
    now = utc_now()
    start, _end, days_in_month = _month_bounds(now)
    month_cost = ledger.total_cost(start, now)
    average_daily = month_cost / now.day
    return {
        "month": start.strftime("%Y-%m"),
        "days_elapsed": now.day,
        "days_remaining": days_in_month - now.day,
        "cost_to_date": month_cost,
        "average_daily_cost": average_daily,
        "projected_month_cost": average_daily * days_in_month,
        "currency": CURRENCY,
    }


@router.get("/ai/usage")
def usage_stats(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    ledger: CostLedger = Depends(get_cost_ledger),
):
    start, end = _range(start_date, end_date)
    stats = ledger.usage_stats(start, end)
    by_operation = sorted(stats.requests_by_operation.items(), key=lambda kv: kv[1], reverse=True)
    return {
        "period": {
            "start_date": start.date().isoformat(),
            "end_date": end.date().isoformat(),
            "days_span": (end - start).days,
        },
        "summary": {
            "total_requests": stats.total_requests,
            "total_tokens": stats.total_tokens,
            "prompt_tokens": stats.prompt_tokens,
            "completion_tokens": stats.completion_tokens,
            "total_cost": stats.total_cost,
            "average_cost_per_request": stats.average_cost_per_request,
            "currency": CURRENCY,
        },
        "by_operation": [{"operation": op, "request_count": n} for op, n in by_operation],
    }


@router.get("/ai/usage/month")
def usage_month(ledger: CostLedger = Depends(get_cost_ledger)):
    now = utc_now()
    start, end, days_in_month = _month_bounds(now)
    stats = ledger.usage_stats(start, end)
    average_daily = stats.total_cost / now.day
    return {
        "month": start.strftime("%Y-%m"),
        "summary": {
            "total_requests": stats.total_requests,
            "total_cost": stats.total_cost,
            "average_daily_cost": average_daily,
            "projected_month_cost": average_daily * days_in_month,
            "currency": CURRENCY,
        },
        "breakdown": [
            {"operation": op, "request_count": n} for op, n in stats.requests_by_operation.items()
        ],
    }
