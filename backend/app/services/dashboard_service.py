"""
Dashboard aggregates: stat cards, daily sales chart, top medicines.

All figures are read from the authoritative tables (medicines, sales,
sale_items); nothing is derived from the stock movement log.
"""
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.medicine import Medicine
from app.models.sale import Sale, SaleItem

DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]  # date.weekday(): 0=Mon


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def summary(db: Session, today: Optional[date] = None) -> Dict:
    """
    Stat cards for the dashboard.
    Returns: total medicines, low stock count, today's sale count and revenue,
    medicines expiring within the warning window (not yet expired).
    """
    today = today or _utc_today()
    start, end = _day_bounds(today)

    total_medicines = db.query(func.count(Medicine.id)).scalar() or 0

    low_stock_items = db.query(func.count(Medicine.id)).filter(
        Medicine.quantity <= Medicine.reorder_level
    ).scalar() or 0

    today_sales, today_revenue = db.query(
        func.count(Sale.id), func.sum(Sale.total_amount)
    ).filter(Sale.created_at >= start, Sale.created_at < end).one()

    expiring_items = db.query(func.count(Medicine.id)).filter(
        Medicine.expiry_date >= today,
        Medicine.expiry_date <= today + timedelta(days=settings.EXPIRY_WARNING_DAYS),
    ).scalar() or 0

    return {
        "total_medicines": total_medicines,
        "low_stock_items": low_stock_items,
        "today_sales": today_sales or 0,
        "today_revenue": Decimal(str(today_revenue or 0)).quantize(Decimal("0.01")),
        "expiring_items": expiring_items,
        "currency": settings.CURRENCY,
    }


def daily_sales(db: Session, days: int = 7, today: Optional[date] = None) -> List[Dict]:
    """
    Daily revenue for the bar chart, zero-filled.
    Returns: [{date: "12 Oct", day: "Sun", revenue: 1500.00, sales: 5}, ...]
    """
    end_date = today or _utc_today()
    start_date = end_date - timedelta(days=days - 1)
    window_start, _ = _day_bounds(start_date)
    _, window_end = _day_bounds(end_date)

    rows = db.query(
        func.date(Sale.created_at).label("day"),
        func.sum(Sale.total_amount).label("revenue"),
        func.count(Sale.id).label("sales"),
    ).filter(
        Sale.created_at >= window_start,
        Sale.created_at < window_end,
    ).group_by(func.date(Sale.created_at)).all()

    by_day = {str(r.day): r for r in rows}

    result = []
    for i in range(days):
        d = start_date + timedelta(days=i)
        row = by_day.get(str(d))
        result.append({
            "date": d.strftime("%d %b"),
            "day": DAY_NAMES[d.weekday()],
            "revenue": Decimal(str(row.revenue if row else 0)).quantize(Decimal("0.01")),
            "sales": row.sales if row else 0,
        })
    return result


def top_medicines(db: Session, limit: int = 5) -> List[Dict]:
    """Medicines ranked by units sold across all recorded sales."""
    rows = db.query(
        Medicine.id,
        Medicine.name,
        func.sum(SaleItem.quantity).label("units_sold"),
        func.sum(SaleItem.total_price).label("revenue"),
    ).join(
        SaleItem, SaleItem.medicine_id == Medicine.id
    ).group_by(
        Medicine.id, Medicine.name
    ).order_by(
        func.sum(SaleItem.quantity).desc()
    ).limit(limit).all()

    return [
        {
            "medicine_id": str(r.id),
            "name": r.name,
            "units_sold": int(r.units_sold or 0),
            "revenue": Decimal(str(r.revenue or 0)).quantize(Decimal("0.01")),
        }
        for r in rows
    ]
