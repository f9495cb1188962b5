from decimal import Decimal

from pydantic import BaseModel


class DashboardSummary(BaseModel):
    total_medicines: int
    low_stock_items: int
    today_sales: int
    today_revenue: Decimal
    expiring_items: int
    currency: str


class DailySales(BaseModel):
    date: str
    day: str
    revenue: Decimal
    sales: int


class TopMedicine(BaseModel):
    medicine_id: str
    name: str
    units_sold: int
    revenue: Decimal
