# atlas_core/modules/metrics/models.py
from datetime import datetime

from pydantic import BaseModel


class TimeRange(BaseModel):
    """Half-open [start, end) range; bounds are aware UTC datetimes."""
    start: datetime
    end: datetime


class OrdersAggregate(BaseModel):
    revenue: float = 0
    tickets: int = 0
    units: float = 0


class ReturnsToday(BaseModel):
    count: int = 0
    amount: float = 0


class AttendanceToday(BaseModel):
    marks: int = 0
    people: int = 0


class CashProxy(BaseModel):
    today: float = 0
    month: float = 0


class MetricsOverview(BaseModel):
    ok: bool = True
    today: OrdersAggregate
    week: OrdersAggregate
    month: OrdersAggregate
    returns_today: ReturnsToday
    attendance_today: AttendanceToday
    cash: CashProxy
