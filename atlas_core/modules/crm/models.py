# atlas_core/modules/crm/models.py
from pydantic import BaseModel, BeforeValidator, Field, ConfigDict
from typing import Annotated, List, Optional
from datetime import datetime


def _strip_or_none(value):
    if isinstance(value, str):
        return value.strip() or None
    return value


TrimmedStr = Annotated[Optional[str], BeforeValidator(_strip_or_none)]


# --- Customers ---

class CustomerCreateAPI(BaseModel):
    name: TrimmedStr = None
    email: TrimmedStr = None
    phone: TrimmedStr = None
    channel: TrimmedStr = None
    segment: TrimmedStr = None
    notes: TrimmedStr = None


class CustomerUpdateAPI(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    channel: Optional[str] = None
    segment: Optional[str] = None
    notes: Optional[str] = None


class CustomerAPI(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    channel: Optional[str] = None
    segment: Optional[str] = None
    notes: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: Optional[datetime | str] = None
    ltv: float = 0
    orders_count: int = 0
    last_order_at: Optional[datetime | str] = None


class CustomerListResponse(BaseModel):
    ok: bool = True
    data: List[CustomerAPI]
    page: int
    page_size: int
    total: int


# --- Opportunities ---

class OpportunityCreateAPI(BaseModel):
    title: TrimmedStr = None
    customer_id: Optional[str] = None
    description: TrimmedStr = None
    stage: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    owner_id: Optional[str] = None
    probability: Optional[float] = None
    close_date: Optional[str] = None
    source: Optional[str] = None


class OpportunityUpdateAPI(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    stage: Optional[str] = None
    amount: Optional[float] = None
    probability: Optional[float] = None
    close_date: Optional[str] = None
    owner_id: Optional[str] = Field(None, description="Explicit null clears the owner.")


class OpportunityAPI(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: Optional[str] = None
    customer_id: Optional[str] = None
    description: Optional[str] = None
    stage: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    owner_id: Optional[str] = None
    probability: Optional[float] = None
    close_date: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    owner_name: Optional[str] = None
