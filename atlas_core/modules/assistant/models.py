# atlas_core/modules/assistant/models.py
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

Scope = Literal["general", "sales", "cash", "inventory"]
SCOPES = ("general", "sales", "cash", "inventory")


class HistoryItem(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Fields are checked by AssistantService, not by the model."""
    message: Any = None
    history: Any = Field(default_factory=list)
    scope: Any = None


class ChatResponse(BaseModel):
    ok: bool = True
    answer: str
    scope: Scope


class CriticalProduct(BaseModel):
    name: Optional[str] = None
    sku: Optional[str] = None
    total: float


class BusinessContext(BaseModel):
    overview: Optional[Any] = None
    sales_sample: Optional[List[Any]] = None
    returns_sample: Optional[List[Any]] = None
    top_customers: Optional[List[Any]] = None
    user: Optional[dict] = None
    pipeline: Optional[List[Any]] = None
    inventory_critical: Optional[List[CriticalProduct] | str] = None
