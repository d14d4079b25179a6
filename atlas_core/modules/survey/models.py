# atlas_core/modules/survey/models.py
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SurveyIssueRequest(BaseModel):
    phone: Optional[str] = None
    customer_name: Optional[str] = Field(None, validation_alias=AliasChoices("customer_name", "customerName"))
    resend: bool = False


class SurveyIssueResponse(BaseModel):
    ok: bool = True
    survey_url: str
    message_id: Optional[str] = None


class SurveySubmitRequest(BaseModel):
    """Raw submission; scores and flags are validated by the service so each gets its own error code."""
    model_config = ConfigDict(populate_by_name=True)

    token: Any = None
    satisfaction: Any = None
    delivery_met: Any = Field(None, validation_alias=AliasChoices("delivery_met", "deliveryMet"))
    recommendation: Any = None
    product_expectation: Any = Field(None, validation_alias=AliasChoices("product_expectation", "productExpectation"))
    comments: Any = None


class SurveyLinkStatus(BaseModel):
    ok: bool = True
    customer_name: Optional[str] = None
    order_no: Optional[Any] = None
    answered: bool
    expires_at: Optional[datetime] = None
