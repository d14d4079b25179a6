# atlas_core/modules/survey/routers.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Request

from atlas_core.core.security import require_module
from atlas_core.models.api_common import OkResponse
from .models import SurveyIssueRequest, SurveyLinkStatus, SurveySubmitRequest
from .services import SurveyService, get_survey_service, request_origin

router = APIRouter()


@router.post("/orders/{order_id}/survey", dependencies=[Depends(require_module("sales"))], tags=["Delivery Survey"])
async def issue_survey(
    request: Request,
    order_id: str = Path(...),
    payload: Optional[SurveyIssueRequest] = Body(None),
    survey_service: SurveyService = Depends(get_survey_service),
):
    return await survey_service.issue(order_id, payload or SurveyIssueRequest(), request_origin(request))


@router.get("/delivery-survey/{token}", response_model=SurveyLinkStatus, tags=["Delivery Survey"])
async def survey_status(
    token: str = Path(...),
    survey_service: SurveyService = Depends(get_survey_service),
):
    return await survey_service.link_status(token)


@router.post("/delivery-survey/submit", response_model=OkResponse, tags=["Delivery Survey"])
async def submit_survey(
    payload: Optional[SurveySubmitRequest] = Body(None),
    survey_service: SurveyService = Depends(get_survey_service),
):
    """Public. Each link accepts exactly one answer."""
    await survey_service.submit(payload or SurveySubmitRequest())
    return OkResponse()
