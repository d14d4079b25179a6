# atlas_core/modules/survey/services.py
import uuid
from datetime import timedelta
from typing import Any, Dict

from fastapi import Depends, HTTPException, Request, status
from pymongo.errors import DuplicateKeyError
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.core.errors import ApiError
from atlas_core.core.repository import utcnow
from atlas_core.modules.sales.repository import OrderRepository, get_order_repository
from atlas_core.modules.survey.models import (
    SurveyIssueRequest,
    SurveyIssueResponse,
    SurveyLinkStatus,
    SurveySubmitRequest,
)
from atlas_core.modules.survey.repository import (
    SurveyLinkRepository,
    SurveyResponseRepository,
    get_survey_link_repository,
    get_survey_response_repository,
)
from atlas_core.services import whatsapp_service

LINK_LIFETIME = timedelta(days=7)
SURVEY_PATH = "/encuesta-entrega"


def request_origin(request: Request) -> str:
    """Public origin for links: Origin header, then forwarded/Host headers, then APP_URL."""
    origin = request.headers.get("origin")
    if origin:
        return origin
    host = request.headers.get("x-forwarded-host") or request.headers.get("host")
    if host:
        proto = request.headers.get("x-forwarded-proto") or "https"
        return f"{proto}://{host}"
    return settings.APP_URL or ""


def survey_url(origin: str, token: str) -> str:
    return f"{origin.rstrip('/')}{SURVEY_PATH}/{token}"


def survey_message(customer_name: str, url: str) -> str:
    first_name = (customer_name or "").split(" ")[0] or "Cliente"
    return (
        f"Hola {first_name}! Gracias por confiar en Atlas Suite. "
        f"¿Podrías ayudarnos con una encuesta rápida sobre tu entrega? {url}"
    )


def _is_score(value: Any, low: int, high: int) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and low <= value <= high


def validate_submission(payload: SurveySubmitRequest) -> Dict[str, Any]:
    """Checks a submission and returns the response row fields. Raises 400 naming the first bad field."""
    if not isinstance(payload.token, str) or not payload.token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_token")
    if not _is_score(payload.satisfaction, 1, 5):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_satisfaction")
    if not isinstance(payload.delivery_met, bool):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_delivery_met")
    if not _is_score(payload.recommendation, 0, 10):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_recommendation")
    if not isinstance(payload.product_expectation, bool):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_product_expectation")

    comments = payload.comments.strip() if isinstance(payload.comments, str) else ""
    return {
        "satisfaction_score": payload.satisfaction,
        "delivery_met_expectations": payload.delivery_met,
        "recommendation_score": payload.recommendation,
        "product_expectation": payload.product_expectation,
        "comments": comments or None,
    }


class SurveyService:
    def __init__(self, orders: OrderRepository, links: SurveyLinkRepository, responses: SurveyResponseRepository):
        self.orders = orders
        self.links = links
        self.responses = responses

    async def _link_for_order(self, order_id: str, phone: str, customer_name: str, resend: bool) -> Dict[str, Any]:
        if not resend:
            existing = await self.links.newest_open_for_order(order_id)
            if existing and existing.get("send_status") != "failed":
                return existing
        return await self.links.create({
            "order_id": order_id,
            "survey_token": uuid.uuid4().hex,
            "customer_phone": phone,
            "customer_name": customer_name,
            "send_status": "pending",
            "consumed_at": None,
            "expires_at": utcnow() + LINK_LIFETIME,
        })

    async def issue(self, order_id: str, payload: SurveyIssueRequest, origin: str) -> Dict[str, Any]:
        """
        Issues (or reuses) a survey link for a delivered order and sends it by WhatsApp.

        A missing phone is not an error: the call succeeds with `skipped`. Every
        failure after the link exists answers with the link URL so it can be
        shared by hand.
        """
        log = logger.bind(service="SurveyService", order_id=order_id)
        order = await self.orders.get_by_id(order_id)
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="order_not_found")

        phone = payload.phone if payload.phone is not None else order.get("customer_phone")
        if not phone:
            log.info("Survey skipped: order has no phone.")
            return {"ok": True, "skipped": "missing_phone"}

        customer_name = payload.customer_name or order.get("customer_name") or "Cliente"
        link = await self._link_for_order(order_id, phone, customer_name, payload.resend)
        url = survey_url(origin, link["survey_token"])

        if not whatsapp_service.is_whatsapp_configured():
            await self.links.update(link["id"], {
                "send_status": "failed",
                "send_error": "whatsapp_not_configured",
                "sent_at": utcnow(),
            })
            log.warning("Survey link created but WhatsApp is not configured.")
            raise ApiError(status.HTTP_503_SERVICE_UNAVAILABLE, "whatsapp_not_configured", {"survey_url": url})

        result = await whatsapp_service.send_whatsapp_text(phone, survey_message(customer_name, url), preview_url=True)
        if not result.ok:
            error = result.error or "send_failed"
            await self.links.update(link["id"], {
                "send_status": "failed",
                "send_error": result.error or "unknown_error",
                "sent_at": utcnow(),
            })
            status_code = result.status if result.status and result.status >= 400 else status.HTTP_502_BAD_GATEWAY
            log.error(f"Survey dispatch failed: {error}")
            raise ApiError(status_code, error, {"survey_url": url})

        await self.links.update(link["id"], {
            "send_status": "sent",
            "whatsapp_message_id": result.message_id,
            "sent_at": utcnow(),
            "send_error": None,
        })
        log.success("Survey link sent.")
        return SurveyIssueResponse(survey_url=url, message_id=result.message_id).model_dump()

    async def link_status(self, token: str) -> SurveyLinkStatus:
        link = await self.links.get_by_token(token)
        if not link:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="token_not_found")
        order = await self.orders.get_by_id(link.get("order_id"))
        return SurveyLinkStatus(
            customer_name=link.get("customer_name"),
            order_no=order.get("order_no") if order else None,
            answered=link.get("consumed_at") is not None,
            expires_at=link.get("expires_at"),
        )

    async def submit(self, payload: SurveySubmitRequest):
        fields = validate_submission(payload)
        link = await self.links.get_by_token(payload.token)
        if not link:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="token_not_found")
        if link.get("consumed_at"):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="token_consumed")

        log = logger.bind(service="SurveyService", survey_link_id=link["id"])
        claimed = await self.links.claim(link["id"])
        if claimed is None:
            log.info("Concurrent submission lost the claim.")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="token_consumed")

        try:
            await self.responses.create({"survey_link_id": link["id"], "order_id": link.get("order_id"), **fields})
        except DuplicateKeyError:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="token_consumed")
        except Exception:
            log.error("Response insert failed; releasing the link.")
            await self.links.release(link["id"], link.get("send_status"))
            raise
        log.success("Survey response stored.")


async def get_survey_service(
    orders: OrderRepository = Depends(get_order_repository),
    links: SurveyLinkRepository = Depends(get_survey_link_repository),
    responses: SurveyResponseRepository = Depends(get_survey_response_repository),
) -> SurveyService:
    return SurveyService(orders, links, responses)
