"""Grafana webhook router for AlertCase API.

Grafana contact points post alert deliveries here. Responses are always
structured JSON: ``{success, message, cases, count}`` on success and
``{success: false, error}`` otherwise. The raw body is read directly so
that signature verification sees the exact bytes that were signed.
"""

import logging

from fastapi import APIRouter, Header, Request
from fastapi import status as http_status
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.exceptions import WebhookProcessingException, WebhookSignatureError
from app.models import Case
from app.routers.auth import DbSession
from app.schemas.webhook import WebhookCaseInfo, WebhookErrorResponse, WebhookResponse
from app.services.webhook_service import webhook_pipeline
from app.utils.security import verify_webhook_signature
from app.utils.sentry import add_breadcrumb

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "X-Grafana-Signature"


# =============================================================================
# Helpers
# =============================================================================


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=WebhookErrorResponse(error=message).model_dump(),
    )


def _case_info(case: Case) -> WebhookCaseInfo:
    return WebhookCaseInfo(
        case_id=case.id,
        case_number=case.case_number,
        alert_fingerprint=case.grafana_alert_uid,
        status=case.status,
        severity=case.severity,
        assigned_user_ids=case.assigned_user_ids,
        assigned_team_ids=case.assigned_team_ids,
        created_at=case.created_at,
    )


async def _read_verified_body(request: Request, signature: str | None) -> bytes:
    body = await request.body()
    verify_webhook_signature(body, signature, get_settings().grafana_webhook_secret)
    return body


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/grafana/alert",
    response_model=WebhookResponse,
    responses={400: {"model": WebhookErrorResponse}, 401: {"model": WebhookErrorResponse}},
    summary="Receive Grafana alerts",
    description=(
        "Create or update cases from a Grafana alert delivery. Repeated firings "
        "inside the dedup window are folded into the existing case; resolved "
        "alerts resolve their case."
    ),
)
async def receive_grafana_alert(
    request: Request,
    db: DbSession,
    x_grafana_signature: str | None = Header(None, alias=SIGNATURE_HEADER),
):
    try:
        body = await _read_verified_body(request, x_grafana_signature)
        add_breadcrumb("Grafana alert webhook received", data={"bytes": len(body)})
        cases = await webhook_pipeline.process_alert_payload(db, body)

    except WebhookSignatureError as e:
        logger.warning(f"Rejected Grafana webhook: {e}")
        return _error(http_status.HTTP_401_UNAUTHORIZED, str(e))
    except WebhookProcessingException as e:
        logger.warning(f"Malformed Grafana webhook: {e}")
        await db.rollback()
        return _error(http_status.HTTP_400_BAD_REQUEST, str(e))
    except Exception as e:
        logger.error(f"Failed to process Grafana webhook: {e}", exc_info=True)
        await db.rollback()
        return _error(http_status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    return WebhookResponse(
        message=f"{len(cases)} cases processed",
        cases=[_case_info(case) for case in cases],
        count=len(cases),
    )


@router.post(
    "/grafana/resolved",
    response_model=WebhookResponse,
    responses={400: {"model": WebhookErrorResponse}, 401: {"model": WebhookErrorResponse}},
    summary="Receive Grafana resolutions",
    description="Resolve the open cases of resolved alerts. Unknown fingerprints are ignored.",
)
async def receive_grafana_resolved(
    request: Request,
    db: DbSession,
    x_grafana_signature: str | None = Header(None, alias=SIGNATURE_HEADER),
):
    try:
        body = await _read_verified_body(request, x_grafana_signature)
        add_breadcrumb("Grafana resolution webhook received", data={"bytes": len(body)})
        cases = await webhook_pipeline.process_resolved_payload(db, body)

    except WebhookSignatureError as e:
        logger.warning(f"Rejected Grafana resolution webhook: {e}")
        return _error(http_status.HTTP_401_UNAUTHORIZED, str(e))
    except WebhookProcessingException as e:
        logger.warning(f"Malformed Grafana resolution webhook: {e}")
        await db.rollback()
        return _error(http_status.HTTP_400_BAD_REQUEST, str(e))
    except Exception as e:
        logger.error(f"Failed to process Grafana resolution webhook: {e}", exc_info=True)
        await db.rollback()
        return _error(http_status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    return WebhookResponse(
        message=f"{len(cases)} cases resolved",
        cases=[_case_info(case) for case in cases],
        count=len(cases),
    )


@router.get(
    "/health",
    summary="Webhook liveness probe",
)
async def webhook_health() -> dict[str, str]:
    """Always 200 while the process is up; used by Grafana contact point tests."""
    return {"status": "ok", "service": "grafana-webhooks"}


@router.post(
    "/test",
    summary="Validate a webhook delivery",
    description="Parse a delivery and report what it contains without creating cases.",
)
async def test_webhook(
    request: Request,
    x_grafana_signature: str | None = Header(None, alias=SIGNATURE_HEADER),
):
    try:
        body = await _read_verified_body(request, x_grafana_signature)
        summary = webhook_pipeline.validate_payload(body)
    except WebhookSignatureError as e:
        return _error(http_status.HTTP_401_UNAUTHORIZED, str(e))
    except WebhookProcessingException as e:
        return _error(http_status.HTTP_400_BAD_REQUEST, str(e))

    return {
        "success": True,
        "message": f"Webhook payload is valid ({summary['alert_count']} alerts)",
        **summary,
    }
