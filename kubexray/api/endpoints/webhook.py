# kubexray/api/endpoints/webhook.py
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from kubexray.core.exceptions import ClusterQueryError
from kubexray.models.webhook import WebhookReport
from kubexray.services.webhook_receiver import WebhookReceiver

logger = logging.getLogger(__name__)
router = APIRouter()


def get_webhook_receiver(request: Request) -> WebhookReceiver:
    """Dependency returning the receiver built at startup."""
    receiver = getattr(request.app.state, "webhook_receiver", None)
    if receiver is None:
        logger.critical("Webhook receiver requested before startup completed.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook receiver is not ready."
        )
    return receiver


@router.post(
    "/",
    summary="Receive scan service issue reports",
    description="""
Called by the scanning service when it finds new security or license issues.
Running containers whose image digest matches an impacted Docker artifact are
remediated according to the configured policy, and each affected pod is
reported once to chat and back to the scanning service.
    """,
)
async def receive_scan_webhook(
    request: Request,
    x_auth_token: Optional[str] = Header(None, alias="X-Auth-Token"),
    receiver: WebhookReceiver = Depends(get_webhook_receiver),
):
    logger.debug("Webhook triggered by Xray")
    if not receiver.is_authorized(x_auth_token):
        logger.warning("Xray did not send an appropriate token, aborting webhook")
        return Response(status_code=status.HTTP_403_FORBIDDEN)

    body = await request.body()
    try:
        report = WebhookReport.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Error reading webhook request: {e.errors()}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload.")

    start_time_ns = time.perf_counter_ns()
    # Cluster and scan service calls block, keep them off the event loop
    try:
        result = await run_in_threadpool(receiver.handle, report)
    except ClusterQueryError as e:
        logger.error(f"Error handling webhook request: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Cluster query failed.")

    duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
    logger.info(
        f"Processed webhook in {duration_ms:.2f} ms. "
        f"Matched containers: {result.matched}, Pods remediated: {len(result.notifications)}"
    )
    return {"matched": result.matched, "remediated_pods": len(result.notifications)}
