# kubexray/api/endpoints/health.py
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz", summary="Readiness of the controller")
async def healthz(request: Request):
    state = request.app.state
    k8s_service = getattr(state, "k8s_service", None)
    policy_table = getattr(state, "policy_table", None)
    return {
        "ready": getattr(state, "webhook_receiver", None) is not None,
        "kubernetes_available": bool(k8s_service and k8s_service.is_available()),
        "policy_configured": bool(policy_table and policy_table.configured),
    }
