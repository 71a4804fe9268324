import logging
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from kubexray.core.config import settings
from kubexray.core.config_loader import load_policy_table, resolve_credentials
from kubexray.core.logging_config import setup_logging
from kubexray.api.api import api_router
from kubexray.services.kubernetes_service import KubernetesService
from kubexray.services.notification_service import NotificationService
from kubexray.services.pod_handler import PodEventHandler
from kubexray.services.pod_watcher import PodWatcher
from kubexray.services.policy_service import PolicyService
from kubexray.services.resource_resolver import ResourceResolver
from kubexray.services.scan_client import ScanClient
from kubexray.services.webhook_receiver import WebhookReceiver

# Setup logging FIRST
setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app instance
app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0"
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)

# Root endpoint
@app.get("/", tags=["Root"], summary="Root endpoint for service status")
async def read_root():
    """Returns a welcome message indicating the service is running."""
    return {"message": f"Welcome to the {settings.APP_NAME}"}

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception during request to {request.url}: {exc}", exc_info=True) # Log full trace for unexpected errors
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred."},
    )

def init_services(app: FastAPI):
    """
    Builds the service graph once. Credentials and policy are read-only after
    this, so request handlers and the watcher share them without locking.
    Raises ConfigurationError if the scan service credentials are missing.
    """
    credentials = resolve_credentials(settings)
    policy_table = load_policy_table(settings.POLICY_FILE_PATHS)

    k8s_service = KubernetesService()
    resolver = ResourceResolver(k8s_service)
    scan_client = ScanClient(credentials.url, credentials.user, credentials.password,
                             timeout=settings.HTTP_TIMEOUT_SECONDS)
    notifier = NotificationService(scan_client, credentials.slack_webhook_url,
                                   chat_username=settings.CHAT_USERNAME, timeout=settings.HTTP_TIMEOUT_SECONDS)
    policy_service = PolicyService(policy_table)

    app.state.policy_table = policy_table
    app.state.k8s_service = k8s_service
    app.state.scan_client = scan_client
    app.state.notifier = notifier
    app.state.pod_handler = PodEventHandler(k8s_service, resolver, scan_client, policy_service, notifier,
                                            process_updates=settings.PROCESS_POD_UPDATES)
    app.state.webhook_receiver = WebhookReceiver(k8s_service, resolver, policy_service, notifier,
                                                 token=credentials.webhook_token)
    app.state.pod_watcher = PodWatcher(k8s_service, app.state.pod_handler)
    if not credentials.slack_webhook_url:
        logger.warning("No Slack webhook URL configured. Chat notifications are disabled.")
    if not credentials.webhook_token:
        logger.warning("No webhook token configured. Inbound scan service webhooks will be rejected.")

# --- Startup/Shutdown Events ---
@app.on_event("startup")
async def startup_event():
    logger.info("Application startup...")
    init_services(app)
    if settings.WATCH_PODS:
        app.state.pod_watcher.start()
    logger.info(f"Application '{settings.APP_NAME}' started successfully.")
    logger.info(f"Scan service: {app.state.scan_client.base_url}")
    logger.info(f"Cluster URL: {app.state.k8s_service.cluster_url or '(unknown)'}")
    logger.info(f"Policy configured: {app.state.policy_table.configured}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown...")
    watcher = getattr(app.state, "pod_watcher", None)
    if watcher is not None:
        watcher.stop()
    for name in ("notifier", "scan_client"):
        service = getattr(app.state, name, None)
        if service is not None:
            service.close()
    logger.info("Application shutdown complete.")
