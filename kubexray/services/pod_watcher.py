# kubexray/services/pod_watcher.py
import logging
import threading
from typing import Any, Callable, Dict, Optional

from kubernetes import watch
from kubernetes.client.exceptions import ApiException

from kubexray.services.kubernetes_service import KubernetesService
from kubexray.services.pod_handler import PodEventHandler

logger = logging.getLogger(__name__)


class PodWatcher:
    """Streams pod events for all namespaces into a PodEventHandler on a daemon thread."""

    def __init__(self, k8s_service: KubernetesService, handler: PodEventHandler,
                 watch_factory: Callable[[], Any] = watch.Watch, stream_timeout_seconds: int = 300,
                 reconnect_delay_seconds: float = 5.0):
        self.k8s_service = k8s_service
        self.handler = handler
        self.watch_factory = watch_factory
        self.stream_timeout_seconds = stream_timeout_seconds
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self._stop = threading.Event()
        self._watch = None
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if not self.k8s_service.is_available():
            logger.warning("K8s client not available. Pod watcher not started.")
            return
        self._thread = threading.Thread(target=self.run, name="pod-watcher", daemon=True)
        self._thread.start()
        logger.info("Pod watcher started.")

    def stop(self):
        self._stop.set()
        if self._watch is not None:
            self._watch.stop()
        if self._thread is not None:
            self._thread.join(timeout=5)
        logger.info("Pod watcher stopped.")

    def dispatch(self, event: Dict[str, Any]):
        """Routes one watch event. Handler errors are logged and never stop the watcher."""
        event_type, pod = event.get("type"), event.get("object")
        if pod is None or not hasattr(pod, "metadata"):
            logger.debug(f"Ignoring watch event without a pod object: {event_type}")
            return
        try:
            if event_type == "ADDED":
                self.handler.on_created(pod)
            elif event_type == "MODIFIED":
                self.handler.on_updated(pod)
            elif event_type == "DELETED":
                self.handler.on_deleted(pod)
            else:
                logger.debug(f"Ignoring watch event of type {event_type}")
        except Exception as e:
            logger.error(f"Error handling {event_type} event for pod {pod.metadata.name}: {e}", exc_info=True)

    def run(self):
        # Resuming from the last resource version avoids replaying ADDED for every running pod
        resource_version: Optional[str] = None
        while not self._stop.is_set():
            self._watch = self.watch_factory()
            kwargs: Dict[str, Any] = {"timeout_seconds": self.stream_timeout_seconds}
            if resource_version:
                kwargs["resource_version"] = resource_version
            try:
                for event in self._watch.stream(self.k8s_service.core_api.list_pod_for_all_namespaces, **kwargs):
                    self.dispatch(event)
                    if self._stop.is_set():
                        break
                resource_version = getattr(self._watch, "resource_version", None) or resource_version
            except ApiException as e:
                if e.status == 410:
                    logger.info("Pod watch resource version expired, relisting.")
                    resource_version = None
                    continue
                logger.error(f"Kubernetes API error watching pods: {e.status} - {e.reason}")
                self._stop.wait(self.reconnect_delay_seconds)
            except Exception as e:
                logger.error(f"Unexpected error watching pods: {e}", exc_info=True)
                self._stop.wait(self.reconnect_delay_seconds)
