# kubexray/services/kubernetes_service.py
import logging
import os
from typing import List, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from kubexray.core.config import settings
from kubexray.core.exceptions import ClusterQueryError
from kubexray.models.policy import ResourceType
from kubexray.models.scan import ContainerObservation

logger = logging.getLogger(__name__)

DIGEST_MARKER = "sha256:"


def extract_digest(image_id: Optional[str]) -> Optional[str]:
    """Returns the hex digest following the last 'sha256:' in a container imageID."""
    if not image_id:
        return None
    idx = image_id.rfind(DIGEST_MARKER)
    if idx == -1:
        return None
    return image_id[idx + len(DIGEST_MARKER):] or None


def container_observations(pod: client.V1Pod) -> List[ContainerObservation]:
    statuses = (pod.status.container_statuses if pod.status else None) or []
    return [ContainerObservation(image=s.image or "", digest=extract_digest(s.image_id)) for s in statuses]


class KubernetesService:
    def __init__(self, core_api: Optional[client.CoreV1Api] = None, apps_api: Optional[client.AppsV1Api] = None,
                 cluster_url: Optional[str] = None):
        self.core_api: Optional[client.CoreV1Api] = core_api
        self.apps_api: Optional[client.AppsV1Api] = apps_api
        self.cluster_url: str = ""
        if core_api is None and apps_api is None:
            self._load_config()
        self.cluster_url = self._normalize_cluster_url(cluster_url or settings.CLUSTER_URL or self.cluster_url)

    def _load_config(self):
        """Loads Kubernetes configuration."""
        try:
            # Prioritize in-cluster config
            if os.getenv("KUBERNETES_SERVICE_HOST"):
                config.load_incluster_config()
                logger.info("Loaded in-cluster Kubernetes config.")
            # Then check explicit path from settings
            elif settings.KUBE_CONFIG_PATH and os.path.exists(settings.KUBE_CONFIG_PATH):
                config.load_kube_config(config_file=settings.KUBE_CONFIG_PATH)
                logger.info(f"Loaded Kubernetes config from: {settings.KUBE_CONFIG_PATH}")
            # Fallback to default kubeconfig location
            else:
                config.load_kube_config()
                logger.info("Loaded default Kubernetes config (kubeconfig).")

            self.core_api = client.CoreV1Api()
            self.apps_api = client.AppsV1Api()
            self.cluster_url = client.Configuration.get_default_copy().host or ""
            logger.info(f"Kubernetes API clients initialized for cluster {self.cluster_url}.")

        except config.ConfigException as e:
            logger.warning(f"Could not load Kubernetes config (normal if not in-cluster or no kubeconfig): {e}")
            self.core_api = None
            self.apps_api = None
        except Exception as e:
            logger.error(f"Unexpected error configuring Kubernetes client: {e}", exc_info=True)
            self.core_api = None
            self.apps_api = None

    @staticmethod
    def _normalize_cluster_url(url: Optional[str]) -> str:
        if not url:
            return ""
        return url if url.endswith("/") else url + "/"

    def is_available(self) -> bool:
        """Check if K8s clients are initialized."""
        return self.core_api is not None and self.apps_api is not None

    # --- Lookups used by the resource resolver ---

    def stateful_set_exists(self, name: str, namespace: str) -> bool:
        if not self.is_available():
            return False
        try:
            self.apps_api.read_namespaced_stateful_set(name=name, namespace=namespace)
            return True
        except ApiException as e:
            logger.debug(f"No stateful set '{name}' in namespace '{namespace}': {e.status} - {e.reason}")
            return False
        except Exception as e:
            logger.warning(f"Unexpected error looking up stateful set '{name}': {e}")
            return False

    def deployment_exists(self, name: str, namespace: str) -> bool:
        if not self.is_available():
            return False
        try:
            self.apps_api.read_namespaced_deployment(name=name, namespace=namespace)
            return True
        except ApiException as e:
            logger.debug(f"No deployment '{name}' in namespace '{namespace}': {e.status} - {e.reason}")
            return False
        except Exception as e:
            logger.warning(f"Unexpected error looking up deployment '{name}': {e}")
            return False

    # --- Remediation ---

    def remove(self, resource_type: ResourceType, name: str, namespace: str, hard: bool) -> bool:
        """
        Removes the workload owning a pod, either by deleting it (hard) or by
        scaling it to zero replicas. Returns False if the cluster call failed.
        Not retried; reissuing on a later event is safe.
        """
        if not self.is_available():
            logger.error("K8s client not available. Cannot remediate.")
            return False
        if resource_type == ResourceType.UNRECOGNIZED or not name:
            logger.warning(f"Unable to remediate resource '{name}' of type {resource_type.value} (hard={hard})")
            return False
        if hard:
            return self._delete(resource_type, name, namespace)
        return self._scale_to_zero(resource_type, name, namespace)

    def _delete(self, resource_type: ResourceType, name: str, namespace: str) -> bool:
        kind = "stateful set" if resource_type == ResourceType.STATEFUL_SET else "deployment"
        try:
            logger.info(f"Deleting {kind}: {name} (namespace '{namespace}')")
            if resource_type == ResourceType.STATEFUL_SET:
                self.apps_api.delete_namespaced_stateful_set(name=name, namespace=namespace)
            else:
                self.apps_api.delete_namespaced_deployment(name=name, namespace=namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                logger.warning(f"{kind.capitalize()} '{name}' not found in namespace '{namespace}'. Assuming already deleted.")
                return True
            logger.warning(f"Cannot delete {kind} '{name}': {e.status} - {e.reason}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error deleting {kind} '{name}': {e}", exc_info=True)
            return False

    def _scale_to_zero(self, resource_type: ResourceType, name: str, namespace: str) -> bool:
        kind = "stateful set" if resource_type == ResourceType.STATEFUL_SET else "deployment"
        logger.info(f"Scaling {kind} to zero pods: {name} (namespace '{namespace}')")
        if resource_type == ResourceType.STATEFUL_SET:
            read, replace = self.apps_api.read_namespaced_stateful_set, self.apps_api.replace_namespaced_stateful_set
        else:
            read, replace = self.apps_api.read_namespaced_deployment, self.apps_api.replace_namespaced_deployment
        try:
            resource = read(name=name, namespace=namespace)
        except ApiException as e:
            logger.warning(f"Cannot find {kind} '{name}': {e.status} - {e.reason}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error reading {kind} '{name}': {e}", exc_info=True)
            return False
        resource.spec.replicas = 0
        try:
            replace(name=name, namespace=namespace, body=resource)
            return True
        except ApiException as e:
            logger.warning(f"Cannot update {kind} '{name}': {e.status} - {e.reason}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error updating {kind} '{name}': {e}", exc_info=True)
            return False

    # --- Cluster-wide search ---

    def list_all_pods(self) -> List[client.V1Pod]:
        """
        Lists pods namespace by namespace. Raises ClusterQueryError on any API failure.
        WARNING: Can be slow on large clusters.
        """
        if not self.is_available():
            raise ClusterQueryError("K8s client not available")
        pods: List[client.V1Pod] = []
        try:
            namespaces = self.core_api.list_namespace(timeout_seconds=30)
            for ns in namespaces.items:
                pod_list = self.core_api.list_namespaced_pod(ns.metadata.name, timeout_seconds=30)
                pods.extend(pod_list.items)
        except ApiException as e:
            logger.error(f"Kubernetes API error listing pods: {e.status} - {e.reason}")
            raise ClusterQueryError(f"Kubernetes API error listing pods: {e.status} - {e.reason}") from e
        except Exception as e:
            logger.error(f"Unexpected error listing pods: {e}", exc_info=True)
            raise ClusterQueryError(f"Unexpected error listing pods: {e}") from e
        logger.debug(f"Listed {len(pods)} pods across {len(namespaces.items)} namespaces.")
        return pods
