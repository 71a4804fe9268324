"""
Shared fixtures: an in-memory cluster behind MagicMock Kubernetes APIs and a
scan service / chat webhook behind httpx.MockTransport.
"""
import json
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import httpx
import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from kubexray.models.policy import Action, Policy, PolicyTable
from kubexray.services.kubernetes_service import KubernetesService
from kubexray.services.notification_service import NotificationService
from kubexray.services.policy_service import PolicyService
from kubexray.services.resource_resolver import ResourceResolver
from kubexray.services.scan_client import ScanClient

CLUSTER_URL = "https://cluster.example:6443/"
SCAN_URL = "http://xray.example"
CHAT_URL = "http://chat.example/hook"


def make_pod(name: str, namespace: str = "default", containers: Optional[List[Tuple[str, str]]] = None,
             uid: Optional[str] = None) -> client.V1Pod:
    """containers is a list of (image, imageID) pairs."""
    statuses = [
        client.V1ContainerStatus(name=f"c{i}", image=image, image_id=image_id, ready=True, restart_count=0)
        for i, (image, image_id) in enumerate(containers or [])
    ]
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, uid=uid or f"uid-{namespace}-{name}",
                                     resource_version="1"),
        status=client.V1PodStatus(phase="Running", container_statuses=statuses),
    )


def _selector():
    return client.V1LabelSelector(match_labels={"app": "test"})


def make_deployment(name: str, namespace: str = "default", replicas: int = 3) -> client.V1Deployment:
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1DeploymentSpec(replicas=replicas, selector=_selector(), template=client.V1PodTemplateSpec()),
    )


def make_stateful_set(name: str, namespace: str = "default", replicas: int = 2) -> client.V1StatefulSet:
    return client.V1StatefulSet(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1StatefulSetSpec(replicas=replicas, selector=_selector(), service_name=name,
                                      template=client.V1PodTemplateSpec()),
    )


def not_found():
    return ApiException(status=404, reason="Not Found")


class FakeCluster:
    """Deployments, stateful sets and pods keyed by (namespace, name)."""

    def __init__(self):
        self.deployments: Dict[Tuple[str, str], client.V1Deployment] = {}
        self.stateful_sets: Dict[Tuple[str, str], client.V1StatefulSet] = {}
        self.pods: List[client.V1Pod] = []
        self.namespaces: List[str] = ["default"]
        self.apps_api = MagicMock(spec=client.AppsV1Api)
        self.core_api = MagicMock(spec=client.CoreV1Api)
        self.apps_api.read_namespaced_deployment.side_effect = self._reader(self.deployments)
        self.apps_api.read_namespaced_stateful_set.side_effect = self._reader(self.stateful_sets)
        self.apps_api.replace_namespaced_deployment.side_effect = self._replacer(self.deployments)
        self.apps_api.replace_namespaced_stateful_set.side_effect = self._replacer(self.stateful_sets)
        self.apps_api.delete_namespaced_deployment.side_effect = self._deleter(self.deployments)
        self.apps_api.delete_namespaced_stateful_set.side_effect = self._deleter(self.stateful_sets)
        self.core_api.list_namespace.side_effect = self._list_namespaces
        self.core_api.list_namespaced_pod.side_effect = self._list_pods

    @staticmethod
    def _reader(store):
        def read(name, namespace, **kwargs):
            if (namespace, name) not in store:
                raise not_found()
            return store[(namespace, name)]
        return read

    @staticmethod
    def _replacer(store):
        def replace(name, namespace, body, **kwargs):
            store[(namespace, name)] = body
            return body
        return replace

    @staticmethod
    def _deleter(store):
        def delete(name, namespace, **kwargs):
            if store.pop((namespace, name), None) is None:
                raise not_found()
        return delete

    def _list_namespaces(self, **kwargs):
        return client.V1NamespaceList(items=[
            client.V1Namespace(metadata=client.V1ObjectMeta(name=ns)) for ns in self.namespaces
        ])

    def _list_pods(self, namespace, **kwargs):
        return client.V1PodList(items=[p for p in self.pods if p.metadata.namespace == namespace])

    def add_deployment(self, name, namespace="default", replicas=3):
        self.deployments[(namespace, name)] = make_deployment(name, namespace, replicas)
        self._add_namespace(namespace)

    def add_stateful_set(self, name, namespace="default", replicas=2):
        self.stateful_sets[(namespace, name)] = make_stateful_set(name, namespace, replicas)
        self._add_namespace(namespace)

    def add_pod(self, pod: client.V1Pod):
        self.pods.append(pod)
        self._add_namespace(pod.metadata.namespace)

    def _add_namespace(self, namespace):
        if namespace not in self.namespaces:
            self.namespaces.append(namespace)


class FakeScanService:
    """
    Serves both scan protocols plus the metadata callback and the chat webhook.

    primary: checksum -> list of violation (type, severity) lists, one per component
    summary: checksum -> list of issue (issue_type, severity) lists, one per artifact
    Checksums absent from `primary` answer 404 on the component API.
    """

    def __init__(self):
        self.primary: Dict[str, List[List[Tuple[str, str]]]] = {}
        self.summary: Dict[str, List[List[Tuple[str, str]]]] = {}
        self.requests: List[httpx.Request] = []
        self.metadata_status = 200
        self.chat_status = 200
        self.component_status: Optional[int] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/api/v1/componentIdsByChecksum/"):
            if self.component_status is not None:
                return httpx.Response(self.component_status)
            checksum = path.rsplit("/", 1)[1]
            if checksum not in self.primary:
                return httpx.Response(404)
            ids = [{"package_id": f"docker://{checksum}-{i}", "version": "1"}
                   for i in range(len(self.primary[checksum]))]
            return httpx.Response(200, json={"sha256": checksum, "ids": ids})
        if path == "/ui/userIssues/details":
            body = json.loads(request.content)
            checksum, index = body["package_id"][len("docker://"):].rsplit("-", 1)
            items = [{"type": t, "severity": s} for t, s in self.primary[checksum][int(index)]]
            return httpx.Response(200, json={"total_count": len(items), "data": items})
        if path == "/api/v1/summary/artifact":
            checksum = json.loads(request.content)["checksums"][0]
            artifacts = [{"issues": [{"issue_type": t, "severity": s} for t, s in issues]}
                         for issues in self.summary.get(checksum, [])]
            return httpx.Response(200, json={"artifacts": artifacts})
        if path == "/api/v1/kube/metadata":
            return httpx.Response(self.metadata_status)
        if str(request.url) == CHAT_URL:
            return httpx.Response(self.chat_status)
        return httpx.Response(500)

    def calls(self, path_prefix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(path_prefix)]

    def metadata_bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.calls("/api/v1/kube/metadata")]

    def chat_messages(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests if str(r.url) == CHAT_URL]


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def k8s_service(cluster):
    return KubernetesService(core_api=cluster.core_api, apps_api=cluster.apps_api, cluster_url=CLUSTER_URL)


@pytest.fixture
def resolver(k8s_service):
    return ResourceResolver(k8s_service)


@pytest.fixture
def scan_service():
    return FakeScanService()


@pytest.fixture
def scan_client(scan_service):
    scan = ScanClient(SCAN_URL, "admin", "password", transport=httpx.MockTransport(scan_service.handler))
    yield scan
    scan.close()


@pytest.fixture
def notifier(scan_client, scan_service):
    service = NotificationService(scan_client, CHAT_URL, transport=httpx.MockTransport(scan_service.handler))
    yield service
    service.close()


def make_policy_service(unscanned=Action.IGNORE, security=Action.IGNORE, license=Action.IGNORE,
                        unscanned_whitelist=(), security_whitelist=(), license_whitelist=()) -> PolicyService:
    """Builds a policy service applying the same action to deployments and stateful sets."""
    def policy(action, whitelist):
        return Policy(deployments=action, stateful_sets=action, whitelist=frozenset(whitelist))
    return PolicyService(PolicyTable(
        unscanned=policy(unscanned, unscanned_whitelist),
        security=policy(security, security_whitelist),
        license=policy(license, license_whitelist),
        configured=True,
    ))
