import pytest
from kubernetes.client.exceptions import ApiException

from conftest import make_policy_service, make_pod
from kubexray.core.exceptions import ClusterQueryError
from kubexray.models.policy import Action
from kubexray.models.webhook import WebhookReport, extract_search_terms
from kubexray.services.webhook_receiver import WebhookReceiver

SHA_A = "a" * 64
SHA_B = "b" * 64
SHA_C = "c" * 64


def report(*issues):
    return WebhookReport.model_validate({"issues": list(issues)})


def issue(severity, issue_type, *checksums, pkg_type="Docker"):
    return {
        "severity": severity,
        "type": issue_type,
        "impacted_artifacts": [{"pkg_type": pkg_type, "sha256": sha, "name": "x"} for sha in checksums],
    }


@pytest.fixture
def build_receiver(k8s_service, resolver, notifier):
    def build(policy_service, token="secret"):
        return WebhookReceiver(k8s_service, resolver, policy_service, notifier, token=token)
    return build


def test_extract_search_terms_filters():
    terms = extract_search_terms(report(
        issue("High", "security", SHA_A),
        issue("Low", "security", SHA_B),
        issue("Critical", "", SHA_B),
        issue("Major", "license", SHA_C, ""),
        issue("Critical", "security", SHA_B, pkg_type="npm"),
        {"severity": "Critical", "type": "security"},
    ))
    assert [(t.severity, t.issue_type, t.checksum) for t in terms] == [
        ("High", "security", SHA_A),
        ("Major", "license", SHA_C),
    ]


def test_authorization(build_receiver):
    receiver = build_receiver(make_policy_service())
    assert receiver.is_authorized("secret")
    assert not receiver.is_authorized("wrong")
    assert not receiver.is_authorized(None)
    assert not build_receiver(make_policy_service(), token=None).is_authorized("")


def test_two_items_for_one_pod_make_one_notification(cluster, scan_service, build_receiver):
    cluster.add_deployment("web")
    cluster.add_pod(make_pod("web-5f6d7-abcde", containers=[
        ("registry/web:1", f"docker-pullable://registry/web@sha256:{SHA_A}"),
        ("registry/proxy:2", f"docker-pullable://registry/proxy@sha256:{SHA_B}"),
    ], uid="pod-1"))
    receiver = build_receiver(make_policy_service(security=Action.SCALEDOWN, license=Action.DELETE))

    result = receiver.handle(report(issue("High", "security", SHA_A), issue("Major", "license", SHA_B)))

    assert result.matched == 2
    (payload,) = result.notifications
    assert payload.action == Action.DELETE
    assert [(c.component_name, c.component_sha) for c in payload.components] == [
        ("registry/web:1", SHA_A), ("registry/proxy:2", SHA_B),
    ]
    assert ("default", "web") not in cluster.deployments
    assert cluster.apps_api.delete_namespaced_deployment.call_count == 1
    assert len(scan_service.chat_messages()) == 1
    (callback,) = scan_service.metadata_bodies()
    assert callback["action"] == "delete"
    assert len(callback["components"]) == 2


def test_repeated_issues_on_one_checksum_list_the_component_once(cluster, scan_service, build_receiver):
    cluster.add_deployment("web")
    cluster.add_pod(make_pod("web-5f6d7-abcde", containers=[("web:1", f"sha256:{SHA_A}")], uid="pod-1"))
    receiver = build_receiver(make_policy_service(security=Action.SCALEDOWN))

    result = receiver.handle(report(issue("High", "security", SHA_A), issue("Critical", "security", SHA_A)))

    assert result.matched == 2
    (payload,) = result.notifications
    assert [(c.component_name, c.component_sha) for c in payload.components] == [("web:1", SHA_A)]
    (callback,) = scan_service.metadata_bodies()
    assert len(callback["components"]) == 1
    assert scan_service.chat_messages()[0]["text"].count("web:1") == 1


def test_pods_are_grouped_separately(cluster, scan_service, build_receiver):
    cluster.add_deployment("web")
    cluster.add_stateful_set("db", namespace="data")
    cluster.add_pod(make_pod("web-5f6d7-abcde", containers=[("web:1", f"sha256:{SHA_A}")], uid="pod-1"))
    cluster.add_pod(make_pod("db-0", namespace="data", containers=[("web:1", f"sha256:{SHA_A}")], uid="pod-2"))
    receiver = build_receiver(make_policy_service(security=Action.SCALEDOWN))

    result = receiver.handle(report(issue("Critical", "security", SHA_A)))

    assert sorted(p.pod_name for p in result.notifications) == ["db-0", "web-5f6d7-abcde"]
    assert all(p.action == Action.SCALEDOWN for p in result.notifications)
    assert cluster.deployments[("default", "web")].spec.replicas == 0
    assert cluster.stateful_sets[("data", "db")].spec.replicas == 0
    assert len(scan_service.metadata_bodies()) == 2


def test_ignore_policy_sends_nothing(cluster, scan_service, build_receiver):
    cluster.add_deployment("web")
    cluster.add_pod(make_pod("web-5f6d7-abcde", containers=[("web:1", f"sha256:{SHA_A}")]))
    receiver = build_receiver(make_policy_service(unscanned=Action.DELETE, license=Action.DELETE))

    result = receiver.handle(report(issue("High", "security", SHA_A)))

    assert result.matched == 1
    assert result.notifications == []
    assert scan_service.requests == []
    assert ("default", "web") in cluster.deployments


def test_whitelisted_items_are_dropped(cluster, scan_service, build_receiver):
    cluster.add_deployment("web", namespace="monitoring")
    cluster.add_pod(make_pod("web-5f6d7-abcde", namespace="monitoring",
                             containers=[("web:1", f"sha256:{SHA_A}"), ("lic:1", f"sha256:{SHA_B}")]))
    receiver = build_receiver(make_policy_service(security=Action.DELETE, license=Action.SCALEDOWN,
                                                  security_whitelist=["monitoring"]))

    result = receiver.handle(report(issue("High", "security", SHA_A), issue("High", "license", SHA_B)))

    (payload,) = result.notifications
    assert payload.action == Action.SCALEDOWN
    assert [c.component_sha for c in payload.components] == [SHA_B]
    assert cluster.deployments[("monitoring", "web")].spec.replicas == 0


def test_unscanned_whitelist_does_not_apply(cluster, build_receiver):
    cluster.add_deployment("web", namespace="tools")
    cluster.add_pod(make_pod("web-5f6d7-abcde", namespace="tools", containers=[("web:1", f"sha256:{SHA_A}")]))
    receiver = build_receiver(make_policy_service(security=Action.DELETE, unscanned_whitelist=["tools"]))

    assert len(receiver.handle(report(issue("High", "security", SHA_A))).notifications) == 1


def test_no_search_terms_skips_cluster_query(cluster, build_receiver):
    receiver = build_receiver(make_policy_service(security=Action.DELETE))
    result = receiver.handle(report(issue("Low", "security", SHA_A)))
    assert result.matched == 0
    cluster.core_api.list_namespace.assert_not_called()


def test_cluster_failure_raises(cluster, build_receiver):
    cluster.core_api.list_namespaced_pod.side_effect = ApiException(status=403, reason="Forbidden")
    receiver = build_receiver(make_policy_service(security=Action.DELETE))
    with pytest.raises(ClusterQueryError):
        receiver.handle(report(issue("High", "security", SHA_A)))


def test_scan_service_callback_failure_is_logged(cluster, scan_service, build_receiver):
    cluster.add_deployment("web")
    cluster.add_pod(make_pod("web-5f6d7-abcde", containers=[("web:1", f"sha256:{SHA_A}")]))
    scan_service.metadata_status = 503
    receiver = build_receiver(make_policy_service(security=Action.DELETE))

    result = receiver.handle(report(issue("High", "security", SHA_A)))

    assert len(result.notifications) == 1
    assert ("default", "web") not in cluster.deployments
