import pytest

from storage_upgrade.constants import (
    UPGRADE_BINARY_NAME,
    UPGRADE_JOB_CLUSTERROLE_NAME_SUFFIX,
    UPGRADE_JOB_CLUSTERROLEBINDING_NAME_SUFFIX,
    UPGRADE_JOB_CONTAINER_NAME,
    UPGRADE_JOB_NAME_SUFFIX,
    UPGRADE_JOB_SERVICEACCOUNT_NAME_SUFFIX,
    upgrade_labels,
    upgrade_name_concat,
)
from storage_upgrade.objects import (
    upgrade_job,
    upgrade_job_cluster_role,
    upgrade_job_cluster_role_binding,
    upgrade_job_service_account,
)


def _container(job):
    return job["spec"]["template"]["spec"]["containers"][0]


def test_service_account_metadata():
    sa = upgrade_job_service_account("storage", "my-sa")
    assert sa["kind"] == "ServiceAccount"
    assert sa["metadata"]["name"] == "my-sa"
    assert sa["metadata"]["namespace"] == "storage"
    assert sa["metadata"]["labels"] == upgrade_labels()


def test_service_account_without_namespace_omits_it():
    sa = upgrade_job_service_account(None, "my-sa")
    assert "namespace" not in sa["metadata"]


def test_cluster_role_rules():
    role = upgrade_job_cluster_role("storage", "my-role")
    assert role["kind"] == "ClusterRole"
    assert role["metadata"]["name"] == "my-role"
    rules = role["rules"]
    assert len(rules) == 21
    assert rules[0] == {
        "apiGroups": ["apiextensions.k8s.io"],
        "resources": ["customresourcedefinitions"],
        "verbs": ["create", "list", "delete", "get", "patch"],
    }
    pods = next(r for r in rules if r["resources"] == ["pods"])
    assert pods["apiGroups"] == [""]
    assert "deletecollection" in pods["verbs"]
    cluster_roles = next(r for r in rules if r["resources"] == ["clusterroles"])
    assert "escalate" in cluster_roles["verbs"] and "bind" in cluster_roles["verbs"]


def test_cluster_role_rules_are_independent_copies():
    first = upgrade_job_cluster_role(None, "a")
    first["rules"][0]["verbs"].append("extra")
    first["metadata"]["labels"]["app"] = "changed"
    second = upgrade_job_cluster_role(None, "a")
    assert "extra" not in second["rules"][0]["verbs"]
    assert second["metadata"]["labels"] == upgrade_labels()


def test_cluster_role_binding_references():
    crb = upgrade_job_cluster_role_binding("storage", "rel")
    assert crb["metadata"]["name"] == upgrade_name_concat(
        "rel", UPGRADE_JOB_CLUSTERROLEBINDING_NAME_SUFFIX
    )
    assert crb["roleRef"] == {
        "apiGroup": "rbac.authorization.k8s.io",
        "kind": "ClusterRole",
        "name": upgrade_name_concat("rel", UPGRADE_JOB_CLUSTERROLE_NAME_SUFFIX),
    }
    assert crb["subjects"] == [
        {
            "kind": "ServiceAccount",
            "name": upgrade_name_concat("rel", UPGRADE_JOB_SERVICEACCOUNT_NAME_SUFFIX),
            "namespace": "storage",
        }
    ]


def test_cluster_role_binding_without_namespace():
    crb = upgrade_job_cluster_role_binding(None, "rel")
    assert "namespace" not in crb["metadata"]
    assert "namespace" not in crb["subjects"][0]


def test_job_basic_fields():
    job = upgrade_job("storage", "docker.io/openebs/img:tag", "rel", False, False, None, None)
    assert job["kind"] == "Job"
    assert job["metadata"]["name"] == upgrade_name_concat("rel", UPGRADE_JOB_NAME_SUFFIX)
    assert job["metadata"]["namespace"] == "storage"
    assert job["spec"]["backoffLimit"] == 6
    pod_spec = job["spec"]["template"]["spec"]
    assert pod_spec["restartPolicy"] == "OnFailure"
    assert pod_spec["serviceAccountName"] == upgrade_name_concat(
        "rel", UPGRADE_JOB_SERVICEACCOUNT_NAME_SUFFIX
    )
    assert "imagePullSecrets" not in pod_spec
    container = _container(job)
    assert container["name"] == UPGRADE_JOB_CONTAINER_NAME
    assert container["image"] == "docker.io/openebs/img:tag"
    assert "imagePullPolicy" not in container
    assert container["args"] == [
        "--rest-endpoint=http://rel-api-rest:8081",
        "--namespace=storage",
        "--release-name=rel",
    ]


def test_job_env_and_probe():
    container = _container(upgrade_job("ns", "img", "rel", False, False, None, None))
    assert container["env"][0] == {"name": "RUST_LOG", "value": "info"}
    assert container["env"][1]["valueFrom"]["fieldRef"]["fieldPath"] == "metadata.name"
    probe = container["livenessProbe"]
    assert probe["exec"]["command"] == ["pgrep", UPGRADE_BINARY_NAME]
    assert probe["initialDelaySeconds"] == 10
    assert probe["periodSeconds"] == 60


@pytest.mark.parametrize(
    "skip_restart, skip_path, extra",
    [
        (True, False, ["--skip-data-plane-restart"]),
        (False, True, ["--skip-upgrade-path-validation"]),
        (True, True, ["--skip-data-plane-restart", "--skip-upgrade-path-validation"]),
    ],
)
def test_job_skip_flags(skip_restart, skip_path, extra):
    container = _container(upgrade_job("ns", "img", "rel", skip_restart, skip_path, None, None))
    assert container["args"][3:] == extra


def test_job_pull_secrets_and_policy():
    secrets = [{"name": "regcred"}]
    job = upgrade_job("ns", "img", "rel", False, False, secrets, "IfNotPresent")
    assert job["spec"]["template"]["spec"]["imagePullSecrets"] == [{"name": "regcred"}]
    assert _container(job)["imagePullPolicy"] == "IfNotPresent"


def test_job_template_labels():
    job = upgrade_job("ns", "img", "rel", False, False, None, None)
    assert job["spec"]["template"]["metadata"]["labels"] == upgrade_labels()
    assert job["metadata"]["labels"] == upgrade_labels()