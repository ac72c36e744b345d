"""Kubernetes manifests for the resources that run the upgrade job.

Every builder returns a plain dictionary in the Kubernetes JSON form
(camelCase keys). Fields that have no value are left out.
"""

from __future__ import annotations

from typing import Any, Iterable

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

_CRUD = ("create", "list", "delete", "get", "patch")
_CRUD_ESCALATE = ("create", "list", "delete", "get", "patch", "escalate", "bind")

# (api groups, resources, verbs) granted to the upgrade job.
_CLUSTER_ROLE_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]], ...] = (
    (("apiextensions.k8s.io",), ("customresourcedefinitions",), _CRUD),
    (
        ("openebs.io",),
        ("upgradeactions",),
        ("get", "create", "list", "watch", "update", "replace", "patch"),
    ),
    (("openebs.io",), ("upgradeactions/status",), ("update", "patch")),
    (
        ("apps",),
        ("daemonsets", "replicasets", "statefulsets", "deployments"),
        ("create", "delete", "get", "list", "patch"),
    ),
    (("",), ("serviceaccounts",), ("create", "get", "list", "delete", "patch")),
    (
        ("",),
        ("pods",),
        ("create", "get", "list", "delete", "patch", "deletecollection"),
    ),
    (("",), ("nodes",), ("get", "list")),
    (("",), ("namespaces",), ("get",)),
    (("events.k8s.io",), ("events",), ("create",)),
    (
        ("",),
        (
            "secrets",
            "persistentvolumes",
            "persistentvolumeclaims",
            "services",
            "configmaps",
        ),
        (
            "get",
            "list",
            "watch",
            "create",
            "delete",
            "deletecollection",
            "patch",
            "update",
        ),
    ),
    (("rbac.authorization.k8s.io",), ("roles",), _CRUD_ESCALATE),
    (("monitoring.coreos.com",), ("prometheusrules", "podmonitors"), _CRUD),
    (("networking.k8s.io",), ("networkpolicies",), _CRUD),
    (("batch",), ("cronjobs",), _CRUD),
    (("jaegertracing.io",), ("jaegers",), _CRUD),
    (("rbac.authorization.k8s.io",), ("rolebindings",), _CRUD),
    (("rbac.authorization.k8s.io",), ("clusterroles",), _CRUD_ESCALATE),
    (("rbac.authorization.k8s.io",), ("clusterrolebindings",), _CRUD),
    (("storage.k8s.io",), ("storageclasses",), _CRUD),
    (("scheduling.k8s.io",), ("priorityclasses",), _CRUD),
    (("policy",), ("poddisruptionbudgets",), _CRUD),
)


def _metadata(name: str | None = None, namespace: str | None = None) -> dict[str, Any]:
    meta: dict[str, Any] = {"labels": upgrade_labels()}
    if name is not None:
        meta["name"] = name
    if namespace is not None:
        meta["namespace"] = namespace
    return meta


def _policy_rules() -> list[dict[str, list[str]]]:
    return [
        {
            "apiGroups": list(groups),
            "resources": list(resources),
            "verbs": list(verbs),
        }
        for groups, resources, verbs in _CLUSTER_ROLE_RULES
    ]


def upgrade_job_service_account(
    namespace: str | None, service_account_name: str
) -> dict[str, Any]:
    """Return the ServiceAccount the upgrade job runs as."""
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": _metadata(service_account_name, namespace),
    }


def upgrade_job_cluster_role(namespace: str | None, cluster_role_name: str) -> dict[str, Any]:
    """Return the ClusterRole granting the upgrade job its permissions."""
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRole",
        "metadata": _metadata(cluster_role_name, namespace),
        "rules": _policy_rules(),
    }


def upgrade_job_cluster_role_binding(
    namespace: str | None, release_name: str
) -> dict[str, Any]:
    """Return the ClusterRoleBinding tying the upgrade role to its service account."""
    subject: dict[str, Any] = {
        "kind": "ServiceAccount",
        "name": upgrade_name_concat(release_name, UPGRADE_JOB_SERVICEACCOUNT_NAME_SUFFIX),
    }
    if namespace is not None:
        subject["namespace"] = namespace
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRoleBinding",
        "metadata": _metadata(
            upgrade_name_concat(release_name, UPGRADE_JOB_CLUSTERROLEBINDING_NAME_SUFFIX),
            namespace,
        ),
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "ClusterRole",
            "name": upgrade_name_concat(release_name, UPGRADE_JOB_CLUSTERROLE_NAME_SUFFIX),
        },
        "subjects": [subject],
    }


def _job_args(
    namespace: str,
    release_name: str,
    skip_data_plane_restart: bool,
    skip_upgrade_path_validation: bool,
) -> list[str]:
    args = [
        f"--rest-endpoint=http://{release_name}-api-rest:8081",
        f"--namespace={namespace}",
        f"--release-name={release_name}",
    ]
    if skip_data_plane_restart:
        args.append("--skip-data-plane-restart")
    if skip_upgrade_path_validation:
        args.append("--skip-upgrade-path-validation")
    return args


def upgrade_job(
    namespace: str,
    upgrade_image: str,
    release_name: str,
    skip_data_plane_restart: bool = False,
    skip_upgrade_path_validation: bool = False,
    image_pull_secrets: Iterable[dict[str, Any]] | None = None,
    image_pull_policy: str | None = None,
) -> dict[str, Any]:
    """Return the Job that performs the upgrade inside the cluster."""
    container: dict[str, Any] = {
        "args": _job_args(
            namespace, release_name, skip_data_plane_restart, skip_upgrade_path_validation
        ),
        "image": upgrade_image,
        "name": UPGRADE_JOB_CONTAINER_NAME,
        "env": [
            {"name": "RUST_LOG", "value": "info"},
            {
                "name": "POD_NAME",
                "valueFrom": {"fieldRef": {"fieldPath": "metadata.name"}},
            },
        ],
        "livenessProbe": {
            "exec": {"command": ["pgrep", UPGRADE_BINARY_NAME]},
            "initialDelaySeconds": 10,
            "periodSeconds": 60,
        },
    }
    if image_pull_policy is not None:
        container["imagePullPolicy"] = image_pull_policy

    pod_spec: dict[str, Any] = {
        "restartPolicy": "OnFailure",
        "containers": [container],
        "serviceAccountName": upgrade_name_concat(
            release_name, UPGRADE_JOB_SERVICEACCOUNT_NAME_SUFFIX
        ),
    }
    if image_pull_secrets is not None:
        pod_spec["imagePullSecrets"] = [dict(secret) for secret in image_pull_secrets]

    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": _metadata(
            upgrade_name_concat(release_name, UPGRADE_JOB_NAME_SUFFIX), namespace
        ),
        "spec": {
            # Unrecoverable errors are retried by Kubernetes; recoverable ones by the job itself.
            "backoffLimit": 6,
            "template": {
                "metadata": {"labels": upgrade_labels()},
                "spec": pod_spec,
            },
        },
    }