"""Kubernetes lookups that the upgrade commands and validations rely on.

Objects are exchanged with the cluster as plain dictionaries in the
Kubernetes JSON form (camelCase keys).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable

from storage_upgrade.constants import (
    API_REST_LABEL_SELECTOR,
    DEFAULT_IMAGE_REGISTRY,
    DEFAULT_RELEASE_NAME,
    HELM_RELEASE_NAME_LABEL,
    HELM_RELEASE_VERSION_LABEL,
)
from storage_upgrade.errors import ErrorKind, UpgradeError

Manifest = dict[str, Any]


class KubeClient(ABC):
    """Access to the Kubernetes API.

    ``kind`` is the object kind (``"Pod"``, ``"Deployment"``, ``"Job"``, ...).
    A ``namespace`` of ``None`` addresses cluster-scoped objects, or every
    namespace when listing. Implementations raise any exception on failure;
    callers wrap it into an :class:`UpgradeError`.
    """

    @abstractmethod
    def list(
        self,
        kind: str,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> list[Manifest]:
        """Return the objects of ``kind`` matching the selectors."""

    @abstractmethod
    def get(self, kind: str, name: str, namespace: str | None = None) -> Manifest | None:
        """Return the named object, or ``None`` when it does not exist."""

    @abstractmethod
    def create(self, kind: str, body: Manifest, namespace: str | None = None) -> Manifest:
        """Create an object and return it as stored by the cluster."""

    @abstractmethod
    def delete(self, kind: str, name: str, namespace: str | None = None) -> None:
        """Delete the named object."""


@dataclass(frozen=True)
class ImageProperties:
    """Image settings taken from the reference REST deployment."""

    registry: str
    pull_secrets: tuple[Manifest, ...] | None = None
    pull_policy: str | None = None


def image_properties(deployment: Manifest) -> ImageProperties:
    """Extract registry, pull secrets and pull policy from a deployment's first container."""
    spec = deployment.get("spec")
    if spec is None:
        raise UpgradeError(ErrorKind.REFERENCE_DEPLOYMENT_NO_SPEC)
    pod_spec = (spec.get("template") or {}).get("spec")
    if pod_spec is None:
        raise UpgradeError(ErrorKind.REFERENCE_DEPLOYMENT_NO_POD_TEMPLATE_SPEC)
    containers = pod_spec.get("containers") or []
    if not containers:
        raise UpgradeError(ErrorKind.REFERENCE_DEPLOYMENT_NO_CONTAINERS)
    container = containers[0]
    image = container.get("image")
    if image is None:
        raise UpgradeError(ErrorKind.REFERENCE_DEPLOYMENT_NO_IMAGE)

    sections = image.split("/")
    if len(sections) <= 1:
        raise UpgradeError(ErrorKind.REFERENCE_DEPLOYMENT_INVALID_IMAGE)
    registry = sections[0] if len(sections) == 3 else DEFAULT_IMAGE_REGISTRY

    secrets = pod_spec.get("imagePullSecrets")
    return ImageProperties(
        registry=registry,
        pull_secrets=None if secrets is None else tuple(dict(s) for s in secrets),
        pull_policy=container.get("imagePullPolicy"),
    )


def get_deployment_for_rest(client: KubeClient, namespace: str) -> Manifest:
    """Return the first REST API deployment in ``namespace``."""
    try:
        deployments = client.list(
            "Deployment", namespace, label_selector=API_REST_LABEL_SELECTOR
        )
    except Exception as exc:
        raise UpgradeError(
            ErrorKind.LIST_DEPLOYMENTS_WITH_LABEL,
            label=API_REST_LABEL_SELECTOR,
            namespace=namespace,
            source=exc,
        ) from exc
    if not deployments:
        raise UpgradeError(ErrorKind.NO_DEPLOYMENT_PRESENT)
    return deployments[0]


def _labels(deployment: Manifest) -> dict[str, str] | None:
    return (deployment.get("metadata") or {}).get("labels")


def get_release_name(client: KubeClient, namespace: str) -> str:
    """Return the helm release name, falling back to the default release name."""
    labels = _labels(get_deployment_for_rest(client, namespace)) or {}
    return labels.get(HELM_RELEASE_NAME_LABEL, DEFAULT_RELEASE_NAME)


def get_source_version(client: KubeClient, namespace: str) -> str:
    """Return the installed release version recorded on the REST deployment."""
    labels = _labels(get_deployment_for_rest(client, namespace))
    if labels is None or HELM_RELEASE_VERSION_LABEL not in labels:
        raise UpgradeError(ErrorKind.NO_DEPLOYMENT_PRESENT)
    return str(labels[HELM_RELEASE_VERSION_LABEL])


def get_pvc_from_uuid(client: KubeClient, uuids: Iterable[str]) -> list[str]:
    """Return the names of the claims, in any namespace, whose uid is in ``uuids``."""
    wanted = set(uuids)
    try:
        claims = client.list("PersistentVolumeClaim")
    except Exception as exc:
        raise UpgradeError(ErrorKind.LIST_PVC, source=exc) from exc
    names = []
    for claim in claims:
        meta = claim.get("metadata") or {}
        uid = meta.get("uid")
        name = meta.get("name")
        if uid is not None and uid in wanted and name is not None:
            names.append(name)
    return names


def list_pods(client: KubeClient, label: str, namespace: str) -> list[str]:
    """Return the names of the pods in ``namespace`` carrying ``label``."""
    try:
        pods = client.list("Pod", namespace, label_selector=label)
    except Exception as exc:
        raise UpgradeError(
            ErrorKind.LIST_PODS_WITH_LABEL, label=label, namespace=namespace, source=exc
        ) from exc
    names = []
    for pod in pods:
        name = (pod.get("metadata") or {}).get("name")
        if name is None:
            raise UpgradeError(ErrorKind.POD_NAME_NOT_PRESENT)
        names.append(name)
    return names