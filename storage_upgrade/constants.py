"""Names, labels and image coordinates used by the upgrade resources."""

from __future__ import annotations

# Version tag of this build. ``None`` means an untagged development build.
_VERSION_TAG: str | None = None

HELM_RELEASE_NAME_LABEL = "openebs.io/release"

DEFAULT_IMAGE_REGISTRY = "docker.io"

# The upgrade job uses UPGRADE_JOB_IMAGE_NAME with this tag when no release tag is known.
UPGRADE_JOB_IMAGE_TAG = "develop"

UPGRADE_JOB_IMAGE_REPO = "openebs"

UPGRADE_JOB_IMAGE_NAME = "mayastor-upgrade-job"

UPGRADE_JOB_NAME_SUFFIX = "upgrade"

UPGRADE_JOB_SERVICEACCOUNT_NAME_SUFFIX = "upgrade-service-account"

UPGRADE_JOB_CLUSTERROLE_NAME_SUFFIX = "upgrade-role"

UPGRADE_JOB_CLUSTERROLEBINDING_NAME_SUFFIX = "upgrade-role-binding"

UPGRADE_BINARY_NAME = "upgrade-job"

UPGRADE_JOB_CONTAINER_NAME = "mayastor-upgrade-job"

API_REST_LABEL_SELECTOR = "app=api-rest"

DEFAULT_RELEASE_NAME = "mayastor"

# Volumes with exactly this many replicas are considered single-replica volumes.
SINGLE_REPLICA_VOLUME = 1

IO_ENGINE_POD_LABEL = "app=io-engine"

AGENT_CORE_POD_LABEL = "app=agent-core"

API_REST_POD_LABEL = "app=api-rest"

UPGRADE_EVENT_REASON = "MayastorUpgrade"

HELM_RELEASE_VERSION_LABEL = "openebs.io/version"

UPGRADE_TO_DEVELOP_BRANCH = "develop"


def upgrade_labels() -> dict[str, str]:
    """Return a fresh copy of the labels placed on every upgrade object."""
    return {
        "app": UPGRADE_JOB_NAME_SUFFIX,
        "openebs.io/logging": "true",
    }


def release_version() -> str | None:
    """Return the release tag of this build, or ``None`` for an untagged build."""
    return _VERSION_TAG


def get_image_version_tag() -> str:
    """Return the image tag to use for the upgrade job's pod."""
    version = release_version()
    return version if version is not None else UPGRADE_JOB_IMAGE_TAG


def upgrade_obj_suffix() -> str:
    """Return the image tag in a form usable as a Kubernetes name suffix."""
    return get_image_version_tag().replace(".", "-")


def upgrade_name_concat(release_name: str, component_name: str) -> str:
    """Build an upgrade object name from the release and component names."""
    return f"{release_name}-{component_name}-{upgrade_obj_suffix()}"


def upgrade_image_concat(
    image_registry: str, image_repo: str, image_name: str, image_tag: str
) -> str:
    """Build a full container image reference."""
    return f"{image_registry}/{image_repo}/{image_name}:{image_tag}"


def upgrade_event_selector(release_name: str, component_name: str) -> str:
    """Build the field selector matching events of the upgrade job."""
    name_value = upgrade_name_concat(release_name, component_name)
    return f"involvedObject.kind=Job,involvedObject.name={name_value}"