"""Validations run against the cluster before an upgrade is started."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterator

import semver
import yaml

from storage_upgrade.cluster import KubeClient, get_pvc_from_uuid, get_source_version
from storage_upgrade.constants import (
    SINGLE_REPLICA_VOLUME,
    UPGRADE_TO_DEVELOP_BRANCH,
    get_image_version_tag,
)
from storage_upgrade.errors import ErrorKind, UpgradeError
from storage_upgrade.user_prompt import (
    CORDONED_NODE_WARNING,
    REBUILD_WARNING,
    SINGLE_REPLICA_VOLUME_WARNING,
    UPGRADE_PATH_NOT_VALID,
    UPGRADE_TO_UNSUPPORTED_VERSION,
    UPGRADE_WARNING,
    error,
    info,
)

Model = dict[str, Any]

# Number of volumes fetched per REST request.
_MAX_ENTRIES = 200


class RestClient(ABC):
    """Access to the storage control plane's REST API.

    Objects are plain dictionaries in the API's JSON form. Implementations
    raise any exception on failure; callers wrap it into an
    :class:`UpgradeError`.
    """

    @abstractmethod
    def get_nodes(self) -> list[Model]:
        """Return every storage node."""

    @abstractmethod
    def get_volumes(self, max_entries: int, starting_token: int) -> Model:
        """Return one page of volumes.

        The page holds ``entries`` and ``next_token``; ``next_token`` is
        ``None`` on the last page.
        """


@dataclass(frozen=True)
class UnsupportedVersions:
    """Source versions that cannot be upgraded from."""

    versions: tuple[semver.Version, ...] = ()

    def __contains__(self, version: object) -> bool:
        if isinstance(version, str):
            try:
                version = semver.Version.parse(version)
            except ValueError:
                return False
        return any(version == known for known in self.versions)

    def __iter__(self) -> Iterator[semver.Version]:
        return iter(self.versions)


def parse_unsupported_versions(data: str | bytes) -> UnsupportedVersions:
    """Parse a YAML document holding an ``unsupported_versions`` list."""
    try:
        document = yaml.safe_load(data)
        if not isinstance(document, dict) or "unsupported_versions" not in document:
            raise ValueError("missing field `unsupported_versions`")
        entries = document["unsupported_versions"]
        if not isinstance(entries, list):
            raise ValueError("`unsupported_versions` must be a sequence")
        versions = tuple(semver.Version.parse(str(entry)) for entry in entries)
    except (yaml.YAMLError, ValueError, TypeError) as exc:
        raise UpgradeError(
            ErrorKind.YAML_PARSE_BUFFER_FOR_UNSUPPORTED_VERSION, source=exc
        ) from exc
    return UnsupportedVersions(versions)


def _all_volumes(rest_client: RestClient) -> Iterator[Model]:
    token: int | None = 0
    while token is not None:
        try:
            page = rest_client.get_volumes(_MAX_ENTRIES, token)
        except Exception as exc:
            raise UpgradeError(ErrorKind.LIST_VOLUMES, source=exc) from exc
        token = page.get("next_token")
        yield from page.get("entries") or []


def _is_cordoned(spec: Model) -> bool:
    state = spec.get("cordondrainstate")
    return isinstance(state, dict) and "cordonedstate" in state


def already_cordoned_nodes_validation(rest_client: RestClient) -> None:
    """Fail if any storage node is cordoned, listing those nodes."""
    try:
        nodes = rest_client.get_nodes()
    except Exception as exc:
        raise UpgradeError(ErrorKind.LIST_STORAGE_NODES, source=exc) from exc

    cordoned = []
    for node in nodes:
        node_id = str(node.get("id"))
        spec = node.get("spec")
        if spec is None:
            raise UpgradeError(ErrorKind.NODE_SPEC_NOT_PRESENT, node=node_id)
        if _is_cordoned(spec):
            cordoned.append(node_id)

    if cordoned:
        error(CORDONED_NODE_WARNING, "\n".join(cordoned))
        raise UpgradeError(ErrorKind.NODES_IN_CORDONED_STATE)


def single_volume_replica_validation(rest_client: RestClient, kube_client: KubeClient) -> None:
    """Fail if any volume has a single replica, listing the affected claims."""
    uuids = {
        str(volume["spec"]["uuid"])
        for volume in _all_volumes(rest_client)
        if volume["spec"].get("num_replicas") == SINGLE_REPLICA_VOLUME
    }
    if uuids:
        claims = get_pvc_from_uuid(kube_client, uuids)
        error(SINGLE_REPLICA_VOLUME_WARNING, "\n".join(claims))
        raise UpgradeError(ErrorKind.SINGLE_REPLICA_VOLUME)


def is_rebuild_in_progress(rest_client: RestClient) -> bool:
    """Return whether any volume target has a child that is rebuilding."""
    for volume in _all_volumes(rest_client):
        target = (volume.get("state") or {}).get("target")
        if target is None:
            continue
        if any(child.get("rebuild_progress") is not None for child in target.get("children") or []):
            return True
    return False


def rebuild_in_progress_validation(rest_client: RestClient) -> None:
    """Fail if a replica rebuild is in progress."""
    if is_rebuild_in_progress(rest_client):
        error(REBUILD_WARNING, "")
        raise UpgradeError(ErrorKind.VOLUME_REBUILD_IN_PROGRESS)


def upgrade_path_validation(
    kube_client: KubeClient, namespace: str, unsupported_versions_yaml: str | bytes
) -> None:
    """Fail if the installed version cannot be upgraded from, or the target is a dev build."""
    unsupported = parse_unsupported_versions(unsupported_versions_yaml)
    source_version = get_source_version(kube_client, namespace)
    try:
        source = semver.Version.parse(source_version)
    except ValueError as exc:
        raise UpgradeError(
            ErrorKind.SEMVER_PARSE, version_string=source_version, source=exc
        ) from exc

    if source in unsupported:
        listing = "".join(f"{version}\n" for version in unsupported)
        error(UPGRADE_PATH_NOT_VALID, listing)
        raise UpgradeError(ErrorKind.NOT_A_VALID_SOURCE_FOR_UPGRADE)

    if UPGRADE_TO_DEVELOP_BRANCH in get_image_version_tag():
        error("", UPGRADE_TO_UNSUPPORTED_VERSION)
        raise UpgradeError(ErrorKind.INVALID_UPGRADE_PATH)


def preflight_check(
    kube_client: KubeClient,
    rest_client: RestClient,
    namespace: str,
    unsupported_versions_yaml: str | bytes,
    skip_single_replica_volume_validation: bool = False,
    skip_replica_rebuild: bool = False,
    skip_cordoned_node_validation: bool = False,
    skip_upgrade_path_validation: bool = False,
) -> None:
    """Run every validation that is not skipped, stopping at the first failure."""
    info(UPGRADE_WARNING, "")
    if not skip_upgrade_path_validation:
        upgrade_path_validation(kube_client, namespace, unsupported_versions_yaml)
    if not skip_replica_rebuild:
        rebuild_in_progress_validation(rest_client)
    if not skip_cordoned_node_validation:
        already_cordoned_nodes_validation(rest_client)
    if not skip_single_replica_volume_validation:
        single_volume_replica_validation(rest_client, kube_client)