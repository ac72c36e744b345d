"""Errors raised by the upgrade tooling, each with its own process exit code."""

from __future__ import annotations

import string
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Every failure the upgrade tooling reports, with exit code and message template."""

    YAML_PARSE_BUFFER_FOR_UNSUPPORTED_VERSION = (
        401,
        "Failed to parse unsupported versions yaml: {source}",
    )
    UPGRADE_EVENT_NOT_PRESENT = (402, "No upgrade event present.")
    NO_DEPLOYMENT_PRESENT = (403, "No deployment present.")
    MESSAGE_IN_EVENT_NOT_PRESENT = (404, "No Message present in event.")
    NODES_IN_CORDONED_STATE = (405, "Nodes are in cordoned state.")
    SINGLE_REPLICA_VOLUME = (406, "Single replica volume present in cluster.")
    VOLUME_REBUILD_IN_PROGRESS = (407, "Cluster is rebuilding replica of some volumes.")
    K8S_CLIENT = (408, "K8Client Error: {source}")
    EVENT_DESERIALIZATION = (409, "Error in deserializing upgrade event {event} Error {source}")
    SERVICE_ACCOUNT_CREATE = (410, "Service account: {name} creation failed Error: {source}")
    SERVICE_ACCOUNT_DELETE = (411, "Service account: {name} deletion failed Error: {source}")
    CLUSTER_ROLE_CREATE = (412, "Cluster role: {name} creation failed Error: {source}")
    CLUSTER_ROLE_DELETE = (413, "Cluster role: {name} deletion Error: {source}")
    CLUSTER_ROLE_BINDING_DELETE = (
        414,
        "Cluster role binding: {name} deletion failed Error: {source}",
    )
    CLUSTER_ROLE_BINDING_CREATE = (
        415,
        "Cluster role binding: {name} creation failed Error: {source}",
    )
    UPGRADE_JOB_CREATE = (416, "Upgrade Job: {name} creation failed Error: {source}")
    UPGRADE_JOB_DELETE = (417, "Upgrade Job: {name} deletion failed Error: {source}")
    REFERENCE_DEPLOYMENT_INVALID_IMAGE = (418, "Failed to find a valid image in Deployment.")
    REFERENCE_DEPLOYMENT_NO_IMAGE = (419, "Failed to find an image in Deployment.")
    REFERENCE_DEPLOYMENT_NO_SPEC = (420, "No .spec found for the reference Deployment")
    REFERENCE_DEPLOYMENT_NO_POD_TEMPLATE_SPEC = (
        421,
        "No .spec.template.spec found for the reference Deployment",
    )
    REFERENCE_DEPLOYMENT_NO_CONTAINERS = (
        422,
        "Failed to find the first container of the Deployment.",
    )
    NODE_SPEC_NOT_PRESENT = (423, "Node spec not present, node: {node}")
    POD_NAME_NOT_PRESENT = (424, "Pod name not present.")
    UPGRADE_JOB_STATUS_NOT_PRESENT = (425, "Upgrade Job: {name} status not present.")
    UPGRADE_JOB_NOT_PRESENT = (426, "Upgrade Job: {name} in namespace {namespace} does not exist.")
    LIST_PODS_WITH_LABEL = (
        427,
        "Failed to list Pods with label {label} in namespace {namespace}: {source}",
    )
    LIST_DEPLOYMENTS_WITH_LABEL = (
        428,
        "Failed to list Deployments with label {label} in namespace {namespace}: {source}",
    )
    LIST_EVENTS_WITH_FIELD_SELECTOR = (
        429,
        "Failed to list Events with field selector {field}: {source}",
    )
    LIST_PVC = (430, "Failed to list pvc : {source}")
    LIST_VOLUMES = (431, "Failed to list volumes : {source}")
    GET_UPGRADE_JOB = (432, "Failed to get Upgrade Job {name}: {source}")
    GET_SERVICE_ACCOUNT = (433, "Failed to get service account {name}: {source}")
    GET_CLUSTER_ROLE = (434, "Failed to get cluster role {name}: {source}")
    GET_CLUSTER_ROLE_BINDING = (435, "Failed to get cluster role binding {name}: {source}")
    K8S_CLIENT_GENERATION = (436, "Failed to generate kubernetes client: {source}")
    REST_CLIENT_CONFIGURATION = (437, "Failed to configure REST API client : {source!r}")
    LIST_STORAGE_NODES = (438, "Failed to list Nodes: {source}")
    OPENAPI_CLIENT_CONFIGURATION = (439, "openapi configuration Error: {source}")
    OPENING_FILE = (440, "Failed to open file {filepath}: {source}")
    YAML_PARSE_FROM_FILE = (441, "Failed to parse YAML at {filepath}: {source}")
    SEMVER_PARSE = (442, "Failed to parse {version_string} as a valid semver: {source}")
    SOURCE_TARGET_VERSION_SAME = (443, "Source and target version are same for upgrade.")
    NOT_A_VALID_SOURCE_FOR_UPGRADE = (444, "Not a valid source version for upgrade.")
    INVALID_UPGRADE_PATH = (445, "The upgrade path is invalid")

    def __init__(self, code: int, template: str) -> None:
        self.code = code
        self.template = template

    @property
    def fields(self) -> frozenset[str]:
        """Names of the values the message template needs."""
        return frozenset(
            name for _, name, _, _ in string.Formatter().parse(self.template) if name
        )


class UpgradeError(Exception):
    """An upgrade failure of a given kind, carrying the values its message refers to."""

    def __init__(self, kind: ErrorKind, **kwargs: Any) -> None:
        missing = kind.fields - kwargs.keys()
        if missing:
            raise TypeError(
                f"{kind.name} requires the field(s): {', '.join(sorted(missing))}"
            )
        self.kind = kind
        self.fields = dict(kwargs)
        source = kwargs.get("source")
        if isinstance(source, BaseException):
            self.__cause__ = source
        super().__init__(kind.template.format(**kwargs))

    def exit_code(self) -> int:
        """Return the process exit code for this error."""
        return self.kind.code