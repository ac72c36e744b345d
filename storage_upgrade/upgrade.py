"""Creating, inspecting and removing the resources that run the upgrade job."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from storage_upgrade.cluster import (
    KubeClient,
    get_deployment_for_rest,
    get_release_name,
    image_properties,
    list_pods,
)
from storage_upgrade.constants import (
    AGENT_CORE_POD_LABEL,
    API_REST_POD_LABEL,
    IO_ENGINE_POD_LABEL,
    UPGRADE_EVENT_REASON,
    UPGRADE_JOB_CLUSTERROLE_NAME_SUFFIX,
    UPGRADE_JOB_CLUSTERROLEBINDING_NAME_SUFFIX,
    UPGRADE_JOB_IMAGE_NAME,
    UPGRADE_JOB_IMAGE_REPO,
    UPGRADE_JOB_NAME_SUFFIX,
    UPGRADE_JOB_SERVICEACCOUNT_NAME_SUFFIX,
    get_image_version_tag,
    upgrade_event_selector,
    upgrade_image_concat,
    upgrade_name_concat,
)
from storage_upgrade.errors import ErrorKind, UpgradeError
from storage_upgrade.objects import (
    upgrade_job,
    upgrade_job_cluster_role,
    upgrade_job_cluster_role_binding,
    upgrade_job_service_account,
)
from storage_upgrade.user_prompt import (
    CONTROL_PLANE_PODS_LIST,
    DATA_PLANE_PODS_LIST,
    DATA_PLANE_PODS_LIST_SKIP_RESTART,
    DELETE_INCOMPLETE_JOB,
    UPGRADE_DRY_RUN_SUMMARY,
    UPGRADE_JOB_STARTED,
    error,
    info,
    upgrade_dry_run_summary,
)

Manifest = dict[str, Any]


class Action(Enum):
    """What to do with an upgrade resource."""

    CREATE = "create"
    DELETE = "delete"


@dataclass(frozen=True)
class UpgradeEvent:
    """The payload of an event emitted by the upgrade job."""

    from_version: str
    to_version: str
    message: str


def parse_upgrade_event(data: str) -> UpgradeEvent:
    """Parse the JSON message of an upgrade event."""
    try:
        payload = json.loads(data)
        return UpgradeEvent(
            from_version=str(payload["fromVersion"]),
            to_version=str(payload["toVersion"]),
            message=str(payload["message"]),
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise UpgradeError(ErrorKind.EVENT_DESERIALIZATION, event=data, source=exc) from exc


def _event_sort_key(event: Manifest) -> tuple[bool, str]:
    time = event.get("eventTime")
    return (time is not None, time or "")


def latest_upgrade_event(client: KubeClient, namespace: str) -> UpgradeEvent:
    """Return the most recent upgrade event of the release's upgrade job."""
    release_name = get_release_name(client, namespace)
    selector = upgrade_event_selector(release_name, UPGRADE_JOB_NAME_SUFFIX)
    try:
        events = client.list("Event", namespace, field_selector=selector)
    except Exception as exc:
        raise UpgradeError(
            ErrorKind.LIST_EVENTS_WITH_FIELD_SELECTOR, field=selector, source=exc
        ) from exc

    upgrade_events = [e for e in events if e.get("reason") == UPGRADE_EVENT_REASON]
    if not upgrade_events:
        raise UpgradeError(ErrorKind.UPGRADE_EVENT_NOT_PRESENT)
    upgrade_events.sort(key=_event_sort_key, reverse=True)
    message = upgrade_events[0].get("message")
    if message is None:
        raise UpgradeError(ErrorKind.MESSAGE_IN_EVENT_NOT_PRESENT)
    return parse_upgrade_event(message)


def get_upgrade_status(client: KubeClient, namespace: str) -> UpgradeEvent:
    """Print the most recent upgrade status and return the event it came from."""
    event = latest_upgrade_event(client, namespace)
    print(f"Upgrade From: {event.from_version}")
    print(f"Upgrade To: {event.to_version}")
    print(f"Upgrade Status: {event.message}")
    return event


def _meta(obj: Manifest) -> Manifest:
    return obj.get("metadata") or {}


class UpgradeResources:
    """The service account, role, role binding and job of one release's upgrade."""

    def __init__(self, client: KubeClient, namespace: str) -> None:
        self.client = client
        self.namespace = namespace
        self.release_name = get_release_name(client, namespace)

    def _name(self, suffix: str) -> str:
        return upgrade_name_concat(self.release_name, suffix)

    def _get(self, kind: str, name: str, namespace: str | None, err: ErrorKind) -> Manifest | None:
        try:
            return self.client.get(kind, name, namespace)
        except Exception as exc:
            raise UpgradeError(err, name=name, source=exc) from exc

    def _create(
        self, kind: str, body: Manifest, namespace: str | None, name: str, err: ErrorKind
    ) -> Manifest:
        try:
            return self.client.create(kind, body, namespace)
        except Exception as exc:
            raise UpgradeError(err, name=name, source=exc) from exc

    def _delete(self, kind: str, name: str, namespace: str | None, err: ErrorKind) -> None:
        try:
            self.client.delete(kind, name, namespace)
        except Exception as exc:
            raise UpgradeError(err, name=name, source=exc) from exc

    def service_account_action(self, action: Action) -> None:
        """Create or delete the upgrade job's service account."""
        ns = self.namespace
        name = self._name(UPGRADE_JOB_SERVICEACCOUNT_NAME_SUFFIX)
        existing = self._get("ServiceAccount", name, ns, ErrorKind.GET_SERVICE_ACCOUNT)
        if existing is not None:
            if action is Action.CREATE:
                meta = _meta(existing)
                print(
                    f"ServiceAccount: {meta.get('name', name)} in namespace: "
                    f"{meta.get('namespace', ns)} already exist."
                )
            else:
                self._delete("ServiceAccount", name, ns, ErrorKind.SERVICE_ACCOUNT_DELETE)
                print(f"ServiceAccount {name} in namespace {ns} deleted")
        elif action is Action.CREATE:
            body = upgrade_job_service_account(ns, name)
            created = self._create(
                "ServiceAccount", body, ns, name, ErrorKind.SERVICE_ACCOUNT_CREATE
            )
            meta = _meta(created)
            print(
                f"ServiceAccount: {meta.get('name', name)} created in namespace: "
                f"{meta.get('namespace', ns)}"
            )
        else:
            print(f"ServiceAccount {name} in namespace {ns} does not exist")

    def cluster_role_action(self, action: Action) -> None:
        """Create or delete the upgrade job's cluster role."""
        ns = self.namespace
        name = self._name(UPGRADE_JOB_CLUSTERROLE_NAME_SUFFIX)
        existing = self._get("ClusterRole", name, None, ErrorKind.GET_CLUSTER_ROLE)
        if existing is not None:
            if action is Action.CREATE:
                print(
                    f"ClusterRole: {_meta(existing).get('name', name)}  in namespace {ns} "
                    "already exist"
                )
            else:
                self._delete("ClusterRole", name, None, ErrorKind.CLUSTER_ROLE_DELETE)
                print(f"ClusterRole {name} in namespace {ns} deleted")
        elif action is Action.CREATE:
            body = upgrade_job_cluster_role(ns, name)
            created = self._create("ClusterRole", body, None, name, ErrorKind.CLUSTER_ROLE_CREATE)
            print(f"Cluster Role: {_meta(created).get('name', name)} in namespace {ns} created")
        else:
            print(f"cluster role {name} in namespace {ns} does not exist")

    def cluster_role_binding_action(self, action: Action) -> None:
        """Create or delete the binding between the upgrade role and service account."""
        ns = self.namespace
        name = self._name(UPGRADE_JOB_CLUSTERROLEBINDING_NAME_SUFFIX)
        existing = self._get(
            "ClusterRoleBinding", name, None, ErrorKind.GET_CLUSTER_ROLE_BINDING
        )
        if existing is not None:
            if action is Action.CREATE:
                print(
                    f"ClusterRoleBinding: {_meta(existing).get('name', name)} in namespace "
                    f"{ns} already exist"
                )
            else:
                self._delete(
                    "ClusterRoleBinding", name, None, ErrorKind.CLUSTER_ROLE_BINDING_DELETE
                )
                print(f"ClusterRoleBinding {name} in namespace {ns} deleted")
        elif action is Action.CREATE:
            body = upgrade_job_cluster_role_binding(ns, self.release_name)
            created = self._create(
                "ClusterRoleBinding", body, None, name, ErrorKind.CLUSTER_ROLE_BINDING_CREATE
            )
            print(
                f"ClusterRoleBinding: {_meta(created).get('name', name)} in namespace {ns} "
                "created"
            )
        else:
            print(f"ClusterRoleBinding {name} in namespace {ns} does not exist")

    def job_action(
        self,
        action: Action,
        skip_data_plane_restart: bool = False,
        skip_upgrade_path_validation: bool = False,
    ) -> None:
        """Create or delete the upgrade job."""
        ns = self.namespace
        name = self._name(UPGRADE_JOB_NAME_SUFFIX)
        existing = self._get("Job", name, ns, ErrorKind.GET_UPGRADE_JOB)
        if existing is not None:
            if action is Action.CREATE:
                meta = _meta(existing)
                print(
                    f"Job: {meta.get('name', name)} in namespace: "
                    f"{meta.get('namespace', ns)} already exist"
                )
            else:
                self._delete("Job", name, ns, ErrorKind.UPGRADE_JOB_DELETE)
                print(f"Job {name} in namespace {ns} deleted")
        elif action is Action.CREATE:
            tag = get_image_version_tag()
            image = image_properties(get_deployment_for_rest(self.client, ns))
            body = upgrade_job(
                ns,
                upgrade_image_concat(
                    image.registry, UPGRADE_JOB_IMAGE_REPO, UPGRADE_JOB_IMAGE_NAME, tag
                ),
                self.release_name,
                skip_data_plane_restart,
                skip_upgrade_path_validation,
                image.pull_secrets,
                image.pull_policy,
            )
            created = self._create("Job", body, ns, name, ErrorKind.UPGRADE_JOB_CREATE)
            meta = _meta(created)
            print(
                f"Job: {meta.get('name', name)} created in namespace: "
                f"{meta.get('namespace', ns)}"
            )
        else:
            print(f"Job {name} in namespace {ns} does not exist")

    def create_all(
        self, skip_data_plane_restart: bool = False, skip_upgrade_path_validation: bool = False
    ) -> None:
        """Create every upgrade resource, the job last."""
        self.service_account_action(Action.CREATE)
        self.cluster_role_action(Action.CREATE)
        self.cluster_role_binding_action(Action.CREATE)
        self.job_action(Action.CREATE, skip_data_plane_restart, skip_upgrade_path_validation)

    def delete_all(self) -> None:
        """Delete every upgrade resource, the job first."""
        self.job_action(Action.DELETE)
        self.cluster_role_binding_action(Action.DELETE)
        self.cluster_role_action(Action.DELETE)
        self.service_account_action(Action.DELETE)

    def is_job_completed(self) -> bool:
        """Return whether the upgrade job has succeeded."""
        name = self._name(UPGRADE_JOB_NAME_SUFFIX)
        job = self._get("Job", name, self.namespace, ErrorKind.GET_UPGRADE_JOB)
        if job is None:
            raise UpgradeError(
                ErrorKind.UPGRADE_JOB_NOT_PRESENT, name=name, namespace=self.namespace
            )
        status = job.get("status")
        if status is None:
            raise UpgradeError(ErrorKind.UPGRADE_JOB_STATUS_NOT_PRESENT, name=name)
        return status.get("succeeded") == 1


def _exit_on_error(operation: Callable[[], Any]) -> Any:
    try:
        return operation()
    except UpgradeError as exc:
        raise SystemExit(exc.exit_code()) from exc


@dataclass
class UpgradeArgs:
    """Options of the upgrade command."""

    dry_run: bool = False
    skip_data_plane_restart: bool = False
    skip_single_replica_volume_validation: bool = False
    skip_replica_rebuild: bool = False
    skip_cordoned_node_validation: bool = False
    skip_upgrade_path_validation_for_unsupported_version: bool = False

    def apply(self, client: KubeClient, namespace: str) -> None:
        """Create the upgrade resources; exit with the error's code on failure."""
        _exit_on_error(
            lambda: UpgradeResources(client, namespace).create_all(
                self.skip_data_plane_restart,
                self.skip_upgrade_path_validation_for_unsupported_version,
            )
        )
        info(UPGRADE_JOB_STARTED, "")

    def dry_run_report(self, client: KubeClient, namespace: str) -> None:
        """Print the pods the upgrade would restart and the target version."""
        control_plane = list_pods(client, AGENT_CORE_POD_LABEL, namespace)
        control_plane += list_pods(client, API_REST_POD_LABEL, namespace)
        info(CONTROL_PLANE_PODS_LIST, "\n".join(control_plane))

        data_plane = list_pods(client, IO_ENGINE_POD_LABEL, namespace)
        heading = (
            DATA_PLANE_PODS_LIST_SKIP_RESTART
            if self.skip_data_plane_restart
            else DATA_PLANE_PODS_LIST
        )
        info(heading, "\n".join(data_plane))
        info(upgrade_dry_run_summary(UPGRADE_DRY_RUN_SUMMARY), "")


@dataclass
class DeleteUpgradeArgs:
    """Options of the delete-upgrade command."""

    force: bool = False

    def delete(self, client: KubeClient, namespace: str) -> None:
        """Remove the upgrade resources once the job is done, or at once with ``force``."""
        try:
            resources = UpgradeResources(client, namespace)
            completed = resources.is_job_completed()
        except UpgradeError as exc:
            print(f"error : {exc}", file=sys.stderr)
            raise SystemExit(exc.exit_code()) from exc

        if not completed and not self.force:
            error("", DELETE_INCOMPLETE_JOB)
        if completed or self.force:
            _exit_on_error(resources.delete_all)