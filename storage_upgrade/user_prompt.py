"""Messages shown to the user and the console helpers that print them."""

from __future__ import annotations

import sys

from storage_upgrade.constants import release_version

UPGRADE_WARNING = (
    "\nVolumes which make use of a single volume replica instance will be unavailable "
    "for some time during upgrade.\nIt is recommended that you do not create new volumes "
    "which make use of only one volume replica."
)

REBUILD_WARNING = (
    "\nThe cluster is rebuilding replica of some volumes.\nTo skip this validation please "
    "run after some time or re-run with '--skip-replica-rebuild` flag."
)

SINGLE_REPLICA_VOLUME_WARNING = (
    "\nThe list below shows the single replica volumes in cluster.\nThese single replica "
    "volumes may not be accessible during upgrade.\nTo skip this validation, please re-run "
    "with '--skip-single-replica-volume-validation` flag."
)

CORDONED_NODE_WARNING = (
    "\nOne or more nodes in this cluster are in a Mayastor cordoned state.\nThis implies "
    "that the storage space of DiskPools on these nodes cannot be utilized for volume "
    "replica rebuilds.\nPlease ensure remaining storage nodes have enough available "
    "DiskPool space to accommodate volume replica rebuilds,\nthat get triggered during the "
    "upgrade process.\nTo skip this validation, please re-run with "
    "'--skip-cordoned-node-validation` flag.\nBelow is a list of the Mayastor cordoned nodes:"
)

CONTROL_PLANE_PODS_LIST = "\nList of control plane pods which will be restarted during upgrade."

DATA_PLANE_PODS_LIST = "\nList of data plane pods which will be restarted during upgrade."

DATA_PLANE_PODS_LIST_SKIP_RESTART = (
    "\nList of data plane pods which need to be manually restarted to reflect upgrade as "
    "--skip-data-plane-restart flag is passed during upgrade."
)

UPGRADE_DRY_RUN_SUMMARY = "\nFinally the cluster deployment will be upgraded to version"

UPGRADE_JOB_STARTED = (
    "\nThe upgrade has started. You can see the recent upgrade status using "
    "'get upgrade-status` command."
)

UPGRADE_PATH_NOT_VALID = (
    "\nThe upgrade path is not valid. The source version is in the list of unsupported "
    "versions:"
)

UPGRADE_TO_UNSUPPORTED_VERSION = (
    "\nUpgrade failed as destination version is unsupported. Please try with "
    "`--skip-upgrade-path-validation-for-unsupported-version.`"
)

DELETE_INCOMPLETE_JOB = (
    "\n Cant delete an incomplete upgrade job. Please try with `--force` flag to forcefully "
    "remove upgrade resources and bypass graceful deletion."
)


def upgrade_dry_run_summary(message: str) -> str:
    """Append the target release version to a dry-run summary message."""
    version = release_version() or "develop"
    return f"{message} : {version}"


def _emit(stream, message: str, details: str) -> None:
    if message:
        print(message, file=stream)
    if details:
        print(details, file=stream)


def info(message: str, details: str = "") -> None:
    """Print an informational message, followed by its details, to standard output."""
    _emit(sys.stdout, message, details)


def error(message: str, details: str = "") -> None:
    """Print an error message, followed by its details, to standard error."""
    _emit(sys.stderr, message, details)