# storage_upgrade

A library for upgrading a storage cluster that runs on Kubernetes. It builds
the Kubernetes objects an upgrade needs (a service account, a cluster role, a
cluster role binding and the upgrade job), runs the safety checks that should
pass before an upgrade starts, and reports on an upgrade that is under way.

## Modules

- `storage_upgrade.constants` – labels, image coordinates and name helpers
  such as `upgrade_name_concat`, `upgrade_image_concat`,
  `upgrade_event_selector` and `get_image_version_tag`.
- `storage_upgrade.objects` – manifest builders returning plain dictionaries
  in the Kubernetes JSON form: `upgrade_job_service_account`,
  `upgrade_job_cluster_role`, `upgrade_job_cluster_role_binding` and
  `upgrade_job`.
- `storage_upgrade.cluster` – the `KubeClient` interface and lookups built on
  it: `get_deployment_for_rest`, `get_release_name`, `get_source_version`,
  `get_pvc_from_uuid`, `list_pods`, and `image_properties`, which reads the
  registry, pull secrets and pull policy of a deployment's first container
  into an `ImageProperties`.
- `storage_upgrade.upgrade` – managing the upgrade resources and reading the
  upgrade status.
- `storage_upgrade.preflight` – the `RestClient` interface and the checks run
  before an upgrade.
- `storage_upgrade.user_prompt` – the messages shown to the user, with `info`
  (standard output) and `error` (standard error).
- `storage_upgrade.errors` – `UpgradeError` and `ErrorKind`.

## Building manifests

```python
from storage_upgrade.constants import upgrade_image_concat, upgrade_name_concat
from storage_upgrade.objects import (
    upgrade_job,
    upgrade_job_cluster_role,
    upgrade_job_cluster_role_binding,
    upgrade_job_service_account,
)

release = "mayastor"
namespace = "storage"

account = upgrade_job_service_account(
    namespace, upgrade_name_concat(release, "upgrade-service-account")
)
role = upgrade_job_cluster_role(namespace, upgrade_name_concat(release, "upgrade-role"))
binding = upgrade_job_cluster_role_binding(namespace, release)
job = upgrade_job(
    namespace,
    upgrade_image_concat("docker.io", "openebs", "mayastor-upgrade-job", "v2.5.0"),
    release,
    skip_data_plane_restart=False,
    skip_upgrade_path_validation=False,
    image_pull_secrets=None,
    image_pull_policy=None,
)
```

Resource names have the form `<release>-<component>-<tag>`, where the tag is
the build's version tag with dots replaced by dashes. This build carries no
release tag, so the tag is `develop` and the job image tag is `develop` too.

## Talking to the cluster

Functions that read or change the cluster take client objects you provide:

- `storage_upgrade.cluster.KubeClient` – an abstract class with `list`, `get`,
  `create` and `delete`, exchanging objects as dictionaries. `get` returns
  `None` for a missing object.
- `storage_upgrade.preflight.RestClient` – an abstract class with `get_nodes`
  and `get_volumes(max_entries, starting_token)`, the latter returning a page
  with `entries` and `next_token` (`None` on the last page).

Exceptions raised by a client are wrapped in an `UpgradeError` of the fitting
kind.

## Managing an upgrade

`UpgradeResources(client, namespace)` finds the release name from the REST API
deployment's `openebs.io/release` label (default `mayastor`) and then:

- `service_account_action`, `cluster_role_action`,
  `cluster_role_binding_action`, `job_action` – create or delete one resource
  (`Action.CREATE` / `Action.DELETE`), printing what happened. Existing
  resources are not recreated; missing ones are not deleted. The job's image
  registry, pull secrets and pull policy are taken from the REST API
  deployment.
- `create_all` – creates everything, the job last.
- `delete_all` – deletes everything, the job first.
- `is_job_completed` – whether the job's status shows one success.

`UpgradeArgs` holds the upgrade options. `apply` creates the resources and
prints that the upgrade has started; `dry_run_report` prints the control-plane
and data-plane pods the upgrade would touch and the target version.
`DeleteUpgradeArgs(force=...)` has `delete`, which removes the resources once
the job has completed, or at once with `force=True`; otherwise it prints a
warning and leaves them. `apply` and `delete` end with `SystemExit` carrying
the error's exit code when something fails.

`get_upgrade_status(client, namespace)` prints the source version, target
version and status message of the most recent upgrade event and returns it as
an `UpgradeEvent`; `latest_upgrade_event` returns it without printing.

## Preflight checks

`preflight_check(kube_client, rest_client, namespace, unsupported_versions_yaml, ...)`
prints a warning and then runs, in this order, each check that is not skipped:

- `upgrade_path_validation` – fails if the installed version (the
  `openebs.io/version` label) is listed in the YAML document's
  `unsupported_versions`, or if the target image tag is a development build;
- `rebuild_in_progress_validation` – fails while a replica rebuild runs;
- `already_cordoned_nodes_validation` – fails if storage nodes are cordoned;
- `single_volume_replica_validation` – fails if volumes have one replica,
  listing their persistent volume claims.

The `skip_*` keyword arguments turn single checks off. The list of
unsupported versions is passed in by the caller as YAML text;
`parse_unsupported_versions` parses it into an `UnsupportedVersions`.

## Errors

Every failure is an `UpgradeError` carrying an `ErrorKind` and a readable
message. `exit_code()` gives the code, 401 to 445, one per kind:

```python
from storage_upgrade.errors import UpgradeError

try:
    ...
except UpgradeError as err:
    print(err)
    code = err.exit_code()
```

## What it does not do

- It has no command-line program; the option classes are meant to be driven
  from your own front end.
- It ships no Kubernetes or REST client: you supply `KubeClient` and
  `RestClient` implementations.
- It ships no list of unsupported source versions; the caller provides it.

## Requirements

Python 3.10 or later, with `pyyaml` and `semver`.