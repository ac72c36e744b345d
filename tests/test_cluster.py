import pytest

from storage_upgrade.cluster import (
    ImageProperties,
    KubeClient,
    get_deployment_for_rest,
    get_pvc_from_uuid,
    get_release_name,
    get_source_version,
    image_properties,
    list_pods,
)
from storage_upgrade.constants import (
    API_REST_LABEL_SELECTOR,
    DEFAULT_IMAGE_REGISTRY,
    DEFAULT_RELEASE_NAME,
    HELM_RELEASE_NAME_LABEL,
    HELM_RELEASE_VERSION_LABEL,
)
from storage_upgrade.errors import ErrorKind, UpgradeError


class FakeClient(KubeClient):
    def __init__(self, objects=None, fail=False):
        self.objects = objects or {}
        self.fail = fail
        self.calls = []

    def list(self, kind, namespace=None, *, label_selector=None, field_selector=None):
        self.calls.append((kind, namespace, label_selector))
        if self.fail:
            raise RuntimeError("boom")
        return list(self.objects.get(kind, []))

    def get(self, kind, name, namespace=None):
        return None

    def create(self, kind, body, namespace=None):
        return body

    def delete(self, kind, name, namespace=None):
        return None


def _deployment(image="quay.io/openebs/api-rest:v1", labels=None, **pod_extra):
    container = {"name": "api-rest", "image": image}
    container.update(pod_extra.pop("container", {}))
    pod_spec = {"containers": [container]}
    pod_spec.update(pod_extra)
    meta = {"name": "api-rest"}
    if labels is not None:
        meta["labels"] = labels
    return {"metadata": meta, "spec": {"template": {"spec": pod_spec}}}


def test_image_properties_three_sections_uses_first():
    props = image_properties(_deployment("quay.io/openebs/api-rest:v1"))
    assert props.registry == "quay.io"
    assert props.pull_secrets is None
    assert props.pull_policy is None


@pytest.mark.parametrize("image", ["openebs/api-rest:v1", "a.io/b/c/d:v1"])
def test_image_properties_other_lengths_use_default_registry(image):
    assert image_properties(_deployment(image)).registry == DEFAULT_IMAGE_REGISTRY


def test_image_properties_pull_settings():
    deployment = _deployment(
        imagePullSecrets=[{"name": "regcred"}],
        container={"imagePullPolicy": "Always"},
    )
    props = image_properties(deployment)
    assert props == ImageProperties(
        registry="quay.io", pull_secrets=({"name": "regcred"},), pull_policy="Always"
    )


def test_image_properties_single_section_invalid():
    with pytest.raises(UpgradeError) as info:
        image_properties(_deployment("api-rest:v1"))
    assert info.value.kind is ErrorKind.REFERENCE_DEPLOYMENT_INVALID_IMAGE


@pytest.mark.parametrize(
    "deployment, kind",
    [
        ({"metadata": {}}, ErrorKind.REFERENCE_DEPLOYMENT_NO_SPEC),
        ({"spec": {"template": {}}}, ErrorKind.REFERENCE_DEPLOYMENT_NO_POD_TEMPLATE_SPEC),
        (
            {"spec": {"template": {"spec": {"containers": []}}}},
            ErrorKind.REFERENCE_DEPLOYMENT_NO_CONTAINERS,
        ),
        (
            {"spec": {"template": {"spec": {"containers": [{"name": "x"}]}}}},
            ErrorKind.REFERENCE_DEPLOYMENT_NO_IMAGE,
        ),
    ],
)
def test_image_properties_missing_parts(deployment, kind):
    with pytest.raises(UpgradeError) as info:
        image_properties(deployment)
    assert info.value.kind is kind


def test_get_deployment_for_rest_uses_label_selector():
    deployment = _deployment()
    client = FakeClient({"Deployment": [deployment]})
    assert get_deployment_for_rest(client, "ns1") == deployment
    assert client.calls == [("Deployment", "ns1", API_REST_LABEL_SELECTOR)]


def test_get_deployment_for_rest_none_present():
    with pytest.raises(UpgradeError) as info:
        get_deployment_for_rest(FakeClient(), "ns1")
    assert info.value.kind is ErrorKind.NO_DEPLOYMENT_PRESENT
    assert info.value.exit_code() == 403


def test_get_deployment_for_rest_wraps_client_error():
    with pytest.raises(UpgradeError) as info:
        get_deployment_for_rest(FakeClient(fail=True), "ns1")
    assert info.value.kind is ErrorKind.LIST_DEPLOYMENTS_WITH_LABEL
    assert isinstance(info.value.__cause__, RuntimeError)


def test_get_release_name_from_label():
    client = FakeClient({"Deployment": [_deployment(labels={HELM_RELEASE_NAME_LABEL: "rel"})]})
    assert get_release_name(client, "ns") == "rel"


@pytest.mark.parametrize("labels", [None, {"other": "x"}])
def test_get_release_name_default(labels):
    client = FakeClient({"Deployment": [_deployment(labels=labels)]})
    assert get_release_name(client, "ns") == DEFAULT_RELEASE_NAME


def test_get_source_version():
    client = FakeClient(
        {"Deployment": [_deployment(labels={HELM_RELEASE_VERSION_LABEL: "2.0.0"})]}
    )
    assert get_source_version(client, "ns") == "2.0.0"


@pytest.mark.parametrize("labels", [None, {HELM_RELEASE_NAME_LABEL: "rel"}])
def test_get_source_version_missing(labels):
    client = FakeClient({"Deployment": [_deployment(labels=labels)]})
    with pytest.raises(UpgradeError) as info:
        get_source_version(client, "ns")
    assert info.value.kind is ErrorKind.NO_DEPLOYMENT_PRESENT


def test_get_pvc_from_uuid_filters():
    claims = [
        {"metadata": {"uid": "u1", "name": "claim-a"}},
        {"metadata": {"uid": "u2", "name": "claim-b"}},
        {"metadata": {"uid": "u3"}},
        {"metadata": {"name": "claim-d"}},
    ]
    client = FakeClient({"PersistentVolumeClaim": claims})
    assert get_pvc_from_uuid(client, {"u1", "u3"}) == ["claim-a"]
    assert client.calls == [("PersistentVolumeClaim", None, None)]


def test_get_pvc_from_uuid_wraps_error():
    with pytest.raises(UpgradeError) as info:
        get_pvc_from_uuid(FakeClient(fail=True), ["u1"])
    assert info.value.kind is ErrorKind.LIST_PVC


def test_list_pods_returns_names_in_order():
    pods = [{"metadata": {"name": "p1"}}, {"metadata": {"name": "p2"}}]
    client = FakeClient({"Pod": pods})
    assert list_pods(client, "app=io-engine", "ns") == ["p1", "p2"]
    assert client.calls == [("Pod", "ns", "app=io-engine")]


def test_list_pods_missing_name():
    client = FakeClient({"Pod": [{"metadata": {}}]})
    with pytest.raises(UpgradeError) as info:
        list_pods(client, "app=io-engine", "ns")
    assert info.value.kind is ErrorKind.POD_NAME_NOT_PRESENT


def test_list_pods_wraps_error():
    with pytest.raises(UpgradeError) as info:
        list_pods(FakeClient(fail=True), "app=io-engine", "ns")
    assert info.value.exit_code() == 427
    assert info.value.fields["label"] == "app=io-engine"
    assert info.value.fields["namespace"] == "ns"