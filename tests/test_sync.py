import base64
import copy

import pytest
from kubernetes import client

from fakes import FakeProvisioner, annotation, make_configuration, make_webhook
from webhook_cert_manager.errors import (
    AmbiguousClientConfigError,
    InvalidAnnotationError,
    MalformedSecretError,
    UnsupportedTypeError,
)
from webhook_cert_manager.operations.certs import SecretCertsHandlerFactory
from webhook_cert_manager.operations.sync import WebhookConfigurationSync
from webhook_cert_manager.resources.element import WebhookType

CA_A = b"-----CA webhook-service.webhook-system.svc-----\n"


def _bundle(webhook) -> bytes:
    return base64.b64decode(webhook.client_config.ca_bundle or "")


def _persisted(api, kind=WebhookType.MUTATING):
    method = getattr(api.admission_v1, f"replace_{kind.value}_webhook_configuration")
    return method.call_args.kwargs["body"]


def test_first_sync_creates_secret_and_injects_ca(api, syncer):
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )

    result = syncer.sync(configuration)

    assert result.changed is True
    assert result.synced_webhooks == ["hook-a"]
    secret = api.core_v1.secrets[("ns1", "sec-a")]
    assert set(secret.data) == {"ca-cert.pem", "cert.pem", "key.pem"}
    assert base64.b64decode(secret.data["ca-cert.pem"]) == CA_A

    persisted = _persisted(api)
    assert _bundle(persisted.webhooks[0]) == CA_A
    api.admission_v1.replace_mutating_webhook_configuration.assert_called_once_with(
        name="demo-webhooks", body=persisted
    )


def test_sync_does_not_mutate_the_input(syncer):
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )

    syncer.sync(configuration)

    assert configuration.webhooks[0].client_config.ca_bundle is None


def test_second_sync_is_a_noop(api, syncer, issued):
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )
    syncer.sync(configuration)
    persisted = copy.deepcopy(_persisted(api))
    api.admission_v1.reset_mock()
    writes_before = list(api.core_v1.writes)

    result = syncer.sync(persisted)

    assert result.changed is False
    assert api.core_v1.writes == writes_before
    assert issued == ["webhook-service.webhook-system.svc"]
    api.admission_v1.replace_mutating_webhook_configuration.assert_not_called()


def test_unannotated_webhooks_are_left_alone(api, syncer):
    untouched = base64.b64encode(b"existing-ca").decode()
    configuration = make_configuration(
        [make_webhook("hook-a"), make_webhook("hook-b", ca_bundle=untouched)],
        annotations={annotation("hook-a"): "ns1/sec-a", "unrelated": "value"},
    )

    result = syncer.sync(configuration)

    assert result.synced_webhooks == ["hook-a"]
    assert api.core_v1.reads == [("ns1", "sec-a"), ("ns1", "sec-a")]
    assert _persisted(api).webhooks[1].client_config.ca_bundle == untouched


def test_configuration_without_annotations_is_untouched(api, syncer):
    configuration = make_configuration([make_webhook("hook-a")], annotations=None)

    result = syncer.sync(configuration)

    assert result.changed is False
    assert result.synced_webhooks == []
    assert api.core_v1.reads == []
    api.admission_v1.replace_mutating_webhook_configuration.assert_not_called()


def test_removed_annotation_skips_previously_synced_webhook(api, syncer):
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )
    syncer.sync(configuration)
    persisted = copy.deepcopy(_persisted(api))
    persisted.metadata.annotations = {"owner": "team-a"}
    secret_before = copy.deepcopy(api.core_v1.secrets[("ns1", "sec-a")])
    bundle_before = persisted.webhooks[0].client_config.ca_bundle
    api.admission_v1.reset_mock()

    result = syncer.sync(persisted)

    assert result.changed is False
    assert persisted.webhooks[0].client_config.ca_bundle == bundle_before
    assert api.core_v1.secrets[("ns1", "sec-a")] == secret_before
    api.admission_v1.replace_mutating_webhook_configuration.assert_not_called()


def test_partial_failure_keeps_secret_and_completes_on_retry(api, syncer):
    configuration = make_configuration(
        [
            make_webhook("hook-a"),
            make_webhook("hook-b", service=("other", "svc"), url="https://hook-b.example.com/validate"),
        ],
        annotations={annotation("hook-a"): "ns1/sec-a", annotation("hook-b"): "ns1/sec-b"},
    )

    with pytest.raises(AmbiguousClientConfigError):
        syncer.sync(configuration)

    assert ("ns1", "sec-a") in api.core_v1.secrets
    assert ("ns1", "sec-b") not in api.core_v1.secrets
    api.admission_v1.replace_mutating_webhook_configuration.assert_not_called()

    configuration.webhooks[1].client_config.service = None
    result = syncer.sync(configuration)

    assert result.changed is True
    persisted = _persisted(api)
    assert _bundle(persisted.webhooks[0]) == CA_A
    assert _bundle(persisted.webhooks[1]) == b"-----CA hook-b.example.com-----\n"


def test_existing_ca_is_not_appended_twice(api, syncer):
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )
    syncer.sync(configuration)
    other_ca = b"-----CA some-other-issuer-----\n"
    bundle = base64.b64encode(other_ca + CA_A).decode()
    configuration.webhooks[0].client_config.ca_bundle = bundle
    api.admission_v1.reset_mock()

    result = syncer.sync(configuration)

    assert result.changed is False
    assert configuration.webhooks[0].client_config.ca_bundle == bundle


def test_ca_is_appended_to_an_existing_bundle(api, syncer):
    other_ca = b"-----CA some-other-issuer-----\n"
    configuration = make_configuration(
        [make_webhook("hook-a", ca_bundle=base64.b64encode(other_ca).decode())],
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )

    syncer.sync(configuration)

    assert _bundle(_persisted(api).webhooks[0]) == other_ca + CA_A


def test_invalid_certs_are_rotated(api, issued):
    factory = SecretCertsHandlerFactory(
        api,
        lambda common_name: FakeProvisioner(common_name, issued),
        validator=lambda certs, webhook: False,
    )
    syncer = WebhookConfigurationSync(api, factory)
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )

    syncer.sync(configuration)

    assert api.core_v1.writes == [("create", "ns1", "sec-a"), ("replace", "ns1", "sec-a")]
    assert len(issued) == 2


def test_malformed_secret_aborts_sync(api, syncer):
    api.core_v1.secrets[("ns1", "sec-a")] = client.V1Secret(
        metadata=client.V1ObjectMeta(name="sec-a", namespace="ns1"),
        data={"cert.pem": base64.b64encode(b"cert").decode()},
    )
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )

    with pytest.raises(MalformedSecretError):
        syncer.sync(configuration)

    assert api.core_v1.writes == []
    api.admission_v1.replace_mutating_webhook_configuration.assert_not_called()


def test_stray_malformed_annotation_does_not_block_other_webhooks(api, syncer, issued):
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1/sec-a", annotation("removed-hook"): "garbage"},
    )

    result = syncer.sync(configuration)

    assert result.changed is True
    assert result.synced_webhooks == ["hook-a"]
    assert issued == ["webhook-service.webhook-system.svc"]
    assert ("ns1", "sec-a") in api.core_v1.secrets
    assert _bundle(_persisted(api).webhooks[0]) == CA_A


def test_malformed_annotation_of_a_present_webhook_aborts_sync(api, syncer):
    configuration = make_configuration(
        [make_webhook("hook-a")],
        annotations={annotation("hook-a"): "ns1"},
    )

    with pytest.raises(InvalidAnnotationError):
        syncer.sync(configuration)

    assert api.core_v1.writes == []
    api.admission_v1.replace_mutating_webhook_configuration.assert_not_called()


def test_validating_configuration_is_persisted_with_validating_client(api, syncer):
    configuration = make_configuration(
        [make_webhook("hook-a", kind=WebhookType.VALIDATING)],
        kind=WebhookType.VALIDATING,
        annotations={annotation("hook-a"): "ns1/sec-a"},
    )

    result = syncer.sync(configuration)

    assert result.kind is WebhookType.VALIDATING
    assert _bundle(_persisted(api, WebhookType.VALIDATING).webhooks[0]) == CA_A
    api.admission_v1.replace_mutating_webhook_configuration.assert_not_called()


def test_unsupported_type_is_rejected(syncer):
    with pytest.raises(UnsupportedTypeError):
        syncer.sync({"kind": "MutatingWebhookConfiguration"})
