from typing import List

import pytest

from fakes import FakeProvisioner, make_api
from webhook_cert_manager.kube import CertManagerAPI
from webhook_cert_manager.operations.certs import SecretCertsHandlerFactory
from webhook_cert_manager.operations.sync import WebhookConfigurationSync


@pytest.fixture
def api() -> CertManagerAPI:
    return make_api()


@pytest.fixture
def issued() -> List[str]:
    return []


@pytest.fixture
def factory(api: CertManagerAPI, issued: List[str]) -> SecretCertsHandlerFactory:
    return SecretCertsHandlerFactory(api, lambda common_name: FakeProvisioner(common_name, issued))


@pytest.fixture
def syncer(api: CertManagerAPI, factory: SecretCertsHandlerFactory) -> WebhookConfigurationSync:
    return WebhookConfigurationSync(api, factory)
