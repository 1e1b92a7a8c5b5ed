from __future__ import annotations

from trunkline.core.config import get_settings
from trunkline.core.errors import ProviderConfigError
from trunkline.providers.provisioning.base import ProvisioningProvider
from trunkline.providers.provisioning.fake import FakeProvisioningProvider
from trunkline.providers.provisioning.http_provider import HttpProvisioningProvider


def get_provisioning_provider() -> ProvisioningProvider:
    settings = get_settings()
    provider = (settings.provisioning_provider or "fake").lower()

    if provider == "fake":
        return FakeProvisioningProvider()
    if provider == "http":
        return HttpProvisioningProvider()

    raise ProviderConfigError(f"Unsupported provisioning provider: {provider}")
