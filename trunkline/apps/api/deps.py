from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.persistence.db import get_session
from trunkline.providers.provisioning.base import ProvisioningProvider
from trunkline.providers.provisioning.factory import get_provisioning_provider


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


@lru_cache
def _provisioner() -> ProvisioningProvider:
    # One provider per process so the http client pool is shared.
    return get_provisioning_provider()


def get_provisioner() -> ProvisioningProvider:
    return _provisioner()
