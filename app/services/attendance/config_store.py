"""
Tenant Config Store

Holds the latest restaurant configuration pushed by the dashboard. The
responder reads one immutable snapshot per message; the config endpoint is
the only writer.
"""

import logging
from typing import Optional

from app.schemas import TenantConfig

logger = logging.getLogger(__name__)


class TenantConfigStore:
    """Latest TenantConfig per tenant."""

    def __init__(self):
        self._configs: dict[str, TenantConfig] = {}

    def get(self, tenant_id: str) -> Optional[TenantConfig]:
        return self._configs.get(tenant_id)

    def replace(self, tenant_id: str, config: TenantConfig) -> None:
        self._configs[tenant_id] = config
        logger.info(f"⚙️ Config updated for {tenant_id} (active={config.is_active})")

    def clear(self) -> None:
        self._configs.clear()
