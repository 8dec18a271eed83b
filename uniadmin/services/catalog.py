"""
Module catalog operations that touch workflow state

Deactivation keeps existing enrollments and decided requests as historical
records; the module only stops being enrollable.
"""

from typing import Optional, Union

import structlog

from uniadmin.core.identity import CompositeIdentity, coerce_identity
from uniadmin.core.partitions import PartitionRegistry
from uniadmin.core.permissions import authorize_write
from uniadmin.models.module import Module
from uniadmin.services.lookups import load_active_module

logger = structlog.get_logger(__name__)


class ModuleCatalog:

    def __init__(self, registry: PartitionRegistry, lock_timeout: Optional[float] = None):
        self.registry = registry
        self.lock_timeout = lock_timeout

    def deactivate(
        self,
        caller_tenant: str,
        module: Union[str, CompositeIdentity],
        timeout: Optional[float] = None,
    ) -> Module:
        module = coerce_identity(module)
        authorize_write(caller_tenant, module.tenant)
        store = self.registry.get(module.tenant)

        with store.write(self.lock_timeout if timeout is None else timeout) as session:
            record = load_active_module(session, module)
            record.deactivate()
            session.add(record)

        logger.info(f"Module {module} ({record.code}) deactivated by department {caller_tenant}")
        return record
