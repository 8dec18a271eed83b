"""
Database configuration for department partitions

Every department gets its own engine (and its own database); there is no
shared table keyed by a tenant column.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
import structlog

import uniadmin.models  # noqa: F401  (registers tables on SQLModel.metadata)

logger = structlog.get_logger(__name__)


def create_partition_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the engine backing one department partition"""
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # Keep a single connection so the in-memory database survives
            kwargs["poolclass"] = StaticPool

    return create_engine(database_url, echo=echo, future=True, **kwargs)


def init_partition_schema(engine: Engine, tenant_code: str) -> None:
    """Create partition tables if missing"""
    SQLModel.metadata.create_all(engine)
    logger.info(f"Partition tables ready for department {tenant_code}")
