"""
Tenant partition stores and the registry that selects them

One store instance per department. A store owns every write to its own
rows; writes run under the store's lock so that decisions and duplicate
checks inside one department are serialized. Reads never take the lock and
never commit.
"""

from abc import ABC, abstractmethod
from contextlib import ExitStack, contextmanager, nullcontext
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Type, TypeVar
import asyncio
import threading

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, select
import structlog

from uniadmin.core.config import Settings
from uniadmin.core.database import create_partition_engine, init_partition_schema
from uniadmin.core.errors import PartitionTimeout, UnknownTenant
from uniadmin.core.identity import validate_tenant_code

logger = structlog.get_logger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0

ModelT = TypeVar("ModelT", bound=SQLModel)


class TenantPartitionStore(ABC):
    """Isolated data partition of one department"""

    # Reads take the write lock too when every session shares one connection
    serialize_reads = False

    def __init__(self, tenant_code: str, name: Optional[str] = None, lock_timeout: Optional[float] = None):
        self.tenant_code = validate_tenant_code(tenant_code)
        self.name = name or tenant_code
        self.lock_timeout = lock_timeout if lock_timeout is not None else DEFAULT_LOCK_TIMEOUT_SECONDS
        self._lock = threading.RLock()

    @abstractmethod
    def _open_session(self) -> Session:
        """Open a new session bound to this partition"""

    def dispose(self) -> None:
        """Release connections held by the partition"""

    @contextmanager
    def locked(self, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold this partition's write lock; PartitionTimeout if it cannot be acquired"""
        wait = self.lock_timeout if timeout is None else timeout
        if not self._lock.acquire(timeout=wait):
            logger.warning(f"Lock timeout on department {self.tenant_code} after {wait}s")
            raise PartitionTimeout(
                f"Department {self.tenant_code} is busy, gave up after {wait}s"
            )
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Read-only session; closing it rolls back whatever it touched

        Loaded objects are detached on close with their attributes intact.
        """
        with self.locked() if self.serialize_reads else nullcontext():
            session = self._open_session()
            try:
                yield session
            finally:
                session.close()

    @contextmanager
    def write(self, timeout: Optional[float] = None) -> Iterator[Session]:
        """Atomic read-modify-write under the partition lock"""
        with self.locked(timeout):
            session = self._open_session()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def get(self, model: Type[ModelT], local_id: Any) -> Optional[ModelT]:
        with self.read() as session:
            return session.get(model, local_id)

    def put(self, obj: ModelT, timeout: Optional[float] = None) -> ModelT:
        with self.write(timeout) as session:
            session.add(obj)
            session.flush()
            session.refresh(obj)
        return obj

    def list(self, model: Type[ModelT], *criteria) -> List[ModelT]:
        with self.read() as session:
            statement = select(model)
            if criteria:
                statement = statement.where(*criteria)
            return list(session.exec(statement).all())


class SQLPartitionStore(TenantPartitionStore):
    """Partition backed by its own SQLAlchemy engine"""

    def __init__(
        self,
        tenant_code: str,
        engine: Engine,
        name: Optional[str] = None,
        lock_timeout: Optional[float] = None,
    ):
        super().__init__(tenant_code, name=name, lock_timeout=lock_timeout)
        self.engine = engine
        # In-memory SQLite: closing any session resets the one shared connection
        self.serialize_reads = isinstance(engine.pool, StaticPool)

    @classmethod
    def from_url(cls, tenant_code: str, database_url: str, name: Optional[str] = None,
                 lock_timeout: Optional[float] = None, echo: bool = False) -> "SQLPartitionStore":
        engine = create_partition_engine(database_url, echo=echo)
        init_partition_schema(engine, tenant_code)
        return cls(tenant_code, engine, name=name, lock_timeout=lock_timeout)

    def _open_session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def dispose(self) -> None:
        self.engine.dispose()


class PartitionRegistry:
    """TenantCode -> partition store"""

    def __init__(self, stores: Iterable[TenantPartitionStore] = ()):
        self._stores: Dict[str, TenantPartitionStore] = {}
        for store in stores:
            self.register(store)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PartitionRegistry":
        registry = cls()
        for department in settings.DEPARTMENTS:
            registry.register(SQLPartitionStore.from_url(
                department.code,
                department.database_url,
                name=department.name,
                lock_timeout=settings.PARTITION_LOCK_TIMEOUT_SECONDS,
                echo=settings.SQL_ECHO,
            ))
        logger.info(f"Partition registry ready: {registry.codes()}")
        return registry

    def register(self, store: TenantPartitionStore) -> None:
        if store.tenant_code in self._stores:
            raise ValueError(f"Department {store.tenant_code} is already registered")
        self._stores[store.tenant_code] = store

    def get(self, tenant_code: str) -> TenantPartitionStore:
        store = self._stores.get(tenant_code)
        if store is None:
            raise UnknownTenant(tenant_code)
        return store

    def codes(self) -> List[str]:
        return sorted(self._stores)

    def stores(self, tenant_codes: Optional[Iterable[str]] = None) -> List[TenantPartitionStore]:
        """Stores in tenant code order, optionally restricted to some codes"""
        codes = self.codes() if tenant_codes is None else sorted(set(tenant_codes))
        return [self.get(code) for code in codes]

    def __contains__(self, tenant_code: str) -> bool:
        return tenant_code in self._stores

    def __iter__(self):
        return iter(self.stores())

    def __len__(self) -> int:
        return len(self._stores)

    @contextmanager
    def locked(self, tenant_codes: Iterable[str], timeout: Optional[float] = None) -> Iterator[None]:
        """Hold several partition locks, always taken in tenant code order"""
        with ExitStack() as stack:
            for store in self.stores(tenant_codes):
                stack.enter_context(store.locked(timeout))
            yield

    def dispose(self) -> None:
        for store in self._stores.values():
            store.dispose()


@dataclass
class FanOutResult:
    """Per-tenant results of a concurrent read plus the tenants that failed"""
    results: Dict[str, Any] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def failed_tenants(self) -> List[str]:
        return sorted(self.failures)


async def fan_out(
    stores: List[TenantPartitionStore],
    read: Callable[[TenantPartitionStore], Any],
    timeout: float,
) -> FanOutResult:
    """Run a blocking read against every store concurrently

    Each store gets its own timeout; a slow or failing store is reported in
    ``failures`` and does not hold up the others.
    """
    async def read_one(store: TenantPartitionStore):
        return await asyncio.wait_for(asyncio.to_thread(read, store), timeout)

    outcomes = await asyncio.gather(
        *(read_one(store) for store in stores),
        return_exceptions=True,
    )

    result = FanOutResult()
    for store, outcome in zip(stores, outcomes):
        if isinstance(outcome, asyncio.TimeoutError):
            logger.warning(f"Department {store.tenant_code} timed out after {timeout}s")
            result.failures[store.tenant_code] = "timeout"
        elif isinstance(outcome, BaseException):
            logger.error(f"Department {store.tenant_code} read failed: {outcome}")
            result.failures[store.tenant_code] = outcome.__class__.__name__
        else:
            result.results[store.tenant_code] = outcome
    return result
