"""
Composite identity codec

Local IDs are only unique inside one department partition. Anything that
crosses a partition boundary (selection state, request payloads, workflow
records, report rows) carries a composite identity instead:

    "<tenant_code>:<local_id>"

The separator is part of the wire contract and never changes. Tenant codes
may not contain it, local IDs may (parsing splits on the first separator).
Every construction and parse of these tokens goes through this module.
"""

from dataclasses import dataclass
from typing import Union

from uniadmin.core.errors import MalformedIdentity

SEPARATOR = ":"

LocalID = Union[str, int]


def validate_tenant_code(tenant: str) -> str:
    """Return the tenant code unchanged, or raise MalformedIdentity"""
    if not isinstance(tenant, str) or not tenant:
        raise MalformedIdentity("Tenant code must be a non-empty string")
    if SEPARATOR in tenant:
        raise MalformedIdentity(
            f"Tenant code {tenant!r} must not contain the separator {SEPARATOR!r}"
        )
    return tenant


@dataclass(frozen=True)
class CompositeIdentity:
    """A (tenant, local id) pair, immutable and safe to share by copy"""

    tenant: str
    local: str

    def __post_init__(self):
        validate_tenant_code(self.tenant)
        if not isinstance(self.local, str) or not self.local:
            raise MalformedIdentity("Local id must be a non-empty string")

    @property
    def token(self) -> str:
        return self.tenant + SEPARATOR + self.local

    def local_int(self) -> int:
        """Local id as an integer primary key; ValueError if it is not one"""
        local = self.local
        if not (local.isascii() and local.isdigit() and str(int(local)) == local):
            raise ValueError(f"Local id {self.local!r} is not an integer key")
        return int(local)

    def __str__(self) -> str:
        return self.token


def identity_of(tenant: str, local: LocalID) -> CompositeIdentity:
    """Build an identity from a tenant code and a local id (int or str)"""
    if isinstance(local, bool):
        raise MalformedIdentity("Local id must be a string or integer")
    if isinstance(local, int):
        local = str(local)
    return CompositeIdentity(tenant=tenant, local=local)


def serialize(tenant: str, local: LocalID) -> str:
    """Encode a (tenant, local) pair into its token"""
    return identity_of(tenant, local).token


def parse(token: str) -> CompositeIdentity:
    """Decode a token; strict inverse of serialize"""
    if not isinstance(token, str):
        raise MalformedIdentity("Identity token must be a string")

    tenant, separator, local = token.partition(SEPARATOR)
    if not separator:
        raise MalformedIdentity(f"Identity token {token!r} has no separator")
    if not tenant or not local:
        raise MalformedIdentity(f"Identity token {token!r} has an empty segment")

    return CompositeIdentity(tenant=tenant, local=local)


def coerce_identity(value: Union[str, CompositeIdentity]) -> CompositeIdentity:
    """Accept either a token or an identity"""
    if isinstance(value, CompositeIdentity):
        return value
    return parse(value)
