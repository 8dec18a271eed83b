"""
Tests for the demo seed job
"""

from uniadmin.models.module import Module
from uniadmin.models.staff import Staff
from uniadmin.models.student import Student
from uniadmin.scripts.seed_demo import seed_partition


def test_seed_partition_is_idempotent(registry):
    store = registry.get("ENG")

    first = seed_partition(store)
    second = seed_partition(store)

    assert first == {"students": 3, "staff": 2, "modules": 3}
    assert second == {"students": 0, "staff": 0, "modules": 0}
    assert len(store.list(Student)) == 3
    assert len(store.list(Staff)) == 2


def test_seed_adds_one_global_module_per_department(registry):
    for store in registry:
        seed_partition(store)

    for store in registry:
        global_modules = store.list(Module, Module.is_global == True)  # noqa: E712
        assert [m.code for m in global_modules] == [f"{store.tenant_code}300"]
