"""
Partition-local lookups shared by the services
"""

from sqlmodel import Session

from uniadmin.core.errors import ModuleNotFound, StudentNotFound
from uniadmin.core.identity import CompositeIdentity
from uniadmin.models.module import Module
from uniadmin.models.student import Student


def load_active_student(session: Session, identity: CompositeIdentity) -> Student:
    """Student row for an identity homed in the session's partition"""
    try:
        student = session.get(Student, identity.local_int())
    except ValueError:
        student = None
    if student is None or not student.is_active:
        raise StudentNotFound(f"Student {identity} not found")
    return student


def load_active_module(session: Session, identity: CompositeIdentity) -> Module:
    """Module row for an identity homed in the session's partition"""
    try:
        module = session.get(Module, identity.local_int())
    except ValueError:
        module = None
    if module is None or not module.is_active:
        raise ModuleNotFound(f"Module {identity} not found or not active")
    return module
