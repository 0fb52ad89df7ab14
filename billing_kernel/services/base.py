"""
BaseService -- abstract base for the billing services.

Responsibility:
    Common constructor and session contract: every service receives a
    SQLAlchemy ``Session`` and persists with ``session.flush()``, never
    ``session.commit()``.  The caller (``session_scope()``, an operator
    script or the test harness) owns commit and rollback, so a multi-step
    operation such as "allocate, then total, then audit" is atomic.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for billing services.

    Guarantees:
        - Subclasses only flush; transaction boundaries belong to the caller.
    """

    def __init__(self, session: Session):
        self.session = session
