"""
kinerja_integrity/storage.py - Storage Sink Interface

The pipeline hands fully recovered records to a sink; it never writes
partial batches and never retries a failed write.

STRATEGY PATTERN: the service does not know HOW records are persisted.
It only calls upsert_employee() and insert_performance_scores() inside
one transaction().

Author: Kinerja Dashboard Project
License: MIT
"""

import contextlib
from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any, Dict, Iterator, List, Optional, Tuple
import logging

from .models import CompetencyScore, Employee
from .records import normalize_identity

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised by a sink when a write cannot be completed."""


# =============================================================================
# ABSTRACT SINK
# =============================================================================

class StorageSink(ABC):
    """
    Abstract persistence target for recovered employee records.

    Implementations own their deduplication and locking discipline.
    """

    @abstractmethod
    def upsert_employee(self, record: Employee) -> int:
        """
        Insert or update one employee.

        Returns:
            Storage id of the employee row
        """
        pass

    @abstractmethod
    def insert_performance_scores(self, employee_id: int, session_id: str,
                                  scores: List[CompetencyScore]) -> None:
        """Store one employee's competency scores for an upload session."""
        pass

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes; the default sink has no rollback."""
        yield


# =============================================================================
# IN-MEMORY SINK
# =============================================================================

class InMemoryStorageSink(StorageSink):
    """
    Dictionary-backed sink with snapshot rollback.

    Employees are matched by external id first, then by case-insensitive
    name, mirroring an ON CONFLICT(name) upsert.
    """

    def __init__(self):
        self.employees: Dict[int, Dict[str, Any]] = {}
        self.scores: Dict[Tuple[int, str], List[Dict[str, Any]]] = {}
        self._next_id = 1

    def _find(self, record: Employee) -> Optional[int]:
        if record.id:
            for employee_id, row in self.employees.items():
                if row.get('id') == record.id:
                    return employee_id
        key = normalize_identity(record.name)
        for employee_id, row in self.employees.items():
            if normalize_identity(row['name']) == key:
                return employee_id
        return None

    def upsert_employee(self, record: Employee) -> int:
        row = record.to_dict()
        row.pop('performance', None)
        employee_id = self._find(record)
        if employee_id is None:
            employee_id = self._next_id
            self._next_id += 1
            self.employees[employee_id] = row
        else:
            self.employees[employee_id].update(row)
        return employee_id

    def insert_performance_scores(self, employee_id: int, session_id: str,
                                  scores: List[CompetencyScore]) -> None:
        if employee_id not in self.employees:
            raise StorageError(f"Unknown employee id {employee_id}")
        self.scores[(employee_id, session_id)] = [s.to_dict() for s in scores]

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = (deepcopy(self.employees), deepcopy(self.scores), self._next_id)
        try:
            yield
        except Exception:
            self.employees, self.scores, self._next_id = snapshot
            logger.warning("Storage transaction rolled back")
            raise
