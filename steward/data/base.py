from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass
class SaveOperation:
    """
    Write `data` as the current version of the record identified by `data['entity_id']`.

    `expected_version` is the compare-and-set guard: the stored record must currently
    carry exactly this version. `None` means the record must not exist yet.
    """
    table: str
    data: Dict[str, Any]
    expected_version: Optional[str] = None

    @property
    def entity_id(self) -> str:
        return self.data['entity_id']


@dataclass
class DeleteOperation:
    """Remove every record in `table` matching `conditions`, archiving them first."""
    table: str
    conditions: Dict[str, Any] = field(default_factory=dict)


Operation = Union[SaveOperation, DeleteOperation]


def audit_table_name(table: str) -> str:
    return f"{table}_audit"


class DbAdapter(ABC):
    """Abstract base class for database adapters."""

    @abstractmethod
    def __enter__(self) -> 'DbAdapter':
        """Context manager entry point for preparing DB connection."""
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_value, traceback):
        """Context manager exit point for closing DB connection."""
        pass

    @abstractmethod
    def run_transaction(self, operations_list: List[Operation]) -> List[Any]:
        """
        Apply a list of operations atomically: either all of them take effect or none do.

        Raises StaleStateError when any SaveOperation's expected version does not match the
        stored record. Replaced and deleted records are archived in `<table>_audit`.
        """
        pass

    @abstractmethod
    def get_one(self, table: str, conditions: Dict[str, Any],
                sort: List[Tuple[str, int]] = None) -> Optional[Dict[str, Any]]:
        """Fetches a single record from the specified table based on given conditions."""
        pass

    @abstractmethod
    def get_many(self, table: str, conditions: Dict[str, Any] = None, sort: List[Tuple[str, int]] = None,
                 limit: int = None, offset: int = None) -> List[Dict[str, Any]]:
        """Fetches multiple records from the specified table based on given conditions."""
        pass

    @abstractmethod
    def get_count(self, table: str, conditions: Dict[str, Any] = None) -> int:
        """Counts the records matching the given conditions."""
        pass

    def save(self, table: str, data: Dict[str, Any], expected_version: Optional[str] = None) -> Dict[str, Any]:
        """Saves a single record under a compare-and-set guard."""
        self.run_transaction([SaveOperation(table, data, expected_version)])
        return data

    def delete(self, table: str, conditions: Dict[str, Any]) -> int:
        """Deletes the records matching the given conditions. Returns the number removed."""
        return self.run_transaction([DeleteOperation(table, conditions)])[0]
