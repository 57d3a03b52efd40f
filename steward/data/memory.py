"""
Thread-safe in-memory adapter.

Holds every table in process memory and serializes transactions with a single
re-entrant lock, which makes each transaction's compare-and-set checks and writes
one atomic step. Conditions use the same operator syntax as the MongoDB adapter.
"""
import copy
import logging
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from steward.exceptions import StaleStateError
from .base import DbAdapter, DeleteOperation, Operation, SaveOperation, audit_table_name

logger = logging.getLogger(__name__)


def _matches_operator(value: Any, operator: str, operand: Any) -> bool:
    if operator == '$in':
        return value in operand
    if operator == '$nin':
        return value not in operand
    if operator == '$ne':
        return value != operand
    if value is None:
        return False
    if operator == '$lt':
        return value < operand
    if operator == '$lte':
        return value <= operand
    if operator == '$gt':
        return value > operand
    if operator == '$gte':
        return value >= operand
    raise ValueError(f"Unsupported operator {operator}")


def matches(record: Dict[str, Any], conditions: Optional[Dict[str, Any]]) -> bool:
    """Return True when `record` satisfies every condition."""
    for key, expected in (conditions or {}).items():
        value = record.get(key)
        if isinstance(expected, dict):
            if not all(_matches_operator(value, op, operand) for op, operand in expected.items()):
                return False
        elif value != expected:
            return False
    return True


def _sort_key(value: Any):
    # None sorts first in ascending order
    return (value is not None, value)


class InMemoryAdapter(DbAdapter):
    """A DbAdapter keeping tables in memory, keyed by entity_id."""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._archive: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._lock = threading.RLock()

    def __enter__(self) -> 'InMemoryAdapter':
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        pass

    def get_many(self, table: str, conditions: Dict[str, Any] = None, sort: List[Tuple[str, int]] = None,
                 limit: int = None, offset: int = None) -> List[Dict[str, Any]]:
        with self._lock:
            if table.endswith('_audit'):
                rows = self._archive[table[:-len('_audit')]]
            else:
                rows = list(self._tables[table].values())
            result = [copy.deepcopy(row) for row in rows if matches(row, conditions)]
        for key, direction in reversed(sort or []):
            result.sort(key=lambda row: _sort_key(row.get(key)), reverse=direction < 0)
        if offset:
            result = result[offset:]
        if limit:
            result = result[:limit]
        return result

    def get_one(self, table: str, conditions: Dict[str, Any],
                sort: List[Tuple[str, int]] = None) -> Optional[Dict[str, Any]]:
        rows = self.get_many(table, conditions, sort=sort, limit=1)
        return rows[0] if rows else None

    def get_count(self, table: str, conditions: Dict[str, Any] = None) -> int:
        with self._lock:
            return sum(1 for row in self._tables[table].values() if matches(row, conditions))

    def run_transaction(self, operations_list: List[Operation]) -> List[Any]:
        with self._lock:
            # Work on copies of the touched tables; publish them only if every operation succeeds.
            working = {op.table: dict(self._tables[op.table]) for op in operations_list}
            archived: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
            results = []
            for op in operations_list:
                rows = working[op.table]
                if isinstance(op, SaveOperation):
                    results.append(self._apply_save(op, rows, archived))
                elif isinstance(op, DeleteOperation):
                    results.append(self._apply_delete(op, rows, archived))
                else:
                    raise TypeError(f"Unsupported operation {op!r}")
            for table, rows in working.items():
                self._tables[table] = rows
            for table, rows in archived.items():
                self._archive[table].extend(rows)
            return results

    @staticmethod
    def _apply_save(op: SaveOperation, rows: Dict[str, Dict[str, Any]], archived) -> Dict[str, Any]:
        current = rows.get(op.entity_id)
        current_version = current.get('version') if current else None
        if current_version != op.expected_version:
            logger.info(
                "Compare-and-set failed on %s/%s: expected version %s, found %s",
                op.table, op.entity_id, op.expected_version, current_version
            )
            raise StaleStateError()
        if current is not None:
            archived[op.table].append(current)
        rows[op.entity_id] = copy.deepcopy(op.data)
        return op.data

    @staticmethod
    def _apply_delete(op: DeleteOperation, rows: Dict[str, Dict[str, Any]], archived) -> int:
        doomed = [entity_id for entity_id, row in rows.items() if matches(row, op.conditions)]
        for entity_id in doomed:
            archived[op.table].append(rows.pop(entity_id))
        return len(doomed)

    def get_audit_records(self, table: str, entity_id: str = None) -> List[Dict[str, Any]]:
        """Archived versions of records in `table`, oldest first."""
        return self.get_many(audit_table_name(table), {'entity_id': entity_id} if entity_id else None)
