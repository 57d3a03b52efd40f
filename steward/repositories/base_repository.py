"""
base repository for steward
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from steward.data.base import DbAdapter, DeleteOperation, Operation, SaveOperation
from steward.messaging.base import MessageAdapter
from steward.models.versioned_model import VersionedModel


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_normalize(v) for v in value]
    return value


class BaseRepository:
    """
    BaseRepository class

    Saves are optimistic: a record is written only if the store still holds the version
    the instance was loaded with. After a failed save the instance carries an unsaved
    version bump and must be refetched.
    """

    def __init__(
        self,
        adapter: DbAdapter,
        model: Type[VersionedModel],
        message_adapter: Optional[MessageAdapter] = None,
        queue_name: str = 'placeholder',
        user_id: Optional[str] = None
    ):
        self.adapter = adapter
        self.message_adapter = message_adapter
        self.queue_name = queue_name
        self.model = model
        self.table_name = model.__name__.lower()
        self.user_id = user_id

    def _execute_within_context(self, func, *args, **kwargs):
        """Utility method to execute adapter methods within the context manager."""
        with self.adapter:
            return func(*args, **kwargs)

    def get_one(
        self,
        conditions: Dict[str, Any],
        sort: List[Tuple[str, int]] = None
    ) -> Optional[VersionedModel]:
        """
        Fetches a single record matching the given conditions.

        :param conditions: filter conditions
        :param sort: sort order as (field, 1|-1) pairs
        :return: a VersionedModel instance if found, None otherwise
        """
        data = self._execute_within_context(
            self.adapter.get_one, self.table_name, _normalize(conditions), sort=sort)
        if not data:
            return None
        return self.model.from_dict(data)

    def get_many(
        self,
        conditions: Dict[str, Any] = None,
        sort: List[Tuple[str, int]] = None,
        limit: int = None,
        offset: int = None
    ) -> List[VersionedModel]:
        """
        Fetches the records matching the given conditions.

        :param conditions: filter conditions
        :param sort: sort order as (field, 1|-1) pairs
        :param limit: maximum number of records to return
        :param offset: number of records to skip before returning results
        :return: list of VersionedModel instances
        """
        records = self._execute_within_context(
            self.adapter.get_many,
            self.table_name,
            _normalize(conditions) if conditions else None,
            sort=sort,
            limit=limit,
            offset=offset
        )
        return [self.model.from_dict(record) for record in records]

    def get_count(self, conditions: Dict[str, Any] = None) -> int:
        return self._execute_within_context(
            self.adapter.get_count, self.table_name, _normalize(conditions) if conditions else None)

    def get_by_id(self, entity_id: str) -> Optional[VersionedModel]:
        return self.get_one({'entity_id': entity_id})

    def stage_save(self, instance: VersionedModel, changed_by_id: Optional[str] = None) -> SaveOperation:
        """
        Prepare `instance` for saving and return the guarded write, without executing it.

        The guard expects the version the instance currently carries, or absence for an
        instance that was never saved.
        """
        expected_version = instance.version if instance.is_saved else None
        instance.prepare_for_save(changed_by_id=changed_by_id or self.user_id)
        return SaveOperation(self.table_name, instance.as_dict(), expected_version)

    def stage_delete(self, conditions: Dict[str, Any]) -> DeleteOperation:
        return DeleteOperation(self.table_name, _normalize(conditions))

    def commit(self, *operations: Operation) -> List[Any]:
        """Apply operations, possibly staged by several repositories, as one transaction."""
        return self._execute_within_context(self.adapter.run_transaction, list(operations))

    def save(
        self,
        instance: VersionedModel,
        send_message: bool = False,
        changed_by_id: Optional[str] = None
    ) -> VersionedModel:
        """
        Saves a VersionedModel instance to the database.

        :param instance: The VersionedModel instance to save.
        :param send_message: Whether to send a message to the message queue after saving. Defaults to False.
        :param changed_by_id: The user making the change, overriding the repository's user_id.
        :return: The saved VersionedModel instance.
        :raises StaleStateError: if the stored record changed since the instance was loaded.
        """
        self.commit(self.stage_save(instance, changed_by_id=changed_by_id))
        if send_message and self.message_adapter is not None:
            self.message_adapter.send_message(
                self.queue_name, instance.as_dict(convert_datetime_to_iso_string=True))
        return instance

    def delete(self, instance: VersionedModel) -> VersionedModel:
        """
        Logically deletes a VersionedModel instance by setting its active flag to False.
        """
        instance.active = False
        return self.save(instance)
