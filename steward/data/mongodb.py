from typing import Any, Dict, List, Optional, Tuple
from pymongo import MongoClient, ASCENDING, errors
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo.client_session import ClientSession
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from steward.exceptions import StaleStateError
from .base import DbAdapter, DeleteOperation, Operation, SaveOperation, audit_table_name


class MongoDBAdapter(DbAdapter):
    """
    MongoDB adapter backing the steward repositories:
      - Retryable writes and majority write concern
      - Multi-document transactions on a causal-consistency session
      - Compare-and-set on the `version` field of each record
    """

    def __init__(
        self,
        mongo_uri: str,
        mongo_database: str,
        **client_options: Any
    ):
        options = {
            'retryWrites': True,
            'w': 'majority',
            'serverSelectionTimeoutMS': 5000,
            'connectTimeoutMS': 5000,
            'maxPoolSize': 100,
            'tz_aware': True,
        }
        options.update(client_options)
        self.client: MongoClient = MongoClient(mongo_uri, **options)
        self.db_name: str = mongo_database
        self.db: Database = None
        self._session: Optional[ClientSession] = None

    def __enter__(self) -> 'MongoDBAdapter':
        """
        Verify the connection with a ping, select the database and start a session.

        Raises:
            ConnectionError: If the ping command fails.
        """
        try:
            self.client.admin.command('ping')
        except errors.PyMongoError as e:
            raise ConnectionError(f"MongoDB ping failed: {e}") from e

        self.db = self.client.get_database(self.db_name)
        self._session = self.client.start_session(causal_consistency=True)
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        # The MongoClient is long-lived; only the session is scoped to the context.
        if self._session:
            self._session.end_session()
            self._session = None

    def _get_collection(self, name: str, write: bool = False) -> Collection:
        rc = ReadConcern('majority')
        if write:
            return self.db.get_collection(name, read_concern=rc, write_concern=WriteConcern('majority'))
        return self.db.get_collection(name, read_concern=rc)

    def ensure_indexes(self, tables: List[str]) -> None:
        """Create the unique entity_id index each table relies on for insert-only saves."""
        for table in tables:
            try:
                self._get_collection(table, write=True).create_index(
                    [('entity_id', ASCENDING)], name='entity_id_unique', unique=True)
            except errors.PyMongoError as e:
                raise RuntimeError(f"ensure_indexes failed: {e}") from e

    @staticmethod
    def _strip_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if doc is not None:
            doc.pop('_id', None)
        return doc

    def get_one(
        self,
        table: str,
        conditions: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Retrieve a single document matching `conditions`.

        Raises:
            RuntimeError: If the query fails due to a PyMongoError.
        """
        try:
            coll = self._get_collection(table)
            kwargs: Dict[str, Any] = {'session': self._session}
            if sort is not None:
                kwargs['sort'] = sort
            return self._strip_id(coll.find_one(conditions, **kwargs))
        except errors.PyMongoError as e:
            raise RuntimeError(f"get_one failed: {e}") from e

    def get_many(
        self,
        table: str,
        conditions: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Retrieve the documents matching `conditions`, optionally sorted and paginated.

        Raises:
            RuntimeError: If the query fails due to a PyMongoError.
        """
        try:
            coll = self._get_collection(table)
            cursor = coll.find(conditions or {}, session=self._session)
            if sort:
                cursor = cursor.sort(sort)
            if offset is not None and offset > 0:
                cursor = cursor.skip(offset)
            if limit is not None and limit > 0:
                cursor = cursor.limit(limit)
            return [self._strip_id(doc) for doc in cursor]
        except errors.PyMongoError as e:
            raise RuntimeError(f"get_many failed: {e}") from e

    def get_count(self, table: str, conditions: Dict[str, Any] = None) -> int:
        try:
            return self._get_collection(table).count_documents(conditions or {}, session=self._session)
        except errors.PyMongoError as e:
            raise RuntimeError(f"get_count failed: {e}") from e

    def _archive(self, table: str, doc: Dict[str, Any]) -> None:
        audit = self._get_collection(audit_table_name(table), write=True)
        doc = dict(doc)
        doc.pop('_id', None)
        audit.insert_one(doc, session=self._session)

    def _apply_save(self, op: SaveOperation) -> Dict[str, Any]:
        coll = self._get_collection(op.table, write=True)
        doc = dict(op.data)
        if op.expected_version is None:
            try:
                coll.insert_one(doc, session=self._session)
            except errors.DuplicateKeyError as e:
                raise StaleStateError() from e
            return op.data

        previous = coll.find_one_and_replace(
            {'entity_id': op.entity_id, 'version': op.expected_version},
            doc,
            session=self._session
        )
        if previous is None:
            raise StaleStateError()
        self._archive(op.table, previous)
        return op.data

    def _apply_delete(self, op: DeleteOperation) -> int:
        coll = self._get_collection(op.table, write=True)
        docs = list(coll.find(op.conditions, session=self._session))
        for doc in docs:
            self._archive(op.table, doc)
        if not docs:
            return 0
        result = coll.delete_many({'_id': {'$in': [doc['_id'] for doc in docs]}}, session=self._session)
        return result.deleted_count

    def run_transaction(self, operations_list: List[Operation]) -> List[Any]:
        """
        Execute the operations inside one MongoDB transaction.

        A StaleStateError raised by any compare-and-set aborts the whole transaction.

        Raises:
            RuntimeError: If the session is not started, or on a PyMongoError.
        """
        if not self._session:
            raise RuntimeError("Session not started")
        results = []
        try:
            with self._session.start_transaction():
                for op in operations_list:
                    if isinstance(op, SaveOperation):
                        results.append(self._apply_save(op))
                    elif isinstance(op, DeleteOperation):
                        results.append(self._apply_delete(op))
                    else:
                        raise TypeError(f"Unsupported operation {op!r}")
        except errors.PyMongoError as e:
            raise RuntimeError(f"run_transaction failed: {e}") from e
        return results
