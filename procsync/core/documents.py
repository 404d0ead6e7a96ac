import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from procsync.core.errors import DocumentStoreError
from procsync.core.schemas import DocumentRecord, WhereClause


logger = logging.getLogger(__name__)

# Echoes the resolved document id back to callers; never persisted
RESERVED_REFERENCE_FIELD = "reference"


class DocumentStore:
    """
    Thin async wrapper over a single Firestore collection.

    Client errors are wrapped in ``DocumentStoreError`` and re-raised so the
    caller decides whether a failure matters.
    """

    def __init__(self, collection: str, client: firestore.AsyncClient):
        """
        Args:
            collection: Name of the Firestore collection to work on.
            client: Long-lived Firestore client, shared between stores.
        """
        self.db = client
        self.name = collection
        self.collection = client.collection(collection)

    async def find(self, id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document by id; None if it does not exist."""
        try:
            snapshot = await self.collection.document(id).get()
        except Exception as error:
            raise DocumentStoreError("find", error) from error
        return snapshot.to_dict() if snapshot.exists else None

    async def exists(self, id: str) -> bool:
        try:
            snapshot = await self.collection.document(id).get()
        except Exception as error:
            raise DocumentStoreError("exists", error) from error
        return snapshot.exists

    async def find_where(self, where: Sequence[WhereClause]) -> List[DocumentRecord]:
        """
        Return every document matching all clauses (logical AND).

        Args:
            where: Field/operator/value clauses, chained onto one query.

        Returns:
            Matching records in the store's native order.
        """
        query = self.collection
        for clause in where:
            query = query.where(
                filter=FieldFilter(clause.key, clause.operator.value, clause.value)
            )

        try:
            snapshots = await query.get()
        except Exception as error:
            raise DocumentStoreError("findWhere", error) from error

        return [
            DocumentRecord(id=snapshot.id, fields=snapshot.to_dict() or {})
            for snapshot in snapshots
        ]

    async def find_all(self, ids: Optional[Sequence[str]] = None) -> List[DocumentRecord]:
        """Fetch the given ids (missing ones are skipped) or the whole collection."""
        if ids is not None:
            records = []
            for id in ids:
                fields = await self.find(id)
                if fields is not None:
                    records.append(DocumentRecord(id=id, fields=fields))
            return records

        try:
            snapshots = await self.collection.get()
        except Exception as error:
            raise DocumentStoreError("findAll", error) from error
        return [
            DocumentRecord(id=snapshot.id, fields=snapshot.to_dict() or {})
            for snapshot in snapshots
        ]

    async def save(self, data: Mapping[str, Any], id: Optional[str] = None) -> str:
        """
        Create a document (no id) or replace one in full (id given).

        The ``reference`` key is dropped before writing. Returns the
        document id.
        """
        fields = {
            key: value
            for key, value in data.items()
            if key != RESERVED_REFERENCE_FIELD
        }
        try:
            if id is None:
                _, document = await self.collection.add(fields)
                logger.debug(f"Created {self.name}/{document.id}")
                return document.id
            await self.collection.document(id).set(fields)
            logger.debug(f"Replaced {self.name}/{id}")
            return id
        except Exception as error:
            raise DocumentStoreError("save", error) from error

    async def update(self, data: Mapping[str, Any], id: str) -> None:
        """Merge fields into an existing document."""
        try:
            await self.collection.document(id).update(dict(data))
        except Exception as error:
            raise DocumentStoreError("update", error) from error

    async def delete(self, id: str) -> None:
        try:
            await self.collection.document(id).delete()
        except Exception as error:
            raise DocumentStoreError("delete", error) from error

    async def add_to_array(self, items: Sequence[Any], id: Optional[str] = None) -> None:
        """
        Append items to the document's ``data`` array field.
        Creates ``{"data": items}`` when there is no such document yet.
        """
        try:
            if id is None:
                await self.collection.add({"data": list(items)})
            elif await self.exists(id):
                await self.collection.document(id).update(
                    {"data": firestore.ArrayUnion(list(items))}
                )
            else:
                await self.collection.document(id).set({"data": list(items)})
        except DocumentStoreError:
            raise
        except Exception as error:
            raise DocumentStoreError("addToArray", error) from error
