import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from procsync.core.documents import DocumentStore
from procsync.core.errors import BackupFailure, DocumentStoreError
from procsync.core.schemas import (
    BackupOutcome,
    BackupSpec,
    Message,
    Status,
    WhereClause,
    WhereOperator,
)


# -----------------------------------------------------------------------------
# RECONCILE MODULE
# Purpose: mirror a successful procedure result into document collections,
# updating the matching document in place instead of adding a duplicate.
# The relational write stays the source of truth; backups are best effort.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


def select_record(result: Message, spec: BackupSpec) -> Dict[str, Any]:
    """
    Pick ``result.data[spec.result_label]``.
    Raises BackupFailure when the label is missing or is not a record.
    """
    data = result.data or {}
    if spec.result_label not in data:
        raise BackupFailure(
            spec.collection, f"result has no '{spec.result_label}' entry"
        )

    record = data[spec.result_label]
    if not isinstance(record, Mapping):
        raise BackupFailure(
            spec.collection, f"result entry '{spec.result_label}' is not a record"
        )
    return dict(record)


def lookup_clauses(spec: BackupSpec, record: Mapping[str, Any]) -> List[WhereClause]:
    """
    One equality clause per lookup key, valued from the record itself.
    Raises BackupFailure when the record lacks one of the keys.
    """
    clauses = []
    for key in spec.lookup_keys or []:
        if key not in record:
            raise BackupFailure(
                spec.collection, f"lookup key '{key}' missing from result entry"
            )
        clauses.append(
            WhereClause(key=key, operator=WhereOperator.EQUAL, value=record[key])
        )
    return clauses


class Reconciler:
    """Upsert-by-query of procedure results into Firestore collections."""

    def __init__(self, client):
        self.client = client

    def store(self, collection: str) -> DocumentStore:
        return DocumentStore(collection, self.client)

    async def resolve_reference(
        self, store: DocumentStore, spec: BackupSpec, record: Mapping[str, Any]
    ) -> Optional[str]:
        """
        Find the id of the document to overwrite.

        An explicit reference wins. Otherwise the first lookup match in store
        order is used, even when there are several. None means create.
        """
        if spec.reference:
            return spec.reference

        if spec.lookup_keys:
            matches = await store.find_where(lookup_clauses(spec, record))
            if matches:
                if len(matches) > 1:
                    logger.warning(
                        f"{len(matches)} documents in '{spec.collection}' match "
                        f"{spec.lookup_keys}; updating {matches[0].id}"
                    )
                return matches[0].id

        return None

    async def backup(self, result: Message, spec: BackupSpec) -> BackupOutcome:
        """Run a single backup spec. Never raises."""
        try:
            record = select_record(result, spec)
            store = self.store(spec.collection)
            target = await self.resolve_reference(store, spec, record)
            reference = await store.save(record, target)
        except BackupFailure as error:
            logger.warning(f"firestore backup skipped: {error}")
            return BackupOutcome(
                collection=spec.collection,
                result_label=spec.result_label,
                status=Status.ERROR,
                message=error.reason,
            )
        except DocumentStoreError as error:
            logger.error(f"firestore backup error: {error}")
            return BackupOutcome(
                collection=spec.collection,
                result_label=spec.result_label,
                status=Status.ERROR,
                message=str(error),
            )
        except Exception as error:
            logger.exception(f"Unexpected backup error for '{spec.collection}'")
            return BackupOutcome(
                collection=spec.collection,
                result_label=spec.result_label,
                status=Status.ERROR,
                message=str(error),
            )

        return BackupOutcome(
            collection=spec.collection,
            result_label=spec.result_label,
            status=Status.SUCCESS,
            message="Backup completed",
            reference=reference,
            created=target is None,
        )

    async def reconcile(
        self, result: Message, specs: Sequence[BackupSpec]
    ) -> List[BackupOutcome]:
        """
        Back up ``result`` to every spec concurrently.

        Only successful results are mirrored. Outcomes come back in the
        order of ``specs``; one failing spec never affects the others.
        """
        if result.status != Status.SUCCESS:
            return []

        outcomes = await asyncio.gather(*(self.backup(result, spec) for spec in specs))
        return list(outcomes)
