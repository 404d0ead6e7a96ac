from typing import Annotated

from fastapi import Depends

from procsync.core.config import settings
from procsync.core.database import engine
from procsync.core.firestore import get_firestore
from procsync.core.procedures import ProcedureInvoker
from procsync.core.reconcile import Reconciler
from procsync.core.registry import ProcedureRegistry, registry


# These are the "Bridges" that give routes access to postgres and firestore.
# Tests swap them through app.dependency_overrides.
def get_invoker() -> ProcedureInvoker:
    return ProcedureInvoker(
        engine,
        return_field=settings.PROCEDURE_RETURN_FIELD,
        verify_exists=settings.VERIFY_PROCEDURES,
    )


def get_reconciler() -> Reconciler:
    return Reconciler(get_firestore())


def get_registry() -> ProcedureRegistry:
    return registry


invoker_dep = Annotated[ProcedureInvoker, Depends(get_invoker)]
reconciler_dep = Annotated[Reconciler, Depends(get_reconciler)]
registry_dep = Annotated[ProcedureRegistry, Depends(get_registry)]
