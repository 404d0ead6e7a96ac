import logging

from fastapi import APIRouter, HTTPException, Request, status

from procsync.api.deps import invoker_dep, reconciler_dep, registry_dep
from procsync.core import schemas
from procsync.core.pipeline import chain_guards, is_authorized_user, resolve_guards
from procsync.core.procedures import StoredProcedure
from procsync.core.security import build_callable_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/procedures", tags=["Procedures"])


@router.get("")
async def list_procedures(request: Request, procedures: registry_dep):
    """Names of the procedures this service may call (authorized users only)."""
    context = build_callable_request(request, {})
    return await chain_guards(
        [is_authorized_user],
        context,
        lambda _: {"procedures": procedures.names()},
    )


@router.post("/{name}", response_model=schemas.Message)
async def call_procedure(
    name: str,
    payload: schemas.ProcedureCallRequest,
    request: Request,
    invoker: invoker_dep,
    reconciler: reconciler_dep,
    procedures: registry_dep,
):
    """
    Run the registered procedure ``name`` behind its guards and mirror the
    result to the configured backups.
    """
    if name not in procedures:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Procedure '{name}' is not registered",
        )

    definition = procedures.get(name)
    procedure = StoredProcedure(definition.spec, invoker, reconciler)

    async def handler(context: schemas.CallableRequest) -> schemas.Message:
        return await procedure.call(context.data, definition.backups)

    context = build_callable_request(request, payload.data)
    result = await chain_guards(resolve_guards(definition.guards), context, handler)

    if not result.ok:
        logger.warning(f"Procedure '{name}' failed: {result.message}")
    return result
