import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from procsync.core.errors import ExecutionError, ProcedureNotFound
from procsync.core.marshal import marshal
from procsync.core.schemas import (
    BackupSpec,
    Message,
    ProcedureCallSpec,
    Status,
)


# -----------------------------------------------------------------------------
# PROCEDURES MODULE
# Purpose: run a schema-qualified stored procedure with positional parameters
# and wrap whatever it returns in the uniform Message envelope.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")

PROCEDURE_EXISTS = text(
    """
    SELECT EXISTS (
        SELECT 1 FROM pg_proc p
        JOIN pg_namespace n ON p.pronamespace = n.oid
        WHERE n.nspname = :schema AND p.proname = :name
    ) AS exists
    """
)


def build_call(schema: str, name: str, arity: int) -> str:
    """Render ``CALL "schema"."name"(:p1, ..., :pN)``."""
    placeholders = ", ".join(f":p{position}" for position in range(1, arity + 1))
    return f'CALL "{schema}"."{name}"({placeholders})'


def decode_json(value: str) -> Any:
    """Decode JSON object or array text; any other text is returned unchanged."""
    try:
        decoded = json.loads(value)
    except ValueError:
        return value
    return decoded if isinstance(decoded, (dict, list)) else value


class ProcedureInvoker:
    """
    Executes stored procedures through an injected engine.

    The engine is expected to hand out a fresh connection per ``connect()``
    (see ``create_procedure_engine``); each call takes one and releases it on
    every exit path.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        return_field: str = "f_return_value",
        verify_exists: bool = True,
    ):
        self.engine = engine
        self.return_field = return_field
        self.verify_exists = verify_exists

    async def procedure_exists(self, schema: str, name: str) -> bool:
        """Look the procedure up in ``pg_proc``; False if the lookup itself fails."""
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    PROCEDURE_EXISTS, {"schema": schema, "name": name}
                )
                return bool(result.scalar())
        except Exception as e:
            logger.error(f"Error checking procedure existence: {e}")
            return False

    async def invoke(
        self, schema: str, name: str, parameters: Sequence[Any] = ()
    ) -> Message:
        """
        Call ``schema.name`` with already marshaled parameters.

        Never raises: a missing procedure or a failed call comes back as an
        error Message with the underlying detail in ``message``.
        """
        try:
            value = await self._execute(schema, name, list(parameters))
        except ProcedureNotFound as e:
            logger.warning(str(e))
            return Message(status=Status.ERROR, message=str(e))
        except ExecutionError as e:
            return Message(status=Status.ERROR, message=str(e))

        return self._to_message(value)

    async def _execute(self, schema: str, name: str, parameters: List[Any]) -> Any:
        if not (IDENTIFIER.match(schema) and IDENTIFIER.match(name)):
            raise ExecutionError(
                f"Unable to execute transaction: invalid procedure name {schema}.{name}"
            )

        if self.verify_exists and not await self.procedure_exists(schema, name):
            raise ProcedureNotFound(schema, name)

        statement = text(build_call(schema, name, len(parameters)))
        binds = {f"p{position}": value for position, value in enumerate(parameters, 1)}

        try:
            async with self.engine.connect() as conn:
                conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                result = await conn.execute(statement, binds)
                row = result.mappings().first() if result.returns_rows else None
        except Exception as e:
            logger.info(f"query parameter: {parameters}")
            logger.error(f"Error executing stored method: {e}")
            raise ExecutionError(f"Unable to execute transaction: {e}") from e

        logger.info(f"Stored procedure {schema}.{name} executed successfully")
        if row is None:
            return None
        return row.get(self.return_field)

    def _to_message(self, value: Any) -> Message:
        # asyncpg hands json/jsonb OUT values back as text
        if isinstance(value, str):
            value = decode_json(value)

        if isinstance(value, Mapping) and "status" in value and "message" in value:
            return self._envelope(value)

        if value is None:
            data = None
        elif isinstance(value, Mapping):
            data = dict(value)
        else:
            data = {"value": value}

        return Message(
            status=Status.SUCCESS,
            message="Stored procedure executed successfully",
            data=data,
        )

    def _envelope(self, value: Mapping[str, Any]) -> Message:
        """
        Read an envelope the procedure built itself.
        Only an explicit "success" status is ever reported as success.
        """
        status = value.get("status")
        message = str(value.get("message"))
        data = value.get("data")
        if data is not None and not isinstance(data, Mapping):
            data = {"value": data}
        elif data is not None:
            data = dict(data)

        if status == Status.SUCCESS.value:
            return Message(status=Status.SUCCESS, message=message, data=data)
        if status == Status.ERROR.value:
            return Message(status=Status.ERROR, message=message, data=data)

        logger.error(f"Unexpected procedure result status: {status!r}")
        return Message(status=Status.ERROR, message="Unexpected procedure result")


class StoredProcedure:
    """
    One configured procedure: marshal form data, call it, then mirror the
    result into the document store when backups are requested.
    """

    def __init__(
        self,
        spec: ProcedureCallSpec,
        invoker: ProcedureInvoker,
        reconciler=None,
        result_model: Optional[Type[BaseModel]] = None,
    ):
        self.spec = spec
        self.invoker = invoker
        self.reconciler = reconciler
        self.result_model = result_model

    async def call(
        self, form_data: Mapping[str, Any], backups: Sequence[BackupSpec] = ()
    ) -> Message:
        try:
            parameters = marshal(form_data, self.spec.order)
            result = await self.invoker.invoke(
                self.spec.schema_name, self.spec.procedure, parameters
            )

            if not result.ok:
                return result

            if self.result_model is not None:
                result = self._validate(result)
                if not result.ok:
                    return result

            if backups:
                if self.reconciler is None:
                    logger.warning(
                        f"Backups requested for {self.spec.procedure} but no reconciler is configured"
                    )
                    return result
                result = await self._backup(result, backups)

            return result
        except Exception as error:
            logger.error(f"pg call error: {error}")
            return Message(status=Status.ERROR, message="Unable to complete process")

    def _validate(self, result: Message) -> Message:
        try:
            payload = self.result_model.model_validate(result.data or {})
        except ValidationError as e:
            logger.error(
                f"Unexpected result from {self.spec.schema_name}.{self.spec.procedure}: {e}"
            )
            return Message(
                status=Status.ERROR,
                message=f"Unexpected result from {self.spec.schema_name}.{self.spec.procedure}",
            )
        return result.model_copy(update={"data": payload.model_dump(mode="json")})

    async def _backup(self, result: Message, backups: Sequence[BackupSpec]) -> Message:
        outcomes = await self.reconciler.reconcile(result, backups)

        data: Dict[str, Any] = dict(result.data or {})
        data["backups"] = [outcome.model_dump(mode="json") for outcome in outcomes]
        if len(outcomes) == 1:
            data = {"reference": outcomes[0].reference, **data}

        return result.model_copy(update={"data": data})
