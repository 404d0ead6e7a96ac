import pytest
from pydantic import BaseModel

from procsync.core.procedures import ProcedureInvoker, StoredProcedure, build_call
from procsync.core.schemas import BackupSpec, ProcedureCallSpec, Status
from fakes import FakeEngine


def test_build_call_one_placeholder_per_parameter():
    assert build_call("app", "create_user", 3) == 'CALL "app"."create_user"(:p1, :p2, :p3)'
    assert build_call("app", "ping", 0) == 'CALL "app"."ping"()'


@pytest.mark.asyncio
async def test_invoke_passes_parameters_in_order(invoker, engine):
    result = await invoker.invoke("app", "create_user", ["Ada", None, '{"a":1}'])

    assert result.status == Status.SUCCESS
    assert result.message == "User created"
    assert result.data == {"user": {"email": "a@b.com", "name": "Ada"}}

    sql, params, options = engine.calls[0]
    assert sql == 'CALL "app"."create_user"(:p1, :p2, :p3)'
    assert params == {"p1": "Ada", "p2": None, "p3": '{"a":1}'}
    assert options["isolation_level"] == "AUTOCOMMIT"


@pytest.mark.asyncio
async def test_invoke_missing_procedure_returns_error_without_calling():
    engine = FakeEngine(procedures=set())
    invoker = ProcedureInvoker(engine)

    result = await invoker.invoke("sch", "ghost", [])

    assert result.status == Status.ERROR
    assert "does not exist" in result.message
    assert "sch.ghost" in result.message
    assert engine.calls == []


@pytest.mark.asyncio
async def test_failed_catalog_lookup_counts_as_missing():
    engine = FakeEngine(procedures={("app", "create_user")})
    engine.catalog_error = ConnectionError("catalog unavailable")
    invoker = ProcedureInvoker(engine)

    result = await invoker.invoke("app", "create_user", [])

    assert result.status == Status.ERROR
    assert "does not exist" in result.message
    assert engine.calls == []


@pytest.mark.asyncio
async def test_execution_failure_carries_detail_and_releases_connection():
    engine = FakeEngine(procedures={("app", "create_user")})
    engine.call_error = RuntimeError("duplicate key value violates unique constraint")
    invoker = ProcedureInvoker(engine)

    result = await invoker.invoke("app", "create_user", ["Ada"])

    assert result.status == Status.ERROR
    assert result.message.startswith("Unable to execute transaction: ")
    assert "duplicate key" in result.message
    assert len(engine.calls) == 1
    assert engine.opened == engine.closed == 2


@pytest.mark.asyncio
async def test_each_call_gets_its_own_connection(invoker, engine):
    await invoker.invoke("app", "create_user", [])
    await invoker.invoke("app", "create_user", [])

    # catalog lookup + call, twice, all released
    assert engine.opened == 4
    assert engine.closed == 4


@pytest.mark.asyncio
async def test_no_row_is_success_without_data():
    engine = FakeEngine(procedures={("app", "touch")}, rows=[])
    result = await ProcedureInvoker(engine).invoke("app", "touch", [])

    assert result.status == Status.SUCCESS
    assert result.data is None


@pytest.mark.asyncio
async def test_missing_return_field_is_success_without_data():
    engine = FakeEngine(procedures={("app", "touch")}, rows=[{"other": 1}])
    result = await ProcedureInvoker(engine).invoke("app", "touch", [])

    assert result.status == Status.SUCCESS
    assert result.data is None


@pytest.mark.asyncio
async def test_json_text_return_value_is_decoded():
    engine = FakeEngine(
        procedures={("app", "get_user")},
        rows=[{"f_return_value": '{"user": {"id": 7}}'}],
    )
    result = await ProcedureInvoker(engine).invoke("app", "get_user", [7])

    assert result.status == Status.SUCCESS
    assert result.data == {"user": {"id": 7}}


@pytest.mark.asyncio
async def test_error_envelope_from_procedure_is_kept():
    engine = FakeEngine(
        procedures={("app", "pay")},
        rows=[{"f_return_value": {"status": "error", "message": "Insufficient funds"}}],
    )
    result = await ProcedureInvoker(engine).invoke("app", "pay", [])

    assert result.status == Status.ERROR
    assert result.message == "Insufficient funds"


@pytest.mark.asyncio
async def test_scalar_return_value_is_wrapped():
    engine = FakeEngine(procedures={("app", "count")}, rows=[{"f_return_value": 42}])
    result = await ProcedureInvoker(engine).invoke("app", "count", [])

    assert result.data == {"value": 42}


@pytest.mark.asyncio
async def test_custom_return_field_and_skipped_verification():
    engine = FakeEngine(procedures=set(), rows=[{"out_result": {"ok": True}}])
    invoker = ProcedureInvoker(engine, return_field="out_result", verify_exists=False)

    result = await invoker.invoke("app", "unchecked", [])

    assert result.status == Status.SUCCESS
    assert result.data == {"ok": True}
    assert engine.opened == 1


@pytest.mark.asyncio
async def test_invalid_identifier_is_rejected(invoker, engine):
    result = await invoker.invoke("app", 'x"; DROP TABLE users; --', [])

    assert result.status == Status.ERROR
    assert engine.calls == []


# =========================
# StoredProcedure
# =========================
CREATE_USER = ProcedureCallSpec(schema="app", procedure="create_user", order=["name", "email"])


@pytest.mark.asyncio
async def test_call_marshals_form_data(invoker, engine):
    procedure = StoredProcedure(CREATE_USER, invoker)

    result = await procedure.call({"email": "a@b.com", "name": "Ada", "ignored": 1})

    assert result.status == Status.SUCCESS
    assert engine.calls[0][1] == {"p1": "Ada", "p2": "a@b.com"}


@pytest.mark.asyncio
async def test_call_with_single_backup_echoes_reference(invoker, reconciler, firestore_client):
    procedure = StoredProcedure(CREATE_USER, invoker, reconciler)
    backup = BackupSpec(collection="users", result_label="user", lookup_keys="email")

    result = await procedure.call({"name": "Ada", "email": "a@b.com"}, [backup])

    assert result.status == Status.SUCCESS
    reference = result.data["reference"]
    assert firestore_client.collection("users").docs[reference] == {
        "email": "a@b.com",
        "name": "Ada",
    }
    assert result.data["backups"][0]["status"] == "success"
    assert result.data["user"]["email"] == "a@b.com"


@pytest.mark.asyncio
async def test_call_with_several_backups_lists_outcomes(invoker, reconciler):
    procedure = StoredProcedure(CREATE_USER, invoker, reconciler)
    backups = [
        BackupSpec(collection="users", result_label="user"),
        BackupSpec(collection="audit", result_label="user"),
    ]

    result = await procedure.call({"name": "Ada"}, backups)

    assert "reference" not in result.data
    assert [b["collection"] for b in result.data["backups"]] == ["users", "audit"]


@pytest.mark.asyncio
async def test_backup_failure_keeps_success(invoker, reconciler, firestore_client):
    firestore_client.collection("users").error = RuntimeError("firestore down")
    procedure = StoredProcedure(CREATE_USER, invoker, reconciler)

    result = await procedure.call(
        {"name": "Ada"}, [BackupSpec(collection="users", result_label="user")]
    )

    assert result.status == Status.SUCCESS
    assert result.data["reference"] is None
    assert result.data["backups"][0]["status"] == "error"


@pytest.mark.asyncio
async def test_failed_procedure_skips_backups(reconciler, firestore_client):
    engine = FakeEngine(procedures=set())
    procedure = StoredProcedure(CREATE_USER, ProcedureInvoker(engine), reconciler)

    result = await procedure.call(
        {"name": "Ada"}, [BackupSpec(collection="users", result_label="user")]
    )

    assert result.status == Status.ERROR
    assert firestore_client.operations == []


@pytest.mark.asyncio
async def test_result_model_validates_payload(invoker):
    class User(BaseModel):
        email: str
        name: str

    class CreateUserResult(BaseModel):
        user: User

    procedure = StoredProcedure(CREATE_USER, invoker, result_model=CreateUserResult)
    result = await procedure.call({"name": "Ada"})

    assert result.status == Status.SUCCESS
    assert result.data == {"user": {"email": "a@b.com", "name": "Ada"}}


@pytest.mark.asyncio
async def test_result_model_mismatch_is_an_error(invoker):
    class Order(BaseModel):
        order_id: int

    procedure = StoredProcedure(CREATE_USER, invoker, result_model=Order)
    result = await procedure.call({"name": "Ada"})

    assert result.status == Status.ERROR
    assert "Unexpected result" in result.message


@pytest.mark.asyncio
async def test_unexpected_error_becomes_envelope(invoker):
    class Broken:
        async def reconcile(self, result, specs):
            raise RuntimeError("boom")

    procedure = StoredProcedure(CREATE_USER, invoker, Broken())
    result = await procedure.call(
        {"name": "Ada"}, [BackupSpec(collection="users", result_label="user")]
    )

    assert result.status == Status.ERROR
    assert result.message == "Unable to complete process"


@pytest.mark.asyncio
async def test_error_envelope_with_list_data_stays_an_error():
    engine = FakeEngine(
        procedures={("app", "create_user")},
        rows=[{"f_return_value": {"status": "error", "message": "dup email", "data": [1]}}],
    )
    result = await ProcedureInvoker(engine).invoke("app", "create_user", [])

    assert result.status == Status.ERROR
    assert result.message == "dup email"
    assert result.data == {"value": [1]}


@pytest.mark.asyncio
async def test_envelope_with_unknown_status_is_an_error():
    engine = FakeEngine(
        procedures={("app", "pay")},
        rows=[{"f_return_value": '{"status": "pending", "message": "queued"}'}],
    )
    result = await ProcedureInvoker(engine).invoke("app", "pay", [])

    assert result.status == Status.ERROR
    assert result.message == "Unexpected procedure result"
    assert result.data is None


@pytest.mark.asyncio
async def test_success_envelope_with_scalar_data_is_wrapped():
    engine = FakeEngine(
        procedures={("app", "count")},
        rows=[{"f_return_value": {"status": "success", "message": "Counted", "data": 3}}],
    )
    result = await ProcedureInvoker(engine).invoke("app", "count", [])

    assert result.status == Status.SUCCESS
    assert result.message == "Counted"
    assert result.data == {"value": 3}


@pytest.mark.asyncio
async def test_error_envelope_is_not_mirrored(reconciler, firestore_client):
    engine = FakeEngine(
        procedures={("app", "create_user")},
        rows=[{"f_return_value": {"status": "error", "message": "dup email", "data": [1]}}],
    )
    procedure = StoredProcedure(
        ProcedureCallSpec(schema="app", procedure="create_user"),
        ProcedureInvoker(engine),
        reconciler,
    )
    result = await procedure.call(
        {}, [BackupSpec(collection="users", result_label="user")]
    )

    assert result.status == Status.ERROR
    assert firestore_client.operations == []


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["42", "true", "null", "plain text"])
async def test_non_record_text_is_kept_as_text(text):
    engine = FakeEngine(procedures={("app", "echo")}, rows=[{"f_return_value": text}])
    result = await ProcedureInvoker(engine).invoke("app", "echo", [])

    assert result.status == Status.SUCCESS
    assert result.data == {"value": text}
