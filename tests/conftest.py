import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from procsync.api.deps import get_invoker, get_reconciler, get_registry
from procsync.core.procedures import ProcedureInvoker
from procsync.core.reconcile import Reconciler
from procsync.core.registry import ProcedureRegistry
from procsync.core.schemas import BackupSpec, ProcedureCallSpec, ProcedureDefinition
from procsync.core.security import create_access_token
from procsync.main import app
from fakes import FakeEngine, FakeFirestore


# =========================
# Fixtures
# =========================
@pytest.fixture
def firestore_client():
    return FakeFirestore()


@pytest.fixture
def engine():
    return FakeEngine(
        procedures={("app", "create_user")},
        rows=[
            {
                "f_return_value": {
                    "status": "success",
                    "message": "User created",
                    "data": {"user": {"email": "a@b.com", "name": "Ada"}},
                }
            }
        ],
    )


@pytest.fixture
def invoker(engine):
    return ProcedureInvoker(engine)


@pytest.fixture
def reconciler(firestore_client):
    return Reconciler(firestore_client)


@pytest.fixture
def registry():
    return ProcedureRegistry(
        [
            ProcedureDefinition(
                name="create_user",
                spec=ProcedureCallSpec(
                    schema="app", procedure="create_user", order=["name", "email"]
                ),
                backups=[
                    BackupSpec(collection="users", result_label="user", lookup_keys="email")
                ],
            ),
            ProcedureDefinition(
                name="ghost",
                spec=ProcedureCallSpec(schema="sch", procedure="ghost"),
                guards=["auth"],
            ),
        ]
    )


# Client
@pytest_asyncio.fixture(scope="function")
async def client(invoker, reconciler, registry):
    app.dependency_overrides[get_invoker] = lambda: invoker
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    app.dependency_overrides[get_registry] = lambda: registry

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# Token for user
@pytest.fixture
def auth_headers_user():
    token = create_access_token({"sub": "user-1"})
    return {"Authorization": f"Bearer {token}"}


# Token for a verified app
@pytest.fixture
def app_check_headers():
    token = create_access_token({"app_id": "1:1234:web:abcd"})
    return {"X-Firebase-AppCheck": token}


@pytest.fixture
def verified_headers(auth_headers_user, app_check_headers):
    return {**auth_headers_user, **app_check_headers}
