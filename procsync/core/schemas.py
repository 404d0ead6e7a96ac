from typing import Optional, List, Dict, Any, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =========================
# Enums
# =========================
class Status(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class WhereOperator(str, Enum):
    """Firestore comparison operators (``WhereFilterOp``)."""

    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    ARRAY_CONTAINS = "array-contains"
    ARRAY_CONTAINS_ANY = "array-contains-any"
    IN = "in"
    NOT_IN = "not-in"


# =========================
# RESULT ENVELOPE
# =========================
class Message(BaseModel):
    """Uniform envelope returned by every public operation."""

    status: Status
    message: str
    data: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == Status.SUCCESS


# =========================
# PROCEDURES
# =========================
class ProcedureCallSpec(BaseModel):
    """
    Which procedure to call and how to order its parameters.
    Duplicate names in ``order`` are allowed; the caller owns the ambiguity.
    """

    schema_name: str = Field(alias="schema")
    procedure: str
    order: List[str] = []

    model_config = ConfigDict(frozen=True, populate_by_name=True)


# =========================
# DOCUMENT STORE
# =========================
class WhereClause(BaseModel):
    key: str
    operator: WhereOperator = WhereOperator.EQUAL
    value: Any = None


class DocumentRecord(BaseModel):
    id: str
    fields: Dict[str, Any] = {}


class BackupSpec(BaseModel):
    """
    One document-store mirror target for a procedure result.

    ``reference`` wins over ``lookup_keys``; with neither set a new
    document is always created.
    """

    collection: str
    result_label: str
    lookup_keys: Optional[List[str]] = None
    reference: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("lookup_keys", mode="before")
    @classmethod
    def single_key_to_list(cls, value: Union[str, List[str], None]):
        if isinstance(value, str):
            return [value]
        return value


class BackupOutcome(BaseModel):
    collection: str
    result_label: str
    status: Status
    message: str
    reference: Optional[str] = None
    created: bool = False


# =========================
# PIPELINE CONTEXT
# =========================
class AuthData(BaseModel):
    uid: str
    token: Dict[str, Any] = {}


class AppCheckData(BaseModel):
    app_id: str
    token: Dict[str, Any] = {}


class CallableRequest(BaseModel):
    """Caller context handed unchanged through every guard into the handler."""

    data: Dict[str, Any] = {}
    auth: Optional[AuthData] = None
    app: Optional[AppCheckData] = None


class ProcedureCallRequest(BaseModel):
    data: Dict[str, Any] = {}


# =========================
# REGISTRY
# =========================
# Names of the request guards in procsync.core.pipeline.GUARDS
GUARD_NAMES = ("app", "auth")


class ProcedureDefinition(BaseModel):
    """A named, callable procedure together with its backups and guards."""

    name: str
    spec: ProcedureCallSpec
    backups: List[BackupSpec] = []
    guards: List[str] = ["app", "auth"]

    model_config = ConfigDict(frozen=True)

    @field_validator("guards")
    @classmethod
    def known_guards(cls, value: List[str]):
        unknown = [name for name in value if name not in GUARD_NAMES]
        if unknown:
            raise ValueError(f"Unknown guards {unknown}, expected any of {list(GUARD_NAMES)}")
        return value
