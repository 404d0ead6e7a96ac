import json
from typing import Any, List, Mapping, Sequence

from pydantic import BaseModel


# -----------------------------------------------------------------------------
# PARAMETER MARSHALING
# Purpose: turn a loose field bag into the positional list a CALL expects.
# -----------------------------------------------------------------------------


def _to_parameter(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, (dict, list, tuple)):
        # Compact separators keep the text identical to what JSON.stringify gives
        return json.dumps(value, separators=(",", ":"), default=str)
    return value


def marshal(data: Mapping[str, Any], order: Sequence[str]) -> List[Any]:
    """
    Order form values for a stored procedure call.

    Args:
        data: Field name -> value. Missing names become NULL.
        order: Parameter names in the procedure's positional order.

    Returns:
        One value per name in ``order``; structured values as JSON text.

    Example:
        marshal({"name": "John", "prefs": {"c": "blue"}}, ["name", "age", "prefs"])
        # ["John", None, '{"c":"blue"}']
    """
    return [_to_parameter(data.get(name)) for name in order]


class FormData:
    """Form data bound to a parameter order, read through ``values``."""

    def __init__(self, data: Mapping[str, Any], order: Sequence[str]):
        self.data = data
        self.order = list(order)

    @property
    def values(self) -> List[Any]:
        return marshal(self.data, self.order)

    def __len__(self) -> int:
        return len(self.order)
