import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Union

from pydantic import TypeAdapter

from procsync.core.schemas import ProcedureDefinition

logger = logging.getLogger(__name__)

_definitions = TypeAdapter(List[ProcedureDefinition])


class ProcedureRegistry:
    """Named procedure definitions that the API is allowed to call."""

    def __init__(self, definitions: Iterable[ProcedureDefinition] = ()):
        self._definitions: Dict[str, ProcedureDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: ProcedureDefinition) -> ProcedureDefinition:
        if definition.name in self._definitions:
            logger.warning(f"Replacing procedure definition '{definition.name}'")
        self._definitions[definition.name] = definition
        return definition

    def get(self, name: str) -> ProcedureDefinition:
        return self._definitions[name]

    def names(self) -> List[str]:
        return sorted(self._definitions)

    def __contains__(self, name: str) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def load_file(self, path: Union[str, Path]) -> int:
        """
        Register every definition in a JSON file (a list of definitions).

        Returns:
            Number of definitions loaded.
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        definitions = _definitions.validate_python(raw)
        for definition in definitions:
            self.register(definition)

        logger.info(f"Loaded {len(definitions)} procedure definitions from {path}")
        return len(definitions)


# Process-wide registry used by the API
registry = ProcedureRegistry()
