"""Shared pydantic base for payloads exchanged with agents and the backend."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys while exposing snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, the wire format agents and the backend use."""
        return self.model_dump(by_alias=True, mode="json")
