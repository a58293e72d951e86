"""Base model shared by entities, payloads and result objects.

Every model inherits from :class:`MottuBaseModel`, which provides:

* ``alias_generator=to_camel`` so JSON output uses camelCase keys
  while Python code keeps snake_case attributes.
* ``populate_by_name`` so either spelling is accepted on input.
* Immutability (``frozen=True``); updates produce new instances.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class MottuBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump with camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)
