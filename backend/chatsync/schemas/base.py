from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Entity whose stored form uses camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        """Dump to the stored representation, omitting unset optional fields."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True, **kwargs)
