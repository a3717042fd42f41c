"""Base model for request/response bodies exchanged with the portal UI."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Largest value a BIGSERIAL key can hold
MAX_ROW_ID = 2**63 - 1


class CamelModel(BaseModel):
    """Serializes with camelCase keys and accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(CamelModel):
    """Plain acknowledgement."""

    message: str
