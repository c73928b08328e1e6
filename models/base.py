"""Base model with camelCase serialization for client-facing payloads."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for every model sent to the chat client — serializes as camelCase.

    ``populate_by_name`` keeps snake_case construction working in Python code
    and for structured LLM output.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
