"""
Parameter schema compiler.

Turns the pydantic model a handler declares for its static options into the
JSON Schema published as the descriptor's ``params``.
"""

from typing import Any, Dict, Optional, Type

from pydantic import BaseModel

from shared.errors import ConfigurationError

JSON_SCHEMA_DIALECT = "https://json-schema.org/draft/2020-12/schema"


def params_schema(model: Optional[Type[BaseModel]]) -> Optional[Dict[str, Any]]:
    """Compile a parameter model to JSON Schema (``None`` when absent)."""
    if model is None:
        return None

    if not (isinstance(model, type) and issubclass(model, BaseModel)):
        raise ConfigurationError(
            "Handler params must be a pydantic model class",
            {"params": repr(model)}
        )

    schema = model.model_json_schema()
    return {"$schema": JSON_SCHEMA_DIALECT, **schema}
