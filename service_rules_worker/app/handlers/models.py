"""
Handler definitions and the descriptors published for them.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from ..schema.compiler import params_schema
from ..schema.template import SchemaInputs, render_schema

ActionCallback = Callable[[Any, Dict[str, Any]], Awaitable[None]]
SchemaDeclaration = Union[Mapping[str, Any], Callable[[SchemaInputs], Mapping[str, Any]]]


class Descriptor(BaseModel):
    """Static description of an action or condition, as published."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    service: str
    type: str
    description: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    input_schema: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    pointers: Optional[Dict[str, bool]] = None

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DescribedHandler:
    """Builds the published descriptor of a handler definition."""

    name: str
    service: str
    type: str
    description: str
    params: Optional[Type[BaseModel]]
    schema: Optional[SchemaDeclaration]

    def describe(self) -> Descriptor:
        input_schema = None
        pointers = None
        if self.schema is not None:
            template = self.schema(SchemaInputs()) if callable(self.schema) else self.schema
            rendered = render_schema(template)
            input_schema = rendered.schema
            pointers = dict(rendered.pointers)

        return Descriptor(
            name=self.name,
            service=self.service,
            type=self.type,
            description=self.description,
            params=params_schema(self.params),
            input_schema=input_schema,
            pointers=pointers
        )


@dataclass
class Action(DescribedHandler):
    """An action this service implements."""
    name: str
    service: str
    type: str
    description: str
    callback: ActionCallback
    params: Optional[Type[BaseModel]] = None
    schema: Optional[SchemaDeclaration] = None


@dataclass
class Condition(DescribedHandler):
    """A condition this service implements."""
    name: str
    service: str
    type: str
    description: str
    params: Optional[Type[BaseModel]] = None
    schema: Optional[SchemaDeclaration] = None
    callback: Optional[ActionCallback] = None
