"""Unified data models for parsed API documentation.

Both extractors (structured OpenAPI and the Fal.ai markdown dialect)
convert their input into these models for the node generator.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from fal_node_gen.errors import EmptySchemaError


class ParamType(str, Enum):
    """Input field types, named after the ComfyUI socket types they render to."""

    STRING = "STRING"
    INT = "INT"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    ENUM = "ENUM"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"
    COMPOSITE_SIZE = "COMPOSITE_SIZE"  # width x height pair, never emitted directly


NUMERIC_TYPES = frozenset({ParamType.INT, ParamType.FLOAT})


class OutputType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"


class RawParameter(BaseModel):
    """A parameter as an extractor saw it, before normalization."""

    name: str
    source_name: str = ""  # documented key, when it differs from name
    type: ParamType = ParamType.STRING
    required: bool = False
    description: str = ""
    default: Any = None
    enum: list[Any] | None = None
    min: float | None = None
    max: float | None = None
    composite: bool = False  # expand into width/height


class RawSchema(BaseModel):
    """Everything one extractor recovered from a document."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str = ""
    endpoint: str = ""
    output_type: OutputType = OutputType.IMAGE
    parameters: dict[str, RawParameter] = Field(default_factory=dict)


class ParameterSpec(BaseModel):
    """A single input field of the generated node.

    ``name`` is identifier-safe; ``source_name`` keeps the key the API
    expects when normalization changed it.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    source_name: str = ""
    type: ParamType
    required: bool = False
    description: str = ""
    default: Any = None
    enum: tuple[Any, ...] | None = None
    min: float | None = None
    max: float | None = None


class ParsedApiModel(BaseModel):
    """Top-level result of parsing one API document.

    Frozen once built. ``parameters`` is returned as a read-only mapping
    view, so consumers cannot add or drop fields after parsing.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str = ""
    endpoint: str = ""
    parameters: dict[str, ParameterSpec] = Field(default_factory=dict, validate_default=True)
    output_type: OutputType = OutputType.IMAGE

    @field_validator("parameters", mode="after")
    @classmethod
    def freeze_parameters(cls, value: dict[str, ParameterSpec]) -> MappingProxyType:
        return MappingProxyType(dict(value))

    @field_serializer("parameters")
    def dump_parameters(self, value) -> dict[str, ParameterSpec]:
        return dict(value)

    @property
    def required_fields(self) -> list[str]:
        return [name for name, spec in self.parameters.items() if spec.required]


class ParseResult(BaseModel):
    """Outcome of parse_documentation: the model plus how it was obtained."""

    model_config = ConfigDict(frozen=True)

    model: ParsedApiModel = Field(default_factory=ParsedApiModel)
    source_format: str = "markdown"  # json / yaml / markdown
    error: str | None = None  # set when an unexpected fault was caught

    @property
    def is_empty(self) -> bool:
        return not self.model.parameters

    def require_parameters(self) -> ParsedApiModel:
        """Return the model, raising EmptySchemaError if it has no parameters."""
        if self.is_empty:
            raise EmptySchemaError()
        return self.model
