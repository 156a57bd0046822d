"""Parameter normalizer.

Turns an extractor's raw parameter mapping into the frozen parameter
schema consumed by the node generator. Composite image-size fields are
expanded into separate ``width`` and ``height`` INT fields.
"""

import logging
import re

from pydantic import ValidationError

from .base import ParameterSpec, ParamType, ParsedApiModel, RawParameter, RawSchema

logger = logging.getLogger(__name__)

SIZE_DEFAULT = 1024
SIZE_MIN = 256
SIZE_MAX = 2048

SIZE_FIELDS = (
    ("width", "Image width in pixels"),
    ("height", "Image height in pixels"),
)

UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_]+")


def normalize_name(raw: str) -> str:
    """Make a documented parameter name identifier-safe.

    Runs of other characters become a single ``_`` and a leading digit is
    prefixed with ``_``. Returns "" when nothing usable is left.
    """
    name = UNSAFE_NAME_RE.sub("_", raw.strip())
    if not name.strip("_"):
        return ""
    if name[0].isdigit():
        name = f"_{name}"
    return name


def expand_composite(source: RawParameter) -> list[ParameterSpec]:
    """Build the width/height pair that replaces a composite size field."""
    return [
        ParameterSpec(
            name=name,
            type=ParamType.INT,
            required=source.required,
            description=description,
            default=SIZE_DEFAULT,
            min=SIZE_MIN,
            max=SIZE_MAX,
        )
        for name, description in SIZE_FIELDS
    ]


def freeze_parameter(raw: RawParameter) -> ParameterSpec:
    return ParameterSpec(**raw.model_dump(exclude={"composite"}))


def normalize_parameters(raw_params: dict[str, RawParameter]) -> dict[str, ParameterSpec]:
    """Convert raw parameters into the final ordered parameter map.

    Independently declared ``width``/``height`` fields always win over the
    synthesized ones, wherever they appear in the document.
    """
    declared = {name for name, raw in raw_params.items() if not raw.composite}
    result: dict[str, ParameterSpec] = {}

    for name, raw in raw_params.items():
        if not raw.composite:
            try:
                spec = freeze_parameter(raw)
            except ValidationError as e:
                logger.debug("Dropping parameter %r: %s", name, e)
            else:
                result[spec.name] = spec
            continue

        logger.debug("Expanding composite size field '%s' into width/height", name)
        for spec in expand_composite(raw):
            if spec.name in declared or spec.name in result:
                logger.debug("Keeping declared '%s' over synthesized field", spec.name)
                continue
            result[spec.name] = spec

    return result


def normalize(schema: RawSchema) -> ParsedApiModel:
    """Freeze a raw extraction result into a ParsedApiModel."""
    return ParsedApiModel(
        model_name=schema.model_name,
        endpoint=schema.endpoint,
        parameters=normalize_parameters(schema.parameters),
        output_type=schema.output_type,
    )
