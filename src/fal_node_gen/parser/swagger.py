"""OpenAPI / JSON schema extractor.

Recovers model name, endpoint and request-body parameters from an
OpenAPI-shaped document. Only the first path, and within it the first
body-carrying method (post, put, patch in that order), is examined.
"""

import json
import logging
import re

from .base import OutputType, ParamType, RawParameter, RawSchema
from .normalize import normalize_name

logger = logging.getLogger(__name__)

JSON_TYPE_MAP = {
    "string": ParamType.STRING,
    "integer": ParamType.INT,
    "number": ParamType.FLOAT,
    "boolean": ParamType.BOOLEAN,
    "array": ParamType.ARRAY,
    "object": ParamType.OBJECT,
}

BODY_METHODS = ("post", "put", "patch")

# Checked in order, first hit wins.
OUTPUT_KEYWORDS = (
    (OutputType.VIDEO, ("video", "mp4")),
    (OutputType.AUDIO, ("audio", "wav", "mp3")),
    (OutputType.IMAGE, ("image", "png", "jpg")),
)

COMPOSITE_NAME = "image_size"
LOCAL_REF_PREFIX = "#/"


def parse_openapi(doc: dict) -> RawSchema:
    """Extract a RawSchema from an OpenAPI-like document."""
    paths = _as_dict(doc.get("paths"))
    endpoint, path_item = next(iter(paths.items()), ("", {}))
    path_item = _as_dict(path_item)

    parameters: dict[str, RawParameter] = {}
    method = next((m for m in BODY_METHODS if m in path_item), None)
    if method:
        schema = _request_body_schema(doc, _as_dict(path_item[method]))
        if schema:
            parameters = extract_parameters(doc, schema)
        logger.debug("Using %s %s with %d properties", method.upper(), endpoint, len(parameters))
    elif paths:
        logger.debug("No post/put/patch operation under %s", endpoint)

    return RawSchema(
        model_name=_model_name(doc),
        endpoint=str(endpoint),
        output_type=_output_type(path_item),
        parameters=parameters,
    )


def extract_parameters(doc: dict, schema: dict) -> dict[str, RawParameter]:
    """Convert the properties of a request-body schema, skipping unusable keys."""
    required = schema.get("required")
    required_names = {r for r in required if isinstance(r, str)} if isinstance(required, list) else set()

    result = {}
    for key, prop in _as_dict(schema.get("properties")).items():
        if not isinstance(key, str):
            logger.debug("Skipping property with non-string key %r", key)
            continue
        param = convert_property(doc, key, _as_dict(prop), key in required_names)
        if param is None:
            logger.debug("Skipping property %r: no usable name", key)
            continue
        result[param.name] = param
    return result


def convert_property(doc: dict, key: str, prop: dict, required: bool = False) -> RawParameter | None:
    """Convert one JSON schema property into a RawParameter.

    Returns None when ``key`` has no identifier-safe name.
    """
    name = normalize_name(key)
    if not name:
        return None
    json_type = prop.get("type")
    param = RawParameter(
        name=name,
        source_name=key if key != name else "",
        type=JSON_TYPE_MAP.get(json_type, ParamType.STRING) if isinstance(json_type, str) else ParamType.STRING,
        required=required,
        description=str(prop.get("description") or ""),
        default=prop.get("default"),
    )

    enum = prop.get("enum")
    if isinstance(enum, list):
        param.enum = list(enum)
        param.type = ParamType.ENUM

    if json_type in ("number", "integer"):
        param.min = _number(prop.get("minimum"))
        param.max = _number(prop.get("maximum"))

    if name == COMPOSITE_NAME or _refers_to_image_size(doc, prop):
        param.type = ParamType.COMPOSITE_SIZE
        param.composite = True

    return param


def infer_output_type(response: object) -> OutputType:
    """Guess the node output type from a serialized response definition."""
    text = json.dumps(response, default=str).lower()
    for output_type, keywords in OUTPUT_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return output_type
    return OutputType.IMAGE


def _model_name(doc: dict) -> str:
    title = _as_dict(doc.get("info")).get("title")
    if not isinstance(title, str):
        return ""
    return re.sub(r"[^A-Za-z0-9]", "", title)


def _request_body_schema(doc: dict, operation: dict) -> dict:
    body = _as_dict(operation.get("requestBody"))
    content = _as_dict(body.get("content"))
    media = _as_dict(content.get("application/json"))
    return _resolve(doc, _as_dict(media.get("schema")))


def _output_type(path_item: dict) -> OutputType:
    # Only the POST response is inspected, whichever method supplied the body.
    responses = _as_dict(_as_dict(path_item.get("post")).get("responses"))
    response = responses.get("200", responses.get(200))
    if not response:
        return OutputType.IMAGE
    return infer_output_type(response)


def _resolve(doc: dict, schema: dict) -> dict:
    """Follow a local ``$ref`` (``#/components/schemas/X``) one hop."""
    ref = schema.get("$ref")
    if not isinstance(ref, str) or not ref.startswith(LOCAL_REF_PREFIX):
        return schema
    node: object = doc
    for part in ref[len(LOCAL_REF_PREFIX):].split("/"):
        node = _as_dict(node).get(part)
        if node is None:
            logger.debug("Unresolvable reference %s", ref)
            return {}
    return _as_dict(node)


def _refers_to_image_size(doc: dict, prop: dict) -> bool:
    candidates = [prop]
    for key in ("anyOf", "oneOf", "allOf"):
        options = prop.get(key)
        if isinstance(options, list):
            candidates.extend(_as_dict(option) for option in options)

    for candidate in candidates:
        ref = candidate.get("$ref")
        if not isinstance(ref, str):
            continue
        title = _resolve(doc, candidate).get("title")
        if "imagesize" in ref.lower() or (isinstance(title, str) and title.lower() == "imagesize"):
            return True
    return False


def _number(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _as_dict(value: object) -> dict:
    return value if isinstance(value, dict) else {}
