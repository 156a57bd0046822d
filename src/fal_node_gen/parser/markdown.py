"""Fal.ai markdown documentation parser.

Reads model pages written in the Fal.ai documentation convention. The
title, model id / endpoint and the "Input Schema" section are recognized;
each parameter in that section is a top-level bullet of the form::

    - **`seed`** (`integer`, _optional_):
      Random seed.
      Default: `42`
      Range: `0` to `1000`

Attributes are matched with small ordered rule tables so precedence
between alternative spellings stays in one place.
"""

import json
import logging
import math
import re
from typing import Callable

from fal_node_gen.errors import MalformedValueError

from .base import NUMERIC_TYPES, OutputType, ParamType, RawParameter, RawSchema
from .normalize import normalize_name

logger = logging.getLogger(__name__)

INPUT_SCHEMA_TITLE = "input schema"
COMPOSITE_NAME = "image_size"

HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.*?)[ \t#]*$")
FENCE_RE = re.compile(r"^\s*(```|~~~)")
BLOCK_START_RE = re.compile(r"^- \*\*`([^`\n]+)`\*\*")
TYPE_CLAUSE_RE = re.compile(r"\*\*`[^`\n]+`\*\*\s*\(`([^`\n]+)`,\s*_([^_\n]+)_\)")
BACKTICK_RE = re.compile(r"`([^`\n]+)`")

# Lines that open a labeled attribute rather than carrying the description.
ATTRIBUTE_LINE_RE = re.compile(r"^(?:Default(?:\s+value)?|Range|Options|Min(?:imum)?|Max(?:imum)?):", re.IGNORECASE)

DEFAULT_RE = re.compile(r"Default(?:\s+value)?:\s*`([^`\n]*)`", re.IGNORECASE)
RANGE_RE = re.compile(r"Range:\s*`(-?\d+(?:\.\d+)?)`\s*to\s*`(-?\d+(?:\.\d+)?)`", re.IGNORECASE)
MIN_RE = re.compile(r"\bMin(?:imum)?:\s*`(-?\d+(?:\.\d+)?)`", re.IGNORECASE)
MAX_RE = re.compile(r"\bMax(?:imum)?:\s*`(-?\d+(?:\.\d+)?)`", re.IGNORECASE)
OPTIONS_RE = re.compile(r"Options:[ \t]*(.+)", re.IGNORECASE)

# Fal.ai type strings, first match wins. Order matters: "ImageSize | Enum"
# is a size field, "Enum | list" is an enum.
TYPE_RULES: tuple[tuple[re.Pattern, ParamType], ...] = (
    (re.compile(r"^string$"), ParamType.STRING),
    (re.compile(r"^integer$"), ParamType.INT),
    (re.compile(r"^float$"), ParamType.FLOAT),
    (re.compile(r"^boolean$"), ParamType.BOOLEAN),
    (re.compile(r"imagesize"), ParamType.COMPOSITE_SIZE),
    (re.compile(r"enum|\|"), ParamType.ENUM),
    (re.compile(r"list|array"), ParamType.ARRAY),
)


def _endpoint_from_url(value: str) -> str:
    if "fal.run/" in value:
        return value.partition("fal.run/")[2]
    return value


# Model ID is preferred; a full endpoint URL is reduced to its model path.
ENDPOINT_RULES: tuple[tuple[re.Pattern, Callable[[str], str]], ...] = (
    (re.compile(r"\*\*Model ID\*\*:\s*`([^`\n]+)`", re.IGNORECASE), str.strip),
    (re.compile(r"\*\*Endpoint\*\*:\s*`([^`\n]+)`", re.IGNORECASE), _endpoint_from_url),
)

OUTPUT_KEYWORDS = (
    (OutputType.VIDEO, ("video", "mp4")),
    (OutputType.AUDIO, ("audio", "wav")),
)


def parse_markdown(text: str) -> RawSchema:
    """Parse a Fal.ai markdown model page into a RawSchema."""
    return RawSchema(
        model_name=extract_model_name(text),
        endpoint=extract_endpoint(text),
        output_type=infer_output_type(text),
        parameters=parse_parameters(text),
    )


def extract_model_name(text: str) -> str:
    for level, title, _ in _iter_headings(text.splitlines()):
        if level == 1:
            name = re.sub(r"[^a-zA-Z0-9\s]", "", title).strip()
            return re.sub(r"\s+", "_", name)
    return ""


def extract_endpoint(text: str) -> str:
    for pattern, handler in ENDPOINT_RULES:
        match = pattern.search(text)
        if match:
            endpoint = handler(match.group(1))
            logger.debug("Endpoint %r from pattern %s", endpoint, pattern.pattern)
            return endpoint
    return ""


def infer_output_type(text: str) -> OutputType:
    lowered = text.lower()
    for output_type, keywords in OUTPUT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return output_type
    return OutputType.IMAGE


def find_section(text: str, title: str = INPUT_SCHEMA_TITLE) -> list[str] | None:
    """Return the body lines of the first heading named ``title``.

    The body ends at the next heading of the same or a higher level.
    Returns None when no such heading exists.
    """
    lines = text.splitlines()
    start = level = None
    for heading_level, heading, index in _iter_headings(lines):
        if start is None:
            if heading.strip().lower() == title:
                start, level = index + 1, heading_level
        elif heading_level <= level:
            return lines[start:index]
    if start is None:
        return None
    return lines[start:]


def split_blocks(lines: list[str]) -> list[list[str]]:
    """Group section lines into parameter blocks, one per top-level bullet."""
    blocks: list[list[str]] = []
    for line in lines:
        if BLOCK_START_RE.match(line):
            blocks.append([line])
        elif blocks:
            blocks[-1].append(line)
    return blocks


def parse_parameters(text: str) -> dict[str, RawParameter]:
    section = find_section(text)
    if section is None:
        logger.debug("No Input Schema section found")
        return {}

    parameters: dict[str, RawParameter] = {}
    blocks = split_blocks(section)
    logger.debug("Found %d parameter blocks", len(blocks))
    for block in blocks:
        param = parse_parameter_block(block)
        if param is None:
            continue
        parameters[param.name] = param
    return parameters


def parse_parameter_block(block: list[str]) -> RawParameter | None:
    """Parse one parameter bullet and its continuation lines.

    Returns None when the block has no recoverable name. Every other
    attribute is optional and a malformed one only loses that attribute.
    """
    if not block:
        return None
    header = block[0]
    name_match = BLOCK_START_RE.match(header)
    if not name_match:
        return None

    documented = name_match.group(1).strip()
    name = normalize_name(documented)
    if not name:
        logger.debug("Skipping block with unusable name %r", documented)
        return None
    param = RawParameter(name=name, source_name=documented if documented != name else "")
    body = "\n".join(block)

    _apply_type_clause(param, header)
    param.description = _description(block[1:])
    _apply_default(param, body)
    _apply_range(param, body)
    _apply_options(param, body)

    if param.type == ParamType.COMPOSITE_SIZE or param.name == COMPOSITE_NAME:
        param.type = ParamType.COMPOSITE_SIZE
        param.composite = True

    logger.debug("Parsed parameter %s (%s, required=%s)", param.name, param.type.value, param.required)
    return param


def map_type(type_str: str) -> ParamType:
    """Map a Fal.ai documentation type string to a ParamType."""
    normalized = type_str.strip().lower()
    for pattern, param_type in TYPE_RULES:
        if pattern.search(normalized):
            return param_type
    return ParamType.STRING


def coerce_default(param: RawParameter, raw: str) -> object:
    """Convert a back-ticked default literal according to the declared type.

    Raises MalformedValueError for numeric literals that do not parse.
    """
    if param.type == ParamType.BOOLEAN:
        return raw == "true"
    if param.type == ParamType.INT:
        value = _parse_number(param.name, raw, "integer")
        return int(value)
    if param.type == ParamType.FLOAT:
        return _parse_number(param.name, raw, "float")
    if raw in ("", '""'):
        return ""
    if raw == "[]":
        return []
    if raw.startswith("{") and raw.endswith("}"):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw
    return raw


def _apply_type_clause(param: RawParameter, header: str) -> None:
    match = TYPE_CLAUSE_RE.search(header)
    if not match:
        return
    param.type = map_type(match.group(1))
    param.required = match.group(2).strip() == "required"


def _description(lines: list[str]) -> str:
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(("-", "*")):
            continue
        if ATTRIBUTE_LINE_RE.match(stripped):
            continue
        return stripped
    return ""


def _apply_default(param: RawParameter, body: str) -> None:
    match = DEFAULT_RE.search(body)
    if not match:
        return
    try:
        param.default = coerce_default(param, match.group(1))
    except MalformedValueError as e:
        logger.debug("%s; default dropped", e)
        param.default = None


def _apply_range(param: RawParameter, body: str) -> None:
    if param.type not in NUMERIC_TYPES:
        return
    match = RANGE_RE.search(body)
    if match:
        param.min, param.max = float(match.group(1)), float(match.group(2))
        return
    # Open-ended bounds, either side may be missing.
    min_match = MIN_RE.search(body)
    if min_match:
        param.min = float(min_match.group(1))
    max_match = MAX_RE.search(body)
    if max_match:
        param.max = float(max_match.group(1))


def _apply_options(param: RawParameter, body: str) -> None:
    match = OPTIONS_RE.search(body)
    if not match:
        return
    options = BACKTICK_RE.findall(match.group(1))
    if options:
        param.enum = options
        param.type = ParamType.ENUM


def _parse_number(name: str, raw: str, expected: str) -> float:
    try:
        value = float(raw.strip())
    except ValueError:
        raise MalformedValueError(name, raw, expected) from None
    if not math.isfinite(value):
        raise MalformedValueError(name, raw, expected)
    return value


def _iter_headings(lines: list[str]):
    """Yield (level, title, line_index) for headings outside code fences."""
    in_fence = False
    for index, line in enumerate(lines):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = HEADING_RE.match(line)
        if match:
            yield len(match.group(1)), match.group(2), index
