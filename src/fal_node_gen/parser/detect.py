"""Auto-detect the documentation format and run the matching extractor.

Extractors are tried in a fixed order: strict JSON, then YAML that looks
like OpenAPI, then the Fal.ai markdown dialect. The first one that
accepts the text produces the result; outputs are never merged.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import yaml

from fal_node_gen.errors import FormatDetectionFailure

from .base import ParsedApiModel, ParseResult, RawSchema
from .markdown import parse_markdown
from .normalize import normalize
from .swagger import parse_openapi

logger = logging.getLogger(__name__)

OPENAPI_MARKERS = ("openapi", "swagger", "paths")


class Extractor(ABC):
    """One parsing strategy. ``try_extract`` returns None when not applicable."""

    format_name = ""

    @abstractmethod
    def accepts(self, text: str) -> bool:
        ...

    @abstractmethod
    def try_extract(self, text: str) -> RawSchema | None:
        ...


class StructuredExtractor(Extractor):
    """Base for extractors that deserialize the text into an object tree."""

    @abstractmethod
    def load(self, text: str) -> dict:
        """Deserialize ``text``, raising FormatDetectionFailure if it does not apply."""

    def accepts(self, text: str) -> bool:
        try:
            self.load(text)
        except FormatDetectionFailure:
            return False
        return True

    def try_extract(self, text: str) -> RawSchema | None:
        try:
            doc = self.load(text)
        except FormatDetectionFailure as e:
            logger.debug("%s extractor not applicable: %s", self.format_name, e)
            return None
        return parse_openapi(doc)


class JsonSchemaExtractor(StructuredExtractor):
    format_name = "json"

    def load(self, text: str) -> dict:
        try:
            data = json.loads(text)
        except ValueError as e:
            raise FormatDetectionFailure(f"not JSON: {e}") from e
        if not isinstance(data, dict):
            raise FormatDetectionFailure(f"top level is {type(data).__name__}, not an object")
        return data


class YamlSchemaExtractor(StructuredExtractor):
    """YAML OpenAPI documents. Plain YAML without an OpenAPI marker is ignored."""

    format_name = "yaml"

    def load(self, text: str) -> dict:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise FormatDetectionFailure("not YAML") from e
        if not isinstance(data, dict) or not any(key in data for key in OPENAPI_MARKERS):
            raise FormatDetectionFailure("no OpenAPI marker")
        return data


class MarkdownExtractor(Extractor):
    format_name = "markdown"

    def accepts(self, text: str) -> bool:
        return True

    def try_extract(self, text: str) -> RawSchema | None:
        return parse_markdown(text)


EXTRACTORS: tuple[Extractor, ...] = (
    JsonSchemaExtractor(),
    YamlSchemaExtractor(),
    MarkdownExtractor(),
)


def detect_format(text: str) -> str:
    """Detect the format of API documentation text.

    Returns: 'json', 'yaml', or 'markdown'.
    """
    for extractor in EXTRACTORS:
        if extractor.accepts(text):
            return extractor.format_name
    return MarkdownExtractor.format_name


def parse_documentation(text: str) -> ParseResult:
    """Parse API documentation text into a ParsedApiModel.

    Never raises: an unexpected fault is logged and reported through
    ``ParseResult.error`` with an empty model.
    """
    source_format = MarkdownExtractor.format_name
    try:
        for extractor in EXTRACTORS:
            source_format = extractor.format_name
            raw = extractor.try_extract(text)
            if raw is None:
                continue
            model = normalize(raw)
            logger.debug(
                "Parsed %s documentation: %d parameters, endpoint=%r",
                source_format, len(model.parameters), model.endpoint,
            )
            return ParseResult(model=model, source_format=source_format)
    except Exception as e:
        logger.exception("Unexpected error while parsing %s documentation", source_format)
        return ParseResult(source_format=source_format, error=str(e) or type(e).__name__)

    return ParseResult(model=ParsedApiModel(), source_format=source_format)


def parse_file(file_path: Path) -> ParseResult:
    """Read an API documentation file and parse it."""
    text = file_path.read_text(encoding="utf-8")
    return parse_documentation(text)
