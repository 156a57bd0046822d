"""Exception hierarchy for documentation parsing and node generation."""


class FalNodeGenError(Exception):
    """Base class for all errors raised by fal-node-gen."""


class FormatDetectionFailure(FalNodeGenError):
    """The input text is not structured data (JSON / YAML OpenAPI).

    Never escapes the disambiguator: it is the normal trigger for the
    markdown fallback.
    """


class EmptySchemaError(FalNodeGenError):
    """Extraction succeeded but produced zero parameters."""

    def __init__(self, message: str = "No parameters found in documentation. Please check the format."):
        super().__init__(message)


class MalformedValueError(FalNodeGenError):
    """A default or range token could not be coerced to its declared type."""

    def __init__(self, name: str, raw: str, expected: str):
        self.name = name
        self.raw = raw
        self.expected = expected
        super().__init__(f"Cannot coerce {raw!r} to {expected} for parameter '{name}'")


class GenerationError(FalNodeGenError):
    """The node emitter was given an unusable selection or configuration."""
