"""
Exception types for the extraction engine.

Rule, field and pattern failures never raise; they are reported through
diagnostics and the completion state. Only generation, storage and record
decoding have exceptions.
"""


class ExtractionError(Exception):
    """Base class for extraction engine errors."""


class GenerationError(ExtractionError):
    """Ruleset generation failed before producing any usable attempt."""


class ModelTransportError(GenerationError):
    """The generative model could not be reached."""


class ModelResponseError(GenerationError):
    """The generative model answered with output that is not a usable ruleset."""


class GenerationTimeoutError(GenerationError):
    """The generation deadline elapsed before any attempt finished."""


class RulesetRecordError(ExtractionError, ValueError):
    """A persisted ruleset record could not be decoded."""


class StoreError(ExtractionError):
    """Ruleset store failure."""
