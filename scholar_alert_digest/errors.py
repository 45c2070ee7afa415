"""Errors raised while turning alert emails into papers."""


class DigestError(Exception):
    """Base class for every error raised by scholar_alert_digest."""


class ExtractionError(DigestError):
    """A whole message could not be turned into papers.

    The message contributes nothing to the aggregate and is counted in
    Stats.extraction_errors; the rest of the batch is still processed.
    """


class URLResolutionError(DigestError, ValueError):
    """A single Scholar redirect link could not be resolved to the paper URL."""
