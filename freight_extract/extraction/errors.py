"""Exception types raised by the extraction engine.

Only structural problems surface as exceptions. Bad individual rules, provider
outages, unknown document types and rejected candidates are all handled inside
the engine and reported through logging and result metadata instead.
"""


class FreightExtractionError(Exception):
    """Base class for extraction engine errors."""


class PatternLibraryError(FreightExtractionError):
    """A rule file is missing or its top-level structure is unusable."""


class ConfigProviderError(FreightExtractionError):
    """The extraction rules store could not answer a lookup."""
