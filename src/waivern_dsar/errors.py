"""Error classes for the DSAR discovery pipeline.

This module provides:
- DsarError: Base exception class for all pipeline errors
- FatalRunError, CaseNotFoundError, DataSubjectNotFoundError: Run-fatal errors
- ConnectorError, ConnectorCollectionError, ConnectorTimeoutError: Per-source errors
- SpecValidationError: Query specification validation errors
- RulesetError, RulesetNotFoundError, InvalidPatternError: Pattern catalog errors
- PersistenceError: Sink write errors
- ConfigurationError: Invalid pipeline configuration
"""


class DsarError(Exception):
    """Base exception for all DSAR pipeline errors."""

    pass


class FatalRunError(DsarError):
    """Raised when a discovery run cannot proceed at all.

    This is the only error class that turns a whole run into FAILED.
    """

    pass


class CaseNotFoundError(FatalRunError):
    """Raised when the case does not exist or belongs to another tenant."""

    pass


class DataSubjectNotFoundError(FatalRunError):
    """Raised when the case has no data subject attached."""

    pass


class ConnectorError(DsarError):
    """Base exception for connector-related errors."""

    pass


class ConnectorCollectionError(ConnectorError):
    """Raised when a connector reports an unsuccessful collection."""

    pass


class ConnectorTimeoutError(ConnectorError):
    """Raised when a connector call exceeds its time budget."""

    pass


class SpecValidationError(DsarError):
    """Raised when a query specification fails validation for a provider."""

    pass


class RulesetError(DsarError):
    """Base exception for pattern catalog errors."""

    pass


class RulesetNotFoundError(RulesetError):
    """Raised when a pattern catalog data file cannot be found."""

    pass


class InvalidPatternError(RulesetError):
    """Raised when a pattern definition is malformed or inconsistent."""

    pass


class PersistenceError(DsarError):
    """Raised when writing to a persistence or audit sink fails."""

    pass


class ConfigurationError(DsarError):
    """Raised when pipeline configuration is invalid."""

    pass
