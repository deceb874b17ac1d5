"""
errors.py — Exception taxonomy for the matcher.

ConfigurationError aborts a run; ServiceLookupError is recovered locally as
"no match"; PersistenceError aborts a run rather than losing a decision.
"""


class MatcherError(Exception):
    """Base class for all matcher errors."""


class ConfigurationError(MatcherError):
    """Missing or invalid credentials/settings. Fatal for the whole run."""


class ServiceLookupError(MatcherError):
    """An external service was unreachable or returned an error."""


class PersistenceError(MatcherError):
    """A store read or write failed."""


class RecordValidationError(MatcherError):
    """A stored row does not have the shape of a release record."""


class RunInProgressError(MatcherError):
    """An engine run was requested while another one is still going."""


class InvalidActionError(MatcherError):
    """An explicit status action is not allowed from the current status."""
