"""Exceptions raised by the audit pipeline."""


class AuditError(Exception):
    """Base class for every failure the pipeline surfaces to its caller."""


class InvalidAuditInputs(AuditError, ValueError):
    """AuditInputs rejected before the pipeline started."""

    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class NoPagesCrawled(AuditError):
    """Not a single page could be fetched."""


class AuditCancelled(AuditError):
    """The caller aborted the audit through its cancel token."""


class DiffUnavailable(AuditError):
    """A diff was requested but the baseline report cannot be loaded."""


class PerformanceUnavailable(AuditError):
    """The external performance tool is missing or failed."""
