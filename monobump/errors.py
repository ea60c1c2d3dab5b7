"""Error types raised by monobump.

Every error carries an ``exit_code`` so the CLI can map each class to a
specific exit status instead of a generic failure.
"""

from __future__ import annotations

from collections.abc import Sequence


class MonobumpError(Exception):
    """Base class for all monobump errors."""

    exit_code = 1


class ParseError(MonobumpError, ValueError):
    """Raised for malformed version text."""

    def __init__(self, text: str, reason: str | None = None) -> None:
        self.text = text
        self.reason = reason
        message = f"invalid version {text!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConfigError(MonobumpError):
    """Raised for invalid configuration or persisted state."""


class DependencyError(MonobumpError):
    """Raised when the dependency graph violates an internal invariant.

    Attributes:
        cycle: Package names involved, when the error is about a cycle.
    """

    def __init__(self, message: str, cycle: Sequence[str] = ()) -> None:
        self.cycle = list(cycle)
        if self.cycle:
            message = f"{message}: {' -> '.join(self.cycle)}"
        super().__init__(message)


class ConsignmentError(MonobumpError):
    """Raised for an invalid consignment."""

    def __init__(self, consignment_id: str, message: str) -> None:
        self.consignment_id = consignment_id
        super().__init__(f"consignment {consignment_id}: {message}")


class NothingToReleaseError(MonobumpError):
    """Raised when a command needs pending consignments and there are none."""

    exit_code = 2

    def __init__(self, message: str = "no pending consignments found") -> None:
        super().__init__(message)


class PreReleaseError(MonobumpError):
    """Base class for recoverable pre-release stage machine conditions."""


class HighestStageError(PreReleaseError):
    """Raised when promoting a package that is already at the highest stage.

    Moving past the highest stage is a stable release, not a promotion.
    """

    exit_code = 2

    def __init__(self, package: str, stage: str) -> None:
        self.package = package
        self.stage = stage
        super().__init__(
            f"already at highest pre-release stage '{stage}' for {package} "
            "(use 'monobump version' for a stable release)"
        )


class NoPreReleaseStateError(PreReleaseError):
    """Raised when promoting without any persisted pre-release state."""

    exit_code = 3

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "no pre-release state exists (use 'monobump prerelease' first)"
        )


class ValidationFailedError(MonobumpError):
    """Raised by ``validate`` when the repository has errors.

    Attributes:
        errors: Every error message found.
    """

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"validation failed with {len(self.errors)} error(s)")
