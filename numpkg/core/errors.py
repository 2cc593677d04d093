# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Custom exceptions for numpkg.

All exceptions inherit from NumpkgError for consistent error handling.
The CLI maps each error to its exit code.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence


class NumpkgError(Exception):
    """Base exception for all numpkg errors."""

    def __init__(
        self,
        message: str,
        exit_code: int = 1,
        details: Optional[dict] = None
    ):
        """
        Initialize numpkg error.

        Args:
            message: Human-readable error message
            exit_code: Process exit code used by the CLI
            details: Additional error details
        """
        self.message = message
        self.exit_code = exit_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for structured output."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "exit_code": self.exit_code,
            "details": self.details
        }


class InvalidVersion(NumpkgError):
    """Version string is not a dot-separated list of non-negative integers."""

    def __init__(self, version: str, details: Optional[dict] = None):
        super().__init__(f"Invalid version: {version!r}", exit_code=2, details=details)
        self.version = version


class CorruptRegistry(NumpkgError):
    """Persisted registry cannot be parsed."""

    def __init__(self, path: str, reason: str, details: Optional[dict] = None):
        """
        Initialize corrupt registry error.

        Args:
            path: Registry file path
            reason: What went wrong while reading it
            details: Additional error details
        """
        super().__init__(
            f"Corrupt package registry {path}: {reason}",
            exit_code=3,
            details=details
        )
        self.path = path
        self.reason = reason


class CyclicDependency(NumpkgError):
    """Dependency graph contains a cycle."""

    def __init__(self, cycle: Sequence[str], details: Optional[dict] = None):
        """
        Initialize cyclic dependency error.

        Args:
            cycle: Package names forming the cycle, first name repeated last
            details: Additional error details
        """
        self.cycle: List[str] = list(cycle)
        super().__init__(
            f"Cyclic dependency: {' -> '.join(self.cycle)}",
            exit_code=4,
            details={"cycle": self.cycle, **(details or {})}
        )


class UnresolvableRequest(CyclicDependency):
    """Packages requested together depend on each other in a cycle."""

    def __init__(self, cycle: Sequence[str], details: Optional[dict] = None):
        super().__init__(cycle, details=details)
        self.message = f"Cannot order requested packages, cycle: {' -> '.join(self.cycle)}"
        self.args = (self.message,)


class UnsatisfiedDependency(NumpkgError):
    """One or more declared dependencies are not installed or too old."""

    def __init__(self, package: str, missing: Iterable[str], details: Optional[dict] = None):
        """
        Initialize unsatisfied dependency error.

        Args:
            package: Package whose dependencies are unmet
            missing: Every unmet requirement, rendered as text
            details: Additional error details
        """
        self.package = package
        self.missing: List[str] = list(missing)
        super().__init__(
            f"Package {package} has unsatisfied dependencies: {', '.join(self.missing)}",
            exit_code=5,
            details={"package": package, "missing": self.missing, **(details or {})}
        )


class BlockedBy(NumpkgError):
    """Removal or unload would break packages that depend on the target."""

    def __init__(self, conflicts: Mapping[str, Iterable[str]], action: str = "remove"):
        """
        Initialize blocked-by error.

        Args:
            conflicts: Target name -> names of packages that depend on it
            action: Operation that was refused (remove, unload)
        """
        self.conflicts: Dict[str, List[str]] = {
            target: sorted(set(names)) for target, names in conflicts.items()
        }
        reasons = "; ".join(
            f"{target} is required by {', '.join(names)}"
            for target, names in self.conflicts.items()
        )
        super().__init__(
            f"Cannot {action} packages: {reasons}",
            exit_code=6,
            details={"conflicts": self.conflicts}
        )

    @property
    def blocking(self) -> set:
        """Every package that blocked the operation."""
        return {name for names in self.conflicts.values() for name in names}


class FetchError(NumpkgError):
    """Archive could not be downloaded or located."""

    def __init__(self, source: str, reason: str, details: Optional[dict] = None):
        super().__init__(f"Failed to fetch {source}: {reason}", exit_code=7, details=details)
        self.source = source


class BuildError(NumpkgError):
    """Package sources could not be unpacked or compiled."""

    def __init__(self, source: str, reason: str, details: Optional[dict] = None):
        super().__init__(f"Failed to build {source}: {reason}", exit_code=8, details=details)
        self.source = source


class NotFoundError(NumpkgError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str, details: Optional[dict] = None):
        """
        Initialize not found error.

        Args:
            resource: Type of resource (e.g., "Package", "Forge package")
            identifier: Resource identifier
            details: Additional error details
        """
        message = f"{resource} not found: {identifier}"
        super().__init__(message, exit_code=9, details=details)
        self.resource = resource
        self.identifier = identifier


class ValidationError(NumpkgError):
    """Validation failed."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, exit_code=2, details=details)
        self.field = field


class ConfigurationError(NumpkgError):
    """Configuration error."""

    def __init__(self, message: str, config_file: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, exit_code=2, details=details)
        self.config_file = config_file
