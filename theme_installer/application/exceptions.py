"""
Core business exceptions for the theme installer.

This module defines a hierarchy of custom exceptions to allow for granular
error handling and clear separation of failure domains. Every error carries
a ``status_code`` so the calling request layer can tell client errors from
server errors without inspecting types.
"""

from typing import Any, List, Optional


class ThemeInstallerError(Exception):
    """Base exception for all component-specific errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# --- Configuration Errors ---

class ConfigurationError(ThemeInstallerError):
    """Raised for errors related to application configuration."""
    pass


class StorageUnavailable(ConfigurationError):
    """Raised when the durable object storage backend is not configured."""

    def __init__(self, message: str = "Could not upload theme to S3"):
        super().__init__(message)


# --- Infrastructure Errors ---

class InfrastructureError(ThemeInstallerError):
    """Base class for errors related to external systems (network, storage)."""
    pass


class RepositoryNotFound(InfrastructureError):
    """Raised when the remote archive endpoint answers 404."""

    status_code = 400

    def __init__(
        self,
        message: str = (
            "Supplied GitHub theme does not exist or is inaccessible"
        ),
        context: Optional[str] = None,
    ):
        super().__init__(message)
        self.context = context

    def __str__(self):
        if self.context:
            return f"{self.message} ({self.context})"
        return self.message


# --- Domain/Business Logic Errors ---

class DomainError(ThemeInstallerError):
    """Base class for errors related to business logic failures."""

    status_code = 400


class InvalidReference(DomainError):
    """Raised when a remote reference is not in ``org/repo`` form."""
    pass


class LimitExceeded(DomainError):
    """Raised when a plan quota or allow-list forbids the operation."""

    status_code = 403


class PackageInvalid(DomainError):
    """Raised when an archive or its manifest fails validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class ThemeNotFound(DomainError):
    """Raised when a theme is not present in the local registry."""

    status_code = 404


class ThemeInUse(DomainError):
    """Raised when trying to delete the currently active theme."""

    status_code = 409


class ActivationAfterInstallFailed(ThemeInstallerError):
    """
    Raised when ``install(activate=True)`` registered the theme but could not
    activate it. ``outcome`` is the completed installation, so the caller
    can still dispatch its events and invalidate caches.
    """

    def __init__(self, outcome: Any, cause: Exception):
        super().__init__(
            f"Theme '{outcome.package.canonical_name}' was installed but not "
            f"activated: {cause}"
        )
        self.outcome = outcome
        self.status_code = getattr(cause, "status_code", 500)
