"""
Error types and message helpers for the ECR cleaner.

Every fatal condition of a cleanup run is raised as an ``ActionableError``
subclass. The message carries suggested fixes so the operator can act on it
without reading the code.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    RESOURCE = "resource"
    NETWORK = "network"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [self.message]

        if self.suggestions:
            lines.append("Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class ConfigurationError(ActionableError):
    """Invalid retention policy, CLI flag or config file value. Raised before any registry call."""

    def __init__(self, message: str, suggestions: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.CONFIGURATION, suggestions, details)


class FetchError(ActionableError):
    """Listing repositories or images failed."""


class DeleteError(ActionableError):
    """A batch delete call failed. Earlier batches stay deleted."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, category, suggestions, details)
        self.deleted_count = self.details.get("already_deleted", 0)


def _error_code(error: Exception) -> str:
    """Return the AWS error code of a botocore ClientError, or an empty string."""
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        return str(response.get("Error", {}).get("Code", ""))
    return ""


def _categorize(error: Exception) -> ErrorCategory:
    code = _error_code(error)
    text = f"{code} {error}".lower()
    if "accessdenied" in text or "not authorized" in text:
        return ErrorCategory.PERMISSION
    if "credential" in text or "expiredtoken" in text or "unrecognizedclient" in text:
        return ErrorCategory.AUTHENTICATION
    if "notfound" in text or "not found" in text:
        return ErrorCategory.RESOURCE
    if "connect" in text or "timeout" in text or "timed out" in text or "endpoint" in text:
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


def _suggestions_for(category: ErrorCategory, region: Optional[str]) -> List[str]:
    if category == ErrorCategory.AUTHENTICATION:
        return [
            "Verify AWS credentials are configured (aws configure, or AWS_PROFILE)",
            "Check whether the session token has expired",
        ]
    if category == ErrorCategory.PERMISSION:
        return [
            "Check the IAM policy allows ecr:DescribeRepositories, ecr:DescribeImages and ecr:BatchDeleteImage",
            "Verify the repository policy does not deny your principal",
        ]
    if category == ErrorCategory.RESOURCE:
        return [
            "Verify the repository name passed with --repo",
            f"Check the repository exists in region {region or 'configured for the run'}",
        ]
    if category == ErrorCategory.NETWORK:
        return [
            "Check network connectivity to the ECR endpoint",
            "Increase aws.connect_timeout / aws.read_timeout in the config file",
        ]
    return ["Re-run with --log-level DEBUG for the full request trace"]


def create_fetch_error(operation: str, error: Exception, repository: Optional[str] = None,
                       region: Optional[str] = None) -> FetchError:
    """Create actionable error for a failed repository or image listing"""
    category = _categorize(error)
    target = f" for repository {repository}" if repository else ""
    details = {"operation": operation, "error_type": type(error).__name__, "error_message": str(error)}
    if repository:
        details["repository"] = repository
    return FetchError(
        message=f"Could not {operation}{target}",
        category=category,
        suggestions=_suggestions_for(category, region),
        details=details,
    )


def create_delete_error(repository: str, batch_index: int, batch_count: int, already_deleted: int,
                        error: Exception, region: Optional[str] = None) -> DeleteError:
    """Create actionable error for a failed batch delete call"""
    category = _categorize(error)
    suggestions = _suggestions_for(category, region)
    if already_deleted:
        suggestions.append(f"{already_deleted} images were already deleted; re-running recomputes the plan")
    return DeleteError(
        message=f"Deleting images in repo {repository} failed on batch {batch_index + 1}/{batch_count}",
        category=category,
        suggestions=suggestions,
        details={
            "repository": repository,
            "already_deleted": already_deleted,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_config_error(field: str, value: Any, reason: str) -> ConfigurationError:
    """Create actionable error for configuration validation failures"""
    suggestions = [
        f"Check the '{field}' value passed on the command line or in the config file",
    ]

    if "regexp" in field.lower():
        suggestions.append("The pattern must be a valid Python regular expression (see the re module)")
    elif "action" in field.lower():
        suggestions.append("Supported values are 'delete' and 'save'")
    elif "keep" in field.lower():
        suggestions.append("keep must be an integer >= 0")

    return ConfigurationError(
        message=f"Configuration error: Invalid value for '{field}'",
        suggestions=suggestions,
        details={
            "field": field,
            "value": value,
            "reason": reason,
        },
    )
