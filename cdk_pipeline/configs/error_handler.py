"""
Centralized error handling for the CDK pipeline project.

This module defines the error taxonomy shared by the declarative stack and the
imperative setup tooling, and a set of static validators that raise the
taxonomy member appropriate to the calling layer. Every error is fatal: callers
are expected to fix configuration and rerun the whole sequence.
"""

from __future__ import annotations
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Type, Union


class PipelineError(Exception):
    """Base class for every error raised by this project."""


class ConfigurationError(PipelineError, ValueError):
    """Missing or malformed input, detected before any external call."""


class ValidationError(PipelineError, ValueError):
    """Structurally invalid topology request (e.g. empty repository coordinate)."""


class TopologyError(PipelineError, ValueError):
    """Conflicting export names or a stage-ordering violation."""


class TrustSetupError(PipelineError, RuntimeError):
    """Identity-provider or role API failure."""


class ParameterWriteError(PipelineError, RuntimeError):
    """Parameter store write failure."""


class BootstrapError(PipelineError, RuntimeError):
    """CDK toolkit bootstrap failure in one of the accounts."""


ErrorType = Type[PipelineError]


class ErrorHandler:
    """
    Validation helpers used across the project.

    Each validator accepts the error class to raise so that the configuration
    layer raises ``ConfigurationError`` while the topology builder raises
    ``ValidationError`` for the same kind of check.
    """

    @staticmethod
    def validate_file_exists(
            file_path: Union[str, Path],
            file_type: str = "File",
            error: ErrorType = ConfigurationError
        ) -> None:
        """
        Validate that a file exists.

        Args:
            file_path: File path to validate
            file_type: Type description for error messages
            error: Error class to raise

        Raises:
            ConfigurationError: If file does not exist (or ``error``)
        """
        if not Path(file_path).is_file():
            raise error(f"{file_type} not found: {file_path}")

    @staticmethod
    def validate_required_fields(
            data: Dict[str, Any],
            required_fields: List[str],
            context: str = "Configuration",
            error: ErrorType = ConfigurationError
        ) -> None:
        """
        Validate that all required fields are present in a dictionary.

        Args:
            data: Dictionary to validate
            required_fields: List of field names that must be present
            context: Context description for error messages
            error: Error class to raise

        Raises:
            ConfigurationError: If any required fields are missing (or ``error``)
        """
        missing_fields = [field for field in required_fields if field not in data]
        if missing_fields:
            raise error(f"{context} missing required fields: {', '.join(missing_fields)}")

    @staticmethod
    def validate_type(
            value: Any,
            expected_type: Union[type, tuple],
            field_name: str,
            context: str = "Configuration",
            error: ErrorType = ConfigurationError
        ) -> None:
        """
        Validate that a value is of the expected type.

        Args:
            value: Value to validate
            expected_type: Expected type class (or tuple of classes)
            field_name: Name of the field being validated
            context: Context description for error messages
            error: Error class to raise
        """
        if not isinstance(value, expected_type):
            names = (
                " or ".join(t.__name__ for t in expected_type)
                if isinstance(expected_type, tuple) else expected_type.__name__
            )
            raise error(
                f"{context} field '{field_name}' must be of type {names}, got {type(value).__name__}"
            )

    @staticmethod
    def validate_not_empty(
            value: Any,
            field_name: str,
            context: str = "Configuration",
            error: ErrorType = ConfigurationError
        ) -> None:
        """
        Validate that a value is not empty (None, empty string, empty list, etc.).

        Args:
            value: Value to validate
            field_name: Name of the field being validated
            context: Context description for error messages
            error: Error class to raise
        """
        if value is None or value == "" or (isinstance(value, (list, dict, tuple)) and len(value) == 0):
            raise error(f"{context} field '{field_name}' cannot be empty")

    @staticmethod
    def validate_string_not_empty(
            value: Any,
            field_name: str,
            context: str = "Configuration",
            error: ErrorType = ConfigurationError
        ) -> None:
        """
        Validate that a value is a non-empty string.

        Args:
            value: Value to validate
            field_name: Name of the field being validated
            context: Context description for error messages
            error: Error class to raise
        """
        if not isinstance(value, str) or value.strip() == "":
            raise error(f"{context} field '{field_name}' must be a non-empty string")

    @staticmethod
    def validate_pattern(
            value: str,
            pattern: Union[str, "re.Pattern[str]"],
            field_name: str,
            context: str = "Configuration",
            description: str = "",
            error: ErrorType = ConfigurationError
        ) -> None:
        """
        Validate that a string fully matches a regular expression.

        Args:
            value: Value to validate
            pattern: Regular expression (string or compiled)
            field_name: Name of the field being validated
            context: Context description for error messages
            description: Human readable description of the expected format
            error: Error class to raise
        """
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        if not isinstance(value, str) or not compiled.fullmatch(value):
            expected = description or f"pattern {compiled.pattern}"
            raise error(f"{context} field '{field_name}' must match {expected}, got '{value}'")

    @staticmethod
    def validate_distinct(
            values: Dict[str, Any],
            context: str = "Configuration",
            error: ErrorType = ConfigurationError
        ) -> None:
        """
        Validate that the values of a mapping are pairwise distinct.

        Args:
            values: Mapping of field name to value
            context: Context description for error messages
            error: Error class to raise
        """
        seen: Dict[Any, str] = {}
        for name, value in values.items():
            if value in seen:
                raise error(f"{context} fields '{seen[value]}' and '{name}' must differ, both are '{value}'")
            seen[value] = name

    @staticmethod
    def validate_context_keys(
            missing_keys: Iterable[str],
            context: str = "Configuration",
            error: ErrorType = ConfigurationError
        ) -> None:
        """
        Validate that required context keys are present.

        Args:
            missing_keys: Missing key names
            context: Context description for error messages
            error: Error class to raise

        Raises:
            ConfigurationError: If any required keys are missing (or ``error``)
        """
        missing_keys = list(missing_keys)
        if missing_keys:
            raise error(f"Missing required context keys in {context}: {', '.join(missing_keys)}")
