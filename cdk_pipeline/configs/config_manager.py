"""
JSON configuration shipped with the package.

Configuration files live next to this module, grouped by kind. Strings in them
may reference ``${Var}`` placeholders that are filled from
``PipelineCfg.vars()`` when the file is read.
"""

from __future__ import annotations
import json
import re
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from cdk_pipeline.configs.error_handler import ConfigurationError, ErrorHandler

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_]+)\}")

CONFIG_ROOT = Path(__file__).resolve().parent

# kind -> directory under CONFIG_ROOT
CONFIG_KINDS = {
    "policies": "iam/policies",
}


def expand(obj: Any, variables: Mapping[str, str]) -> Any:
    """
    Fill ``${Var}`` placeholders in every string of a JSON value.

    Unknown placeholders are kept verbatim so a later pass (or CloudFormation)
    can still see them.
    """
    if isinstance(obj, str):
        return _PLACEHOLDER.sub(lambda m: str(variables.get(m.group(1), m.group(0))), obj)
    if isinstance(obj, list):
        return [expand(item, variables) for item in obj]
    if isinstance(obj, dict):
        return {key: expand(value, variables) for key, value in obj.items()}
    return obj


class ConfigManager:
    """
    Reads package configuration files for one set of placeholder variables.

    Attributes:
        variables: Placeholder values used when rendering files
        root: Directory holding the configuration kinds
    """

    def __init__(self, variables: Mapping[str, str], root: Optional[Path] = None):
        self.variables = dict(variables)
        self.root = root or CONFIG_ROOT

    def path(self, kind: str, filename: Optional[str] = None) -> Path:
        """
        Locate a configuration directory, or a file inside it.

        Raises:
            ConfigurationError: If ``kind`` is not a known configuration kind
        """
        try:
            directory = self.root / CONFIG_KINDS[kind]
        except KeyError:
            raise ConfigurationError(f"Unknown config type: {kind}") from None
        return directory / filename if filename else directory

    def render(self, obj: Any) -> Any:
        return expand(obj, self.variables)

    def read(self, file_path: Path | str, render: bool = True) -> Any:
        """
        Parse a JSON file.

        Args:
            file_path: File to read
            render: Whether to fill placeholders

        Returns:
            Parsed (and rendered) JSON value

        Raises:
            ConfigurationError: If the file is missing or not valid JSON
        """
        ErrorHandler.validate_file_exists(file_path, "Config file")
        try:
            data = json.loads(Path(file_path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Config file {file_path} is not valid JSON: {exc}") from exc
        return self.render(data) if render else data

    def load(self, kind: str, filename: str, render: bool = True) -> Any:
        return self.read(self.path(kind, filename), render)

    def files(self, kind: str, exclude: Iterable[str] = ()) -> List[Path]:
        """Sorted JSON files of a kind, minus the excluded file names."""
        directory = self.path(kind)
        if not directory.is_dir():
            raise ConfigurationError(f"Config directory not found: {directory}")
        skipped = set(exclude)
        return [p for p in sorted(directory.glob("*.json")) if p.name not in skipped]
