#!/usr/bin/env python3
"""
JSON schema validation for the pipeline project's configuration.

Checks the ``pipeline`` block of cdk.json and every IAM policy file under
cdk_pipeline/configs/iam/policies. Meant to run as a pre-commit hook or as
an early CI step, before ``cdk synth``.
"""

import json
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

from jsonschema import Draft202012Validator

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Schema to config mappings; "file#/a/b" validates only the value at that path
SCHEMA_MAPPINGS = {
    "schema/context.schema.json": ["cdk.json#/context/pipeline"],
    "schema/policy.schema.json": ["cdk_pipeline/configs/iam/policies/*.json"],
}


def load_json(path: Path) -> Any:
    """Load and parse a JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to load {path}: {e}") from e


def select(data: Any, pointer: Optional[str]) -> Any:
    """Walk a ``/a/b`` pointer into loaded JSON; missing keys yield an empty object."""
    if not pointer:
        return data
    for key in pointer.strip("/").split("/"):
        data = data.get(key, {}) if isinstance(data, dict) else {}
    return data


def expand_targets(root: Path, patterns: Iterable[str]) -> list[tuple[Path, Optional[str]]]:
    """Resolve mapping entries into (file, pointer) pairs, expanding globs."""
    targets = []
    for pattern in patterns:
        file_part, _, pointer = pattern.partition("#")
        if any(ch in file_part for ch in "*?["):
            matches = sorted(root.glob(file_part))
            if not matches:
                targets.append((root / file_part, None))
            targets.extend((m, pointer or None) for m in matches)
        else:
            targets.append((root / file_part, pointer or None))
    return targets


def validate_files_against_schema(
        schema_path: Path,
        targets: list[tuple[Path, Optional[str]]]
    ) -> bool:
    """Validate a list of config targets against a schema."""
    try:
        schema = load_json(schema_path)
        validator = Draft202012Validator(schema)
    except ValueError as e:
        print(f"[X] Schema {schema_path}: {e}")
        return False

    all_valid = True
    for config_file, pointer in targets:
        label = f"{config_file}#{pointer}" if pointer else str(config_file)
        if not config_file.exists():
            print(f"[X] {label}: File not found")
            all_valid = False
            continue

        try:
            data = select(load_json(config_file), pointer)
        except ValueError as e:
            print(f"[X] {label}: {e}")
            all_valid = False
            continue

        errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
        if errors:
            all_valid = False
            print(f"[X] {label}: {len(errors)} error(s)")
            for error in errors:
                path = "/".join(map(str, error.path)) or "(root)"
                print(f"  - {path}: {error.message}")
        else:
            print(f"[OK] {label}: OK")

    return all_valid


def validate_all(root: Path = PROJECT_ROOT) -> bool:
    all_valid = True
    for schema_file, patterns in SCHEMA_MAPPINGS.items():
        print(f"Validating against {schema_file}:")
        if not validate_files_against_schema(root / schema_file, expand_targets(root, patterns)):
            all_valid = False
        print()
    return all_valid


def main() -> int:
    print("Validating JSON configuration files against schemas...")
    print()
    if validate_all():
        print("All configuration files are valid! [OK]")
        return 0
    print("Some configuration files have validation errors! [X]")
    return 1


if __name__ == "__main__":
    sys.exit(main())
