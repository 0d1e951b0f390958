"""
JSON Schema validation for CRUD definition files.

Usage:
    from crudlex.definitions.validator import validate_definitions_file

    issues = validate_definitions_file(Path("crud.yaml"))
    for issue in issues:
        print(issue)
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

_SCHEMAS_DIR = Path(__file__).parent / "schemas"
_SCHEMA_NAME = "crud.schema.json"


@dataclass
class ValidationIssue:
    """A single validation finding for a definition file."""

    file: Path
    message: str
    path: str = ""          # Location within the document, e.g. "book/fields/title"
    severity: str = "error" # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{loc}: {self.message}"


def _load_schema() -> dict[str, Any]:
    with (_SCHEMAS_DIR / _SCHEMA_NAME).open() as fh:
        return json.load(fh)


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


def validate_definitions(doc: Any, source: Path) -> list[ValidationIssue]:
    """Validate parsed definition data against the bundled schema."""
    validator = Draft202012Validator(_load_schema())
    return [
        ValidationIssue(file=source, message=error.message, path=_json_path(error))
        for error in sorted(validator.iter_errors(doc), key=lambda e: [str(p) for p in e.path])
    ]


def validate_definitions_file(yaml_path: Path) -> list[ValidationIssue]:
    """
    Validate a definition YAML file.

    Returns:
        A list of :class:`ValidationIssue` objects (empty on success).
    """
    if not yaml_path.is_file():
        return [ValidationIssue(file=yaml_path, message="Definition file does not exist")]

    try:
        with yaml_path.open() as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        return [ValidationIssue(file=yaml_path, message=f"YAML parse error: {exc}")]

    if raw is None:
        return [
            ValidationIssue(file=yaml_path, message="File is empty or contains only whitespace")
        ]

    return validate_definitions(raw, yaml_path)
