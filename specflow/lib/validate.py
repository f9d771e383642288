"""
Schema validation for specflow.

Validates configuration and archive journal entries against JSON Schema.
Fails hard with clear errors when data doesn't match schema.

Schemas are held by a SchemaRegistry owned by the caller rather than a
module-level cache, so independent runs never share loaded state.
"""

import json
from pathlib import Path

import jsonschema


class ValidationError(Exception):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


def default_schemas_dir() -> Path:
    """Get path to the bundled schemas directory."""
    return Path(__file__).parent.parent / "schemas"


class SchemaRegistry:
    """Loads named schemas from a directory and caches them per instance."""

    def __init__(self, schemas_dir: Path | None = None):
        self.schemas_dir = schemas_dir or default_schemas_dir()
        self._schemas: dict[str, dict] = {}

    def register(self, schema_name: str, schema: dict) -> None:
        """Add or replace a schema without reading it from disk."""
        jsonschema.Draft7Validator.check_schema(schema)
        self._schemas[schema_name] = schema

    def get(self, schema_name: str) -> dict:
        """Load schema by name, with caching."""
        if schema_name not in self._schemas:
            schema_path = self.schemas_dir / f"{schema_name}.schema.json"
            if not schema_path.exists():
                raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
            self._schemas[schema_name] = json.loads(schema_path.read_text(encoding="utf-8"))
        return self._schemas[schema_name]

    def validate(self, data: dict, schema_name: str) -> None:
        """
        Validate data against named schema.

        Raises:
            ValidationError: If validation fails
        """
        schema = self.get(schema_name)

        try:
            jsonschema.validate(instance=data, schema=schema)
        except jsonschema.ValidationError as e:
            path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "(root)"
            raise ValidationError(schema_name, e.message, path) from None

    def validate_file(self, filepath: Path, schema_name: str) -> dict:
        """
        Load JSON file and validate against schema.

        Returns:
            Parsed and validated data

        Raises:
            ValidationError: If file invalid or doesn't match schema
        """
        if not filepath.exists():
            raise ValidationError(schema_name, f"File not found: {filepath}")

        try:
            data = json.loads(filepath.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValidationError(schema_name, f"Invalid JSON in {filepath}: {e}") from None

        self.validate(data, schema_name)
        return data

    def validate_before_write(self, data: dict, schema_name: str, filepath: Path) -> None:
        """Validate data before writing to file. Ensures we never write invalid data."""
        try:
            self.validate(data, schema_name)
        except ValidationError as e:
            raise ValidationError(
                schema_name,
                f"Refusing to write invalid data to {filepath}: {e}"
            ) from None
