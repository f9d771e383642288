"""
Layout configuration for specflow.

Loads specflow.yaml from the spec root to override directory and file names.
If no config file exists, returns defaults matching the standard layout:

    <root>/
        specs/<domain>/<name>.fspec.md     canonical documents
        changes/<proposal>/proposal.md     in-flight proposals
        changes/<proposal>/specs/...       delta documents
        archive/<proposal>/                archived proposals
        .journal/<proposal>.json           pending archive steps
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from .validate import SchemaRegistry

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "specflow.yaml"


@dataclass
class SpecflowConfig:
    """Directory and file naming for a spec root."""
    specs_dir: str = "specs"
    changes_dir: str = "changes"
    archive_dir: str = "archive"
    journal_dir: str = ".journal"
    proposal_file: str = "proposal.md"  # Narrative document of a proposal
    tasks_file: str = "tasks.md"
    spec_extensions: list[str] = field(default_factory=lambda: [".fspec.md", ".spec.md"])
    canonical_extension: str = ".fspec.md"
    # Migrator: flat source tree and nested destination, relative to the project dir
    migration_source_dir: str = "specs"
    migration_target_dir: str = "openspec"

    def specs_root(self, root_dir: Path) -> Path:
        return root_dir / self.specs_dir

    def changes_root(self, root_dir: Path) -> Path:
        return root_dir / self.changes_dir

    def archive_root(self, root_dir: Path) -> Path:
        return root_dir / self.archive_dir

    def journal_root(self, root_dir: Path) -> Path:
        return root_dir / self.journal_dir

    def is_spec_file(self, path: Path) -> bool:
        """True if the file name carries one of the spec extensions."""
        return any(path.name.endswith(ext) for ext in self.spec_extensions)

    def strip_extension(self, filename: str) -> str:
        """Drop the longest matching spec extension (or a plain .md)."""
        for ext in sorted(self.spec_extensions, key=len, reverse=True):
            if filename.endswith(ext):
                return filename[: -len(ext)]
        if filename.endswith(".md"):
            return filename[:-3]
        return filename


def load_config(root_dir: Optional[Path], registry: SchemaRegistry | None = None) -> SpecflowConfig:
    """Load specflow.yaml and return SpecflowConfig.

    If root_dir is None or file doesn't exist, returns defaults.
    Malformed YAML logs a warning and returns defaults; a file that parses
    but violates the schema raises ValidationError.
    """
    if root_dir is None:
        return SpecflowConfig()

    config_path = root_dir / CONFIG_FILENAME
    if not config_path.exists():
        return SpecflowConfig()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return SpecflowConfig()

    if not data:
        return SpecflowConfig()

    registry = registry or SchemaRegistry()
    registry.validate(data, "config")

    known = {f.name for f in fields(SpecflowConfig)}
    return SpecflowConfig(**{k: v for k, v in data.items() if k in known})
