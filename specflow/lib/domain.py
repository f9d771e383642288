"""
Domain splitting rule for spec files.

A spec file inside a directory belongs to that directory's domain and keeps
its own base name:

    auth/oauth.fspec.md       -> domain "auth", name "oauth"
    api/v1/users.fspec.md     -> domain "api/v1", name "users"

A file with no parent directory splits its name on the first hyphen:

    user-auth.fspec.md        -> domain "user", name "auth"
    api-v1-users.fspec.md     -> domain "api", name "v1-users"
    auth.fspec.md             -> domain "auth", name "spec"
"""

from pathlib import Path, PurePath

from .config import SpecflowConfig

DEFAULT_NAME = "spec"


def extract_domain_from_filename(filename: str, config: SpecflowConfig | None = None) -> tuple[str, str]:
    """Split a flat spec file name into (domain, name)."""
    config = config or SpecflowConfig()
    stem = config.strip_extension(PurePath(filename).name)
    domain, sep, name = stem.partition("-")
    if not domain:
        return name or DEFAULT_NAME, DEFAULT_NAME
    if not sep or not name:
        return domain, DEFAULT_NAME
    return domain, name


def split_domain(relative_path: PurePath, config: SpecflowConfig | None = None) -> tuple[tuple[str, ...], str]:
    """Return (domain path parts, name) for a path relative to a specs root."""
    config = config or SpecflowConfig()
    parts = PurePath(relative_path).parts
    if len(parts) > 1:
        return tuple(parts[:-1]), config.strip_extension(parts[-1])
    domain, name = extract_domain_from_filename(parts[0], config)
    return (domain,), name


def extract_domain(spec_path: Path, specs_root: Path, config: SpecflowConfig | None = None) -> str:
    """Domain of a spec file below specs_root, as a slash-joined string."""
    parts, _ = split_domain(Path(spec_path).relative_to(specs_root), config)
    return "/".join(parts)


def canonical_target(
    spec_path: Path,
    specs_root: Path,
    canonical_root: Path,
    config: SpecflowConfig | None = None,
) -> Path:
    """Canonical document path for a spec file: <canonical_root>/<domain>/<name><ext>."""
    config = config or SpecflowConfig()
    parts, name = split_domain(Path(spec_path).relative_to(specs_root), config)
    return canonical_root.joinpath(*parts) / f"{name}{config.canonical_extension}"
