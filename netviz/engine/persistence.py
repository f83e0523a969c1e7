"""Saving and loading graph documents as JSON files.

Security:
    Path validation is performed to prevent path traversal attacks.
    All paths are resolved to absolute paths and validated.
"""

from __future__ import annotations

from pathlib import Path

from netviz.models import SavedGraph


def _validate_path(path: str, base_dir: Path | None = None) -> Path:
    """Validate and resolve a file path.

    Args:
        path: The path to validate
        base_dir: Optional base directory that the path must be within

    Returns:
        Resolved absolute Path

    Raises:
        ValueError: If path is invalid or attempts path traversal
    """
    # Check for null bytes before any path operations (common attack vector)
    if "\x00" in path:
        raise ValueError(f"Invalid path (contains null bytes): {path!r}")

    resolved = Path(path).resolve()

    if base_dir is not None:
        base_resolved = base_dir.resolve()
        try:
            resolved.relative_to(base_resolved)
        except ValueError:
            raise ValueError(
                f"Path traversal detected: {path} is outside base directory {base_dir}"
            )

    return resolved


def save_document(document: SavedGraph, path: str, base_dir: Path | None = None) -> Path:
    """Write a saved graph to ``path`` as indented JSON.

    Raises:
        ValueError: If path is invalid
    """
    validated_path = _validate_path(path, base_dir)
    validated_path.parent.mkdir(parents=True, exist_ok=True)
    validated_path.write_text(document.model_dump_json(indent=2), encoding="utf-8")
    return validated_path


def load_document(path: str, base_dir: Path | None = None) -> SavedGraph:
    """Read and validate a saved graph.

    Raises:
        ValueError: If path is invalid
        FileNotFoundError: If file does not exist
        pydantic.ValidationError: If the file is not a valid graph document
    """
    validated_path = _validate_path(path, base_dir)
    return SavedGraph.model_validate_json(validated_path.read_text(encoding="utf-8"))
