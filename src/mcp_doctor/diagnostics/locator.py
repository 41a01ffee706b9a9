"""Locates declaration files on disk and loads them as documents."""

import logging
from collections.abc import Iterable
from pathlib import Path

from mcp_doctor.models.descriptor import DeclarationDocument, DocumentShape

logger = logging.getLogger(__name__)

USER_FILE_NAME = ".claude.json"
PROJECT_FILE_NAME = ".mcp.json"
PLUGIN_CACHE = Path(".claude") / "plugins" / "cache"


def find_declaration_files(
    project_dir: str | Path | None = None,
    home_dir: str | Path | None = None,
) -> list[Path]:
    """Find declaration files in their conventional locations.

    Order: the user file, the project file, then plugin-provided files.
    """
    home = Path(home_dir) if home_dir else Path.home()
    project = Path(project_dir) if project_dir else Path.cwd()

    found: list[Path] = []

    user_file = home / USER_FILE_NAME
    if user_file.is_file():
        found.append(user_file)

    project_file = project / PROJECT_FILE_NAME
    if project_file.is_file():
        found.append(project_file)

    plugin_cache = home / PLUGIN_CACHE
    if plugin_cache.is_dir():
        found.extend(_walk_for(plugin_cache, PROJECT_FILE_NAME))

    return found


def _walk_for(root: Path, file_name: str) -> list[Path]:
    matches: list[Path] = []
    try:
        entries = sorted(root.iterdir())
    except OSError as e:
        logger.warning(f"Cannot read {root}: {e}")
        return matches
    for entry in entries:
        if entry.is_dir():
            matches.extend(_walk_for(entry, file_name))
        elif entry.name == file_name:
            matches.append(entry)
    return matches


def shape_for(path: Path) -> DocumentShape:
    """User files carry per-project override sections."""
    return DocumentShape.USER if path.name == USER_FILE_NAME else DocumentShape.STANDARD


def load_documents(paths: Iterable[str | Path]) -> list[DeclarationDocument]:
    """Read each file into a DeclarationDocument.

    A file that cannot be read still produces a document (with
    `read_error` set) so the failure shows up in the report.
    """
    documents: list[DeclarationDocument] = []
    for raw_path in paths:
        path = Path(raw_path)
        try:
            text = path.read_text(encoding="utf-8")
            read_error = None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cannot read {path}: {e}")
            text, read_error = None, str(e)
        documents.append(DeclarationDocument(
            source_id=str(path),
            text=text,
            shape=shape_for(path),
            read_error=read_error,
        ))
    return documents


def discover_documents(
    project_dir: str | Path | None = None,
    home_dir: str | Path | None = None,
) -> list[DeclarationDocument]:
    """Find and load every declaration document."""
    return load_documents(find_declaration_files(project_dir, home_dir))
