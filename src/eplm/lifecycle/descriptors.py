"""Patching of the manifest.json and package.json shipped with an extension."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.logging import get_logger
from ..core.models import CreateExtensionRequest

logger = get_logger(__name__)

MANIFEST_FILE = "manifest.json"
PACKAGE_FILE = "package.json"


def read_json(path: Path) -> Optional[Dict[str, Any]]:
    if not path.is_file():
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, data: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=4, ensure_ascii=False)
        f.write("\n")


def apply_create_request(extension_dir: Path, request: CreateExtensionRequest) -> None:
    """
    Stamp a freshly scaffolded extension with the caller's metadata.

    Either descriptor may be missing from the template; missing files are
    skipped.
    """
    extension_dir = Path(extension_dir)
    version = request.version or "0.0.1"

    manifest_path = extension_dir / MANIFEST_FILE
    manifest = read_json(manifest_path)
    if manifest is not None:
        manifest["identifier"] = request.identifier
        manifest["name"] = request.name
        manifest["version"] = version
        manifest["description"] = request.description or ""
        manifest["homepage"] = request.homepage or ""
        if request.type:
            manifest["type"] = request.type
        manifest["author"] = request.author.model_dump()
        write_json(manifest_path, manifest)
        logger.info(f"Updated {MANIFEST_FILE} for {request.identifier}")

    package_path = extension_dir / PACKAGE_FILE
    package = read_json(package_path)
    if package is not None:
        package["name"] = request.identifier
        package["version"] = version
        package["description"] = request.description or ""
        if request.author.name:
            package["author"] = request.author.name
        write_json(package_path, package)
        logger.info(f"Updated {PACKAGE_FILE} for {request.identifier}")


def apply_author_name(extension_dir: Path, author_name: str) -> bool:
    """
    Replace the author name in both descriptors.

    The manifest is only touched when it already carries an author object.

    Returns:
        True if any descriptor was rewritten
    """
    extension_dir = Path(extension_dir)
    changed = False

    manifest_path = extension_dir / MANIFEST_FILE
    manifest = read_json(manifest_path)
    if manifest is not None and isinstance(manifest.get("author"), dict):
        manifest["author"]["name"] = author_name
        write_json(manifest_path, manifest)
        changed = True

    package_path = extension_dir / PACKAGE_FILE
    package = read_json(package_path)
    if package is not None:
        package["author"] = author_name
        write_json(package_path, package)
        changed = True

    return changed
