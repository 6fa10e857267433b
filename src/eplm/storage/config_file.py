"""
Extensions Config File

Reads and writes ``extensions.json``, the document the host reads at boot to
decide which extensions to load. Entries live in the ``applications`` or
``functionals`` section keyed by identifier.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..core.exceptions import StorageError
from ..core.logging import get_logger
from ..core.models import ConfigEntry, ExtensionAuthor
from ..lifecycle.interfaces import ConfigStore

logger = get_logger(__name__)

SECTIONS = ("applications", "functionals")


class ExtensionsConfigFile(ConfigStore):
    """File-backed extensions.json"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Load the whole document.

        Returns:
            Parsed document, or None if the file does not exist

        Raises:
            StorageError: If the file exists but cannot be parsed
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}")

    def _write(self, document: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}-", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=4, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {self.path}: {e}")

    @staticmethod
    def _entries(document: Dict[str, Any]) -> Iterator[Tuple[str, str, Dict[str, Any]]]:
        for section in SECTIONS:
            for key, entry in (document.get(section) or {}).items():
                yield section, key, entry

    def _find(
        self, document: Dict[str, Any], identifier: str
    ) -> Optional[Tuple[str, str, Dict[str, Any]]]:
        for section, key, entry in self._entries(document):
            manifest = entry.get("manifest") or {}
            if key == identifier or manifest.get("identifier") == identifier:
                return section, key, entry
        return None

    def add_entry(
        self, identifier: str, entry: ConfigEntry, section: str = "applications"
    ) -> None:
        """
        Add or replace the entry for identifier in section.

        Raises:
            StorageError: If the document cannot be read or written
        """
        if section not in SECTIONS:
            raise StorageError(f"Unknown extensions.json section: {section}")

        document = self.read() or {}
        document.setdefault(section, {})

        data = entry.to_json_dict()
        data["manifest"]["author"] = ExtensionAuthor.normalize(
            data["manifest"].get("author")
        ).model_dump()
        document[section][identifier] = data

        self._write(document)
        logger.info(f"Added extension to extensions.json: {identifier}")

    def remove_entry(self, identifier: str) -> bool:
        """
        Remove the entry for identifier from whichever section holds it.

        A missing file or entry is not an error.

        Returns:
            True if an entry was removed
        """
        document = self.read()
        if document is None:
            logger.warning(f"extensions.json not found at {self.path}")
            return False

        found = self._find(document, identifier)
        if found is None:
            logger.warning(f"Extension {identifier} not found in extensions.json")
            return False

        section, key, _ = found
        del document[section][key]
        self._write(document)
        logger.info(f"Removed extension from extensions.json: {identifier}")
        return True

    def set_enabled(self, identifier: str, enabled: bool) -> bool:
        document = self.read()
        if document is None:
            logger.warning(f"extensions.json not found at {self.path}")
            return False

        found = self._find(document, identifier)
        if found is None:
            logger.warning(f"Extension {identifier} not found in extensions.json")
            return False

        found[2]["enabled"] = enabled
        self._write(document)
        logger.info(f"Updated extensions.json: {identifier} enabled={enabled}")
        return True

    def update_author_name(self, identifier: str, author_name: str) -> bool:
        document = self.read()
        if document is None:
            return False

        found = self._find(document, identifier)
        if found is None:
            return False

        manifest = found[2].get("manifest") or {}
        author = ExtensionAuthor.normalize(manifest.get("author"))
        manifest["author"] = author.model_copy(update={"name": author_name}).model_dump()
        found[2]["manifest"] = manifest
        self._write(document)
        return True

    def enabled_identifiers(self) -> List[str]:
        """Identifiers of every enabled entry, applications first."""
        document = self.read() or {}
        identifiers = []
        for _, key, entry in self._entries(document):
            if entry.get("enabled", False):
                identifiers.append((entry.get("manifest") or {}).get("identifier") or key)
        return identifiers
