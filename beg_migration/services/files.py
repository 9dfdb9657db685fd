from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Iterable
from pathlib import Path

"""Legacy file migration.

Invoice documents reference attachments by Windows paths on the old file
server (``N:\\Mandats\\7011\\Offre.pdf``). ``LegacyPathResolver`` maps them
onto the mount of that share; ``FileStorage`` copies the resolved file into
the managed storage tree and hands back the logical path stored in the
database (``files/{entity_type}/{group_id}/{name}``).
"""

__all__ = [
    "LegacyPathResolver",
    "FileStorage",
    "sanitize_filename",
]

logger = logging.getLogger(__name__)

LOGICAL_PREFIX = "files"
_FORBIDDEN_CHARS = re.compile(r'[\\/:*?"<>|]')


def sanitize_filename(name: str, fallback: str = "document") -> str:
    """Base name with path separators and characters forbidden on Windows replaced by ``_``."""
    base = re.split(r"[\\/]", name)[-1]
    sanitized = _FORBIDDEN_CHARS.sub("_", base).strip()
    return sanitized or fallback


class LegacyPathResolver:
    """Rewrites ``X:\\{share}\\...`` (any drive letter) onto ``mandats_root``."""

    def __init__(self, mandats_root: Path, share_name: str = "Mandats") -> None:
        self.mandats_root = Path(mandats_root)
        self.share_name = share_name
        self._prefix = re.compile(rf"^[A-Za-z]:\\{re.escape(share_name)}\\", re.IGNORECASE)

    def rewrite(self, windows_path: str) -> Path | None:
        """Translate without touching the disk; ``None`` when the prefix does not match."""
        text = (windows_path or "").strip()
        match = self._prefix.match(text)
        if match is None:
            return None
        relative = text[match.end():].replace("\\", "/")
        return self.mandats_root.joinpath(*[p for p in relative.split("/") if p])

    def resolve(self, windows_path: str) -> Path | None:
        """Translated path when it exists on disk, else ``None``."""
        path = self.rewrite(windows_path)
        if path is None:
            logger.debug("Unrecognized legacy path: %s", windows_path)
            return None
        if not path.is_file():
            logger.warning("File not found: %s", path)
            return None
        return path

    __call__ = resolve


class FileStorage:
    """Managed file tree: ``{root}/{entity_type}/{group_id}/{name}``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def store(self, source: Path | None, entity_type: str, group_id: str) -> str | None:
        """Copy ``source`` into the tree; ``None`` (never an exception) when it is missing.

        A name already taken in the group gets a ``_1``, ``_2``... suffix.
        """
        if source is None or not Path(source).is_file():
            logger.warning("File not found, skipping: %s", source)
            return None
        target_dir = self.root / entity_type / group_id
        target_dir.mkdir(parents=True, exist_ok=True)
        target = _free_name(target_dir, sanitize_filename(Path(source).name))
        shutil.copy2(source, target)
        return f"{LOGICAL_PREFIX}/{entity_type}/{group_id}/{target.name}"

    def resolve(self, logical_path: str) -> Path | None:
        """Disk location of a logical ``files/...`` path."""
        prefix = f"{LOGICAL_PREFIX}/"
        normalized = logical_path.replace("\\", "/").lstrip("/")
        if not normalized.startswith(prefix):
            return None
        return self.root / normalized[len(prefix):]

    def remove_group(self, entity_type: str, group_id: str) -> bool:
        """Delete the folder of one group; False when there was nothing to delete."""
        folder = self.root / entity_type / group_id
        if not folder.is_dir():
            return False
        shutil.rmtree(folder)
        logger.debug("Removed file group %s", folder)
        return True

    def discard(self, logical_paths: Iterable[str | None]) -> int:
        """Delete the group folders holding ``logical_paths``; returns the folder count."""
        folders = set()
        for logical in logical_paths:
            path = self.resolve(logical) if logical else None
            if path is None:
                continue
            parts = path.relative_to(self.root).parts
            # {entity_type}/{group_id}/{name} only
            if len(parts) != 3 or ".." in parts:
                continue
            folders.add(parts[:2])
        return sum(self.remove_group(entity_type, group_id) for entity_type, group_id in sorted(folders))


def _free_name(folder: Path, name: str) -> Path:
    target = folder / name
    counter = 1
    while target.exists():
        stem, suffix = Path(name).stem, Path(name).suffix
        target = folder / f"{stem}_{counter}{suffix}"
        counter += 1
    return target
