"""Source file discovery for project-wide analysis."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from .config import TARGET_EXTENSION
from .errors import DiscoveryError
from .models import SourceFileSet

logger = logging.getLogger(__name__)


def _sorted_entries(directory: Path) -> List[Path]:
    return sorted(directory.iterdir(), key=lambda p: p.name)


class FileDiscovery:
    """Depth-first walk collecting files with a given extension.

    The walk keeps an explicit stack of directory iterators instead of
    recursing, so deep trees cannot exhaust the interpreter stack. Entries in
    a directory are visited in name order and a subdirectory is walked
    completely when it is reached.

    Each directory is entered once, keyed by its real path, which keeps
    symlink loops from being followed forever.
    """

    def __init__(
        self,
        extension: str = TARGET_EXTENSION,
        exclude: Iterable[str] = (),
        limit: Optional[int] = None,
    ) -> None:
        self.extension = extension
        self.exclude: Set[str] = set(exclude)
        self.limit = limit
        self.skipped: List[Tuple[Path, str]] = []

    def discover(self, root: Path) -> SourceFileSet:
        """Return the SourceFileSet under *root*.

        Raises:
            DiscoveryError: *root* is missing, not a directory, or unreadable.
        """
        self.skipped = []
        root = Path(root).absolute()
        try:
            top = _sorted_entries(root)
        except OSError as exc:
            raise DiscoveryError(f"Cannot read directory '{root}': {exc.strerror or exc}") from exc

        visited: Set[str] = {os.path.realpath(root)}
        seen_files: Set[str] = set()
        results: List[str] = []
        stack: List[Iterator[Path]] = [iter(top)]

        while stack:
            entry = next(stack[-1], None)
            if entry is None:
                stack.pop()
                continue

            try:
                is_dir = entry.is_dir()
            except OSError as exc:
                self._skip(entry, exc)
                continue

            if is_dir:
                if entry.name in self.exclude:
                    continue
                real = os.path.realpath(entry)
                if real in visited:
                    logger.debug("Skipping already visited directory %s", entry)
                    continue
                visited.add(real)
                try:
                    stack.append(iter(_sorted_entries(entry)))
                except OSError as exc:
                    self._skip(entry, exc)
                continue

            if not entry.name.endswith(self.extension):
                continue
            real = os.path.realpath(entry)
            if real in seen_files:
                continue
            seen_files.add(real)
            results.append(str(entry))
            if self.limit is not None and len(results) >= self.limit:
                logger.info("Stopping discovery at %d files", self.limit)
                break

        logger.debug("Discovered %d %s files under %s", len(results), self.extension, root)
        return tuple(results)

    def _skip(self, entry: Path, exc: OSError) -> None:
        logger.debug("Skipping unreadable entry %s: %s", entry, exc)
        self.skipped.append((entry, str(exc)))


def discover_source_files(
    root: Path,
    extension: str = TARGET_EXTENSION,
    exclude: Iterable[str] = (),
) -> SourceFileSet:
    """Return every *extension* file below *root*, depth-first in name order."""
    return FileDiscovery(extension=extension, exclude=exclude).discover(root)
