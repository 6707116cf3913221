"""The Git allowed signers file.

Each line has the form ``principal keytype base64key``. Lines are sorted by
principal, key type and key material, so the rendered text depends only on
the set of entries and never on the order keys were fetched in.

https://man.openbsd.org/ssh-keygen.1#ALLOWED_SIGNERS
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional, Set, Tuple

from .keys import ResolvedEntry
from .utils.fs import atomic_write, read_bytes_if_exists

logger = logging.getLogger(__name__)


class WriteResult(str, Enum):
    """What :meth:`AllowedSignersDocument.write` did."""

    WRITTEN = "written"
    UNCHANGED = "unchanged"
    SKIPPED_EMPTY = "skipped_empty"


class AllowedSignersDocument:
    """A canonical, deduplicated set of allowed signers entries."""

    def __init__(self, entries: Iterable[ResolvedEntry] = ()) -> None:
        self.entries: Tuple[ResolvedEntry, ...] = tuple(
            sorted(set(entries), key=lambda entry: entry.sort_key)
        )

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ResolvedEntry]:
        return iter(self.entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AllowedSignersDocument):
            return NotImplemented
        return self.entries == other.entries

    def render(self) -> str:
        """Return the file content: one newline-terminated line per entry."""
        return "".join(f"{entry.to_line()}\n" for entry in self.entries)

    @classmethod
    def parse(cls, text: str) -> "AllowedSignersDocument":
        """Parse file content, skipping comments and lines this tool cannot produce."""
        entries = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                entries.append(ResolvedEntry.parse(line))
            except ValueError as exc:
                logger.debug(f"Ignoring line {lineno} of allowed signers file: {exc}")
        return cls(entries)

    @classmethod
    def read(cls, path: Path) -> Optional["AllowedSignersDocument"]:
        """Load an existing file, or return ``None`` if there is none."""
        content = read_bytes_if_exists(path)
        if content is None:
            return None
        return cls.parse(content.decode("utf-8", errors="replace"))

    def diff(
        self, other: "AllowedSignersDocument"
    ) -> Tuple[Set[ResolvedEntry], Set[ResolvedEntry]]:
        """Return ``(added, removed)`` entries going from ``other`` to ``self``."""
        mine, theirs = set(self.entries), set(other.entries)
        return mine - theirs, theirs - mine

    def write(self, path: Path) -> WriteResult:
        """Persist the document if its canonical text differs from ``path``.

        An empty document is never written and leaves an existing file
        untouched.

        Raises:
            OSError: If the file cannot be read or written.
        """
        if not self.entries:
            logger.warning(
                f"No allowed signers were resolved, leaving {path} untouched"
            )
            return WriteResult.SKIPPED_EMPTY

        content = self.render()
        existing = read_bytes_if_exists(path)
        if existing == content.encode("utf-8"):
            logger.info(f"Allowed signers file {path} is up to date")
            return WriteResult.UNCHANGED

        if existing is not None:
            previous = self.parse(existing.decode("utf-8", errors="replace"))
            added, removed = self.diff(previous)
            logger.info(
                f"Updating {path}: {len(added)} entries added, {len(removed)} removed"
            )
        else:
            logger.info(f"Creating {path} with {len(self.entries)} entries")

        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(path, content)
        return WriteResult.WRITTEN
