"""Size-limited UTF-8 reads of scanned files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from smart_ast.entities.analysis import SourceFile

if TYPE_CHECKING:
    from collections.abc import Iterable

    from smart_ast.entities.analysis import FileRef

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 1024 * 1024


class FileReader:
    """Read FileRefs into SourceFiles, skipping oversized or unreadable files."""

    def __init__(self, max_file_size: int = DEFAULT_MAX_FILE_SIZE, encoding: str = "utf-8") -> None:
        self.max_file_size = max_file_size
        self.encoding = encoding

    def read_file(self, ref: FileRef) -> SourceFile:
        """Read one file.

        Raises:
            OSError: The file is missing or unreadable.
            UnicodeDecodeError: The file is not valid text in ``encoding``.
        """
        path = Path(ref.path)
        content = path.read_text(encoding=self.encoding)
        return SourceFile(
            ref=ref,
            content=content,
            lines=content.count("\n") + 1,
            extension=path.suffix.lower(),
        )

    def read_files(self, refs: Iterable[FileRef]) -> list[SourceFile]:
        """Best-effort batch read; failures are logged and skipped."""
        files: list[SourceFile] = []
        for ref in refs:
            if ref.size > self.max_file_size:
                logger.warning("Skipping large file: %s (%d bytes)", ref.relative_path, ref.size)
                continue
            try:
                files.append(self.read_file(ref))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Failed to read file %s: %s", ref.relative_path, e)
        return files
