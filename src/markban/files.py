"""Read and write board documents on disk."""

import os
import tempfile
from pathlib import Path

MAX_DOCUMENT_SIZE = 10 * 1024 * 1024


class DocumentError(Exception):
    """A document that cannot or should not be processed."""


def check_path(path: str | Path) -> Path:
    """Validate a document path before reading it. Returns it as a Path."""
    path = Path(path)
    if path.suffix.lower() != ".md":
        raise DocumentError(f"not a markdown file: {path}")
    if not path.is_file():
        raise DocumentError(f"no such file: {path}")
    size = path.stat().st_size
    if size > MAX_DOCUMENT_SIZE:
        raise DocumentError(f"file too large: {path} ({size} bytes)")
    return path


def read_document(path: str | Path) -> str:
    """Read a document as UTF-8 text, keeping its line endings untouched."""
    path = check_path(path)
    try:
        with open(path, encoding="utf-8", newline="") as f:
            return f.read()
    except UnicodeDecodeError as e:
        raise DocumentError(f"not UTF-8 text: {path}") from e


def write_document(path: str | Path, text: str) -> None:
    """Replace a document atomically: write a sibling temp file, then rename.

    Readers see either the old text or the new text, never a partial file.
    """
    path = Path(path)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        if path.exists():
            os.chmod(tmp, path.stat().st_mode & 0o777)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class FileDocument:
    """A board document backed by a file, keyed by its resolved path."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).resolve()

    @property
    def doc_id(self) -> str:
        return str(self.path)

    def read(self) -> str:
        return read_document(self.path)

    def write(self, text: str) -> None:
        write_document(self.path, text)

    def stamp(self) -> tuple[int, int] | None:
        """(mtime_ns, size) of the file, or None if it is gone."""
        try:
            st = self.path.stat()
            return st.st_mtime_ns, st.st_size
        except FileNotFoundError:
            return None

    def __repr__(self) -> str:
        return f"<FileDocument {self.path}>"
