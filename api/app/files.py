import logging
import os
import stat as stat_mod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator

from .errors import AccessDeniedError, InvalidFilenameError, WorldNotFoundError
from .validation import matched_extension, validate_filename

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

CONTENT_TYPES = {
    ".tar.xz": "application/x-xz",
    ".zip": "application/zip",
    ".rar": "application/vnd.rar",
    ".7z": "application/x-7z-compressed",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(filename: str) -> str:
    return CONTENT_TYPES.get(matched_extension(filename), DEFAULT_CONTENT_TYPE)


@dataclass(frozen=True)
class FileStat:
    size_bytes: int
    modified_at: datetime | None
    exists: bool


@dataclass
class ServedFile:
    """An open archive file. The handle lives until the response is done with it."""
    filename: str
    size_bytes: int
    content_type: str
    stream: BinaryIO = field(repr=False)
    modified_at: datetime | None = None

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        try:
            while chunk := self.stream.read(chunk_size):
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        if not self.stream.closed:
            self.stream.close()


class SecureFileServer:
    """
    Maps validated filenames onto files inside the archive root.

    Every path is re-resolved on access (following symlinks) and must stay
    strictly below the resolved root, even for names the validator accepted.
    """
    def __init__(self, root: Path | str):
        self.root = Path(root)

    def resolve(self, filename: str) -> Path:
        if not validate_filename(filename):
            raise InvalidFilenameError("Invalid filename.")

        try:
            real_root = self.root.resolve()
            real_path = (self.root / filename).resolve()
        except (OSError, RuntimeError):
            # symlink loops surface here
            logger.warning("Could not resolve %r inside archive root", filename)
            raise AccessDeniedError("Access denied.")
        if real_path == real_root or real_root not in real_path.parents:
            logger.warning("Blocked path outside archive root: %r", filename)
            raise AccessDeniedError("Access denied.")
        return real_path

    def stat(self, filename: str) -> FileStat:
        path = self.resolve(filename)
        try:
            st = path.stat()
        except FileNotFoundError:
            return FileStat(size_bytes=0, modified_at=None, exists=False)
        except PermissionError:
            raise AccessDeniedError("Access denied.")
        if not stat_mod.S_ISREG(st.st_mode):
            return FileStat(size_bytes=0, modified_at=None, exists=False)
        return FileStat(
            size_bytes=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            exists=True,
        )

    def open(self, filename: str) -> BinaryIO:
        path = self.resolve(filename)
        try:
            fh = open(path, "rb")
        except FileNotFoundError:
            raise WorldNotFoundError("File not found.")
        except PermissionError:
            raise AccessDeniedError("Access denied.")
        except IsADirectoryError:
            raise WorldNotFoundError("File not found.")

        # stat the handle itself so the size matches what will be streamed
        st = os.fstat(fh.fileno())
        if not stat_mod.S_ISREG(st.st_mode):
            fh.close()
            raise WorldNotFoundError("File not found.")
        return fh

    def serve(self, filename: str) -> ServedFile:
        fh = self.open(filename)
        st = os.fstat(fh.fileno())
        return ServedFile(
            filename=filename,
            size_bytes=st.st_size,
            content_type=content_type_for(filename),
            stream=fh,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )
