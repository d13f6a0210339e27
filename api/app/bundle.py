import logging
import zipfile
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, List, Optional

from .errors import ArchiveError
from .files import SecureFileServer

logger = logging.getLogger(__name__)

ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


class _ZipSink:
    """
    Write-only sink for zipfile. It has no tell/seek, so zipfile switches
    to data descriptors and never needs to rewind; we drain it between chunks.
    """
    def __init__(self):
        self._chunks: List[bytes] = []

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def bundle_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"minecraft-worlds-{now:%Y-%m-%dT%H-%M-%S}.zip"


def _zip_info(filename: str, size_bytes: int, modified_at: Optional[datetime]) -> zipfile.ZipInfo:
    date_time = ZIP_EPOCH
    if modified_at is not None and modified_at.year >= 1980:
        date_time = modified_at.timetuple()[:6]
    info = zipfile.ZipInfo(filename, date_time=date_time)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    # lets zipfile decide on zip64 headers up front
    info.file_size = size_bytes
    return info


def iter_zip(
    files: SecureFileServer,
    filenames: Iterable[str],
    on_added: Optional[Callable[[str], None]] = None,
) -> Iterator[bytes]:
    """
    Stream a zip of the given archive files.

    Files that cannot be opened are logged and left out. A read failure
    once an entry has started aborts the whole stream: its header is
    already on the wire, and finishing the entry would deliver a
    truncated world inside a valid-looking archive.
    """
    sink = _ZipSink()
    with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for filename in filenames:
            try:
                served = files.serve(filename)
            except (ArchiveError, OSError) as exc:
                logger.warning("Skipping %s in bulk download: %s", filename, exc)
                continue

            try:
                with zf.open(_zip_info(filename, served.size_bytes, served.modified_at), mode="w") as entry:
                    for chunk in served.iter_chunks():
                        entry.write(chunk)
                        data = sink.drain()
                        if data:
                            yield data
            except OSError:
                logger.exception("Aborting bulk download: failed reading %s", filename)
                raise
            finally:
                served.close()

            if on_added is not None:
                on_added(filename)

    data = sink.drain()
    if data:
        yield data
