import io
import logging
import os
from pathlib import Path
from typing import IO, Union

from .errors import CTreesIOError

logger = logging.getLogger(__name__)

_HAVE_PREAD = hasattr(os, "pread")


def _raw_fileno(stream):
    """Descriptor of stream if its bytes are exactly the file bytes, None otherwise"""
    raw = stream
    if isinstance(raw, (io.BufferedReader, io.BufferedRandom)):
        raw = raw.raw
    if isinstance(raw, io.FileIO):
        return raw.fileno()
    return None


class PositionalReader:
    """
    Offset-addressed reads from a file descriptor or binary stream

    Uses os.pread when the source is a descriptor or a plain file opened by open(), so the shared file position
    is never touched. Anything else (BytesIO, gzip and other wrapper streams whose fileno() belongs to the
    underlying file) falls back to seek + read.
    """

    def __init__(self, source: Union[int, IO[bytes]]):
        self.fd = None
        self.stream = None
        if isinstance(source, int):
            self.fd = source
        else:
            self.fd = _raw_fileno(source)
            if self.fd is None or not _HAVE_PREAD:
                self.fd = None
                self.stream = source

    def pread(self, size: int, offset: int) -> bytes:
        try:
            if self.fd is not None:
                return os.pread(self.fd, size, offset)
            self.stream.seek(offset)
            return self.stream.read(size)
        except OSError as ex:
            raise CTreesIOError(f"Reading {size} bytes at offset {offset} failed: {ex}") from ex

    def __len__(self):
        if self.fd is not None:
            return os.fstat(self.fd).st_size
        pos = self.stream.tell()
        size = self.stream.seek(0, io.SEEK_END)
        self.stream.seek(pos)
        return size


def open_file(filepath: Path) -> IO[bytes]:
    """Open path for binary reading, converting failures to CTreesIOError"""
    if not filepath.is_file():
        raise CTreesIOError(f"File ({filepath}) does not exist or cannot be read")

    filesize = filepath.stat().st_size
    if filesize > 1e10:
        logger.warning(f"File size ({filesize / 1e9:.2f})GB is quite large, consider reading selected trees only")

    try:
        return open(filepath, "rb")
    except OSError as ex:
        raise CTreesIOError(f"File ({filepath}) could not be opened: {ex}") from ex
