"""Decompressing byte source.

Opens a path or wraps a binary file object and exposes a plain sequential
byte stream. gzip framing (including BGZF, which is multi-member gzip) is
detected by magic bytes, never by file suffix, and undone transparently.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import zlib
from typing import BinaryIO, Optional, Union

from ..config import GZIP_MAGIC
from ..core.errors import IoFailure

__all__ = ["ByteSource", "open_source"]

logger = logging.getLogger(__name__)

# upper bound of a single read; length prefixes are untrusted
_CHUNK_SIZE = 1 << 20

PathOrFile = Union[str, "os.PathLike[str]", BinaryIO]


def _peek(fh: BinaryIO, n: int) -> bytes:
	if hasattr(fh, "peek"):
		return fh.peek(n)[:n]
	pos = fh.tell()
	head = fh.read(n)
	fh.seek(pos)
	return head


class ByteSource:
	"""Sequential, forward-only reader over a (possibly gzip-compressed) stream.

	Parameters
	----------
	source : str | os.PathLike | binary file object
		Path to open, or an already open binary stream. Streams that can
		neither ``peek`` nor ``seek`` are wrapped in :class:`io.BufferedReader`.

	``offset`` counts uncompressed bytes handed out so far. Every failure of
	the underlying stream, decompression errors and truncated gzip members
	included, is raised as :class:`IoFailure`.
	"""

	def __init__(self, source: PathOrFile):
		self._owned: Optional[BinaryIO] = None
		if isinstance(source, (str, os.PathLike)):
			self.name = os.fspath(source)
		else:
			self.name = getattr(source, "name", None)
		try:
			if isinstance(source, (str, os.PathLike)):
				raw = open(source, "rb")
				self._owned = raw
			else:
				raw = source
				if not hasattr(raw, "peek") and not raw.seekable():
					raw = io.BufferedReader(raw)
			self.compressed = _peek(raw, len(GZIP_MAGIC)) == GZIP_MAGIC
			self._stream: BinaryIO = gzip.GzipFile(fileobj=raw, mode="rb") if self.compressed else raw
		except OSError as exc:
			self._close_owned()
			raise IoFailure(f"cannot open {self.name or 'stream'}: {exc}", offset=0) from exc
		self._offset = 0
		self.closed = False
		logger.debug("opened %s (gzip=%s)", self.name or "<stream>", self.compressed)

	@property
	def offset(self) -> int:
		return self._offset

	def read(self, n: int) -> bytes:
		"""Read up to ``n`` bytes; fewer only when the stream ends."""
		if self.closed:
			raise IoFailure("read from closed byte source", offset=self._offset)
		chunks = []
		remaining = n
		try:
			while remaining > 0:
				chunk = self._stream.read(min(remaining, _CHUNK_SIZE))
				if not chunk:
					break
				chunks.append(chunk)
				remaining -= len(chunk)
		except (OSError, EOFError, zlib.error) as exc:
			raise IoFailure(f"read failed: {exc}", offset=self._offset + n - remaining) from exc
		data = b"".join(chunks)
		self._offset += len(data)
		return data

	def _close_owned(self) -> None:
		if self._owned is not None:
			self._owned.close()
			self._owned = None

	def close(self) -> None:
		if self.closed:
			return
		self.closed = True
		try:
			if self.compressed:
				self._stream.close()
		finally:
			self._close_owned()

	def __enter__(self) -> "ByteSource":
		return self

	def __exit__(self, *exc) -> None:
		self.close()


def open_source(source: Union[PathOrFile, ByteSource]) -> ByteSource:
	if isinstance(source, ByteSource):
		return source
	return ByteSource(source)
