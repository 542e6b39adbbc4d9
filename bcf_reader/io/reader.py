"""Streaming BCF reader.

Reads the preamble and header once, then yields one :class:`Record` per
record frame::

	with BCFReader("calls.bcf") as reader:
		for rec in reader:
			print(rec.chrom, rec.pos, rec.alleles)

The reader is single-pass and forward-only: reading again from the start
requires a new reader (the source may be a non-seekable compressed stream).
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from enum import Enum
from typing import Iterator, Optional, Tuple

from ..config import BCF_MAGIC, SUPPORTED_VERSIONS, ReaderOptions
from ..core.errors import (
	BadMagic,
	BCFError,
	InvalidHeader,
	MalformedEncoding,
	TruncatedRecord,
	UnknownDictionaryId,
	UnsupportedVersion,
)
from .header import Dictionary, build_dictionary
from .record import Record, decode_record
from .source import ByteSource, PathOrFile, open_source

__all__ = ["BCFReader", "ReaderState", "read_bcf"]

logger = logging.getLogger(__name__)

_PREAMBLE_SIZE = len(BCF_MAGIC) + 2
_HEADER_TEXT_OFFSET = _PREAMBLE_SIZE + 4
_FRAME_PREFIX_SIZE = 8

# Errors confined to one complete frame; the stream can continue past them.
_RECORD_ERRORS = (MalformedEncoding, UnknownDictionaryId, TruncatedRecord)


class ReaderState(Enum):
	UNOPENED = "unopened"
	HEADER_READ = "header_read"
	STREAMING = "streaming"
	EXHAUSTED = "exhausted"
	ERROR = "error"


class BCFReader:
	"""Streaming reader over one BCF stream.

	Parameters
	----------
	source : str | os.PathLike | binary file object | ByteSource
		BCF data, optionally gzip/BGZF compressed (detected automatically).
	options : ReaderOptions | None
		Error mode, laziness, thread sharing and dictionary ID scheme.
	max_records : int | None
		Optional limit for testing / faster prototyping.
	**overrides
		Individual :class:`ReaderOptions` fields, e.g. ``on_error="skip"``.
	"""

	def __init__(
		self,
		source: PathOrFile,
		options: Optional[ReaderOptions] = None,
		max_records: Optional[int] = None,
		**overrides,
	):
		options = options or ReaderOptions()
		if overrides:
			options = dataclasses.replace(options, **overrides)
		self.source = source
		self.options = options
		self.max_records = max_records
		self.state = ReaderState.UNOPENED
		self.dictionary: Optional[Dictionary] = None
		self.version: Optional[Tuple[int, int]] = None
		self.records_read = 0
		self.skipped = 0
		self._bytes: Optional[ByteSource] = None
		self._lock = threading.Lock() if options.shareable else None

	# -- internal helpers -------------------------------------------------
	def _fail(self) -> None:
		self.state = ReaderState.ERROR
		self.close()

	def _finish(self) -> None:
		self.state = ReaderState.EXHAUSTED
		logger.debug("end of stream after %d records (%d skipped)", self.records_read, self.skipped)
		self.close()

	def _read_preamble(self) -> None:
		magic = self._bytes.read(_PREAMBLE_SIZE)
		if len(magic) < _PREAMBLE_SIZE or magic[: len(BCF_MAGIC)] != BCF_MAGIC:
			raise BadMagic(f"expected BCF magic, found {magic[:len(BCF_MAGIC)]!r}", offset=0)
		major, minor = magic[3], magic[4]
		if (major, minor) not in SUPPORTED_VERSIONS:
			raise UnsupportedVersion(major, minor, offset=len(BCF_MAGIC))
		self.version = (major, minor)

		raw_length = self._bytes.read(4)
		if len(raw_length) < 4:
			raise InvalidHeader("stream ends inside the header length", offset=_PREAMBLE_SIZE)
		l_text = int.from_bytes(raw_length, "little")
		text = self._bytes.read(l_text)
		if len(text) < l_text:
			raise InvalidHeader(
				f"header text truncated: {len(text)} of {l_text} bytes", offset=_HEADER_TEXT_OFFSET
			)
		try:
			self.dictionary = build_dictionary(text, id_scheme=self.options.id_scheme)
		except BCFError as exc:
			raise exc.locate(base_offset=_HEADER_TEXT_OFFSET)

	def _read_frame(self, frame_offset: int, index: int) -> Optional[Tuple[bytes, bytes]]:
		prefix = self._bytes.read(_FRAME_PREFIX_SIZE)
		if not prefix:
			return None
		if len(prefix) < _FRAME_PREFIX_SIZE:
			raise TruncatedRecord(
				f"stream ends inside frame length prefix ({len(prefix)} of {_FRAME_PREFIX_SIZE} bytes)",
				offset=frame_offset,
				record_index=index,
			)
		l_shared = int.from_bytes(prefix[:4], "little")
		l_indiv = int.from_bytes(prefix[4:], "little")
		body = self._bytes.read(l_shared + l_indiv)
		if len(body) < l_shared + l_indiv:
			raise TruncatedRecord(
				f"frame declares l_shared={l_shared}, l_indiv={l_indiv} but stream ends after {len(body)} bytes",
				offset=frame_offset,
				record_index=index,
			)
		return body[:l_shared], body[l_shared:]

	def _advance(self) -> Optional[Record]:
		if self.state is ReaderState.UNOPENED:
			self.open()
		if self.state is ReaderState.EXHAUSTED:
			return None
		if self.state is ReaderState.ERROR:
			raise BCFError("reader stopped after an earlier error")
		self.state = ReaderState.STREAMING
		while True:
			if self.max_records is not None and self.records_read >= self.max_records:
				self._finish()
				return None
			frame_offset = self._bytes.offset
			index = self.records_read + self.skipped
			try:
				frame = self._read_frame(frame_offset, index)
			except BCFError:
				self._fail()
				raise
			if frame is None:
				self._finish()
				return None
			try:
				record = decode_record(
					frame[0],
					frame[1],
					self.dictionary,
					lazy=self.options.lazy,
					record_index=index,
					offset=frame_offset,
				)
			except _RECORD_ERRORS as exc:
				if self.options.skip_invalid:
					self.skipped += 1
					logger.warning("skipping record: %s", exc)
					continue
				self._fail()
				raise
			self.records_read += 1
			return record

	# -- public API ---------------------------------------------------------
	def open(self) -> "BCFReader":
		"""Validate the preamble and build the header dictionary.

		Raises
		------
		BadMagic, UnsupportedVersion, InvalidHeader, DuplicateDefinition, IoFailure
		"""
		if self.state is not ReaderState.UNOPENED:
			return self
		try:
			self._bytes = open_source(self.source)
			self._read_preamble()
		except BCFError:
			self.dictionary = None
			self._fail()
			raise
		self.state = ReaderState.HEADER_READ
		logger.debug("BCF %d.%d, %d samples", self.version[0], self.version[1], len(self.dictionary.samples))
		return self

	def read_record(self) -> Optional[Record]:
		"""Return the next record, or ``None`` once the stream is exhausted."""
		if self._lock is None:
			return self._advance()
		with self._lock:
			return self._advance()

	def __iter__(self) -> Iterator[Record]:
		return self

	def __next__(self) -> Record:
		record = self.read_record()
		if record is None:
			raise StopIteration
		return record

	def close(self) -> None:
		if self._bytes is not None:
			self._bytes.close()

	def __enter__(self) -> "BCFReader":
		return self.open()

	def __exit__(self, *exc) -> None:
		self.close()

	@property
	def header(self) -> Dictionary:
		if self.dictionary is None:
			self.open()
		return self.dictionary

	@property
	def samples(self) -> Tuple[str, ...]:
		return self.header.samples

	@property
	def offset(self) -> int:
		"""Uncompressed byte offset of the next unread byte."""
		return 0 if self._bytes is None else self._bytes.offset


def read_bcf(source: PathOrFile, **kwargs) -> Iterator[Record]:
	"""Yield every record of ``source``; the stream is closed on every exit path."""
	with BCFReader(source, **kwargs) as reader:
		yield from reader
