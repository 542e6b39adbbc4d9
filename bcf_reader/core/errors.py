"""Error hierarchy for BCF decoding.

Every error carries the position at which it was detected: ``offset`` is the
uncompressed byte offset into the stream (or into the block being decoded when
no stream context is known) and ``record_index`` the 0-based index of the
record frame. Either may be ``None``.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
	"BCFError",
	"BadMagic",
	"UnsupportedVersion",
	"InvalidHeader",
	"DuplicateDefinition",
	"MalformedEncoding",
	"UnknownDictionaryId",
	"TruncatedRecord",
	"IoFailure",
]


class BCFError(Exception):
	"""Base class of all decoding errors."""

	def __init__(self, message: str, *, offset: Optional[int] = None, record_index: Optional[int] = None):
		super().__init__(message)
		self.message = message
		self.offset = offset
		self.record_index = record_index
		self._located = False

	def locate(self, *, base_offset: Optional[int] = None, record_index: Optional[int] = None) -> "BCFError":
		"""Attach stream context to an error raised from a block-relative decoder.

		A block-relative ``offset`` is shifted by ``base_offset``; fields that
		are already set otherwise are left untouched. Only the first call has
		an effect.
		"""
		if self._located:
			return self
		if base_offset is not None:
			self.offset = base_offset + (self.offset or 0)
		if record_index is not None and self.record_index is None:
			self.record_index = record_index
		self._located = True
		return self

	def __str__(self) -> str:
		where = []
		if self.record_index is not None:
			where.append(f"record {self.record_index}")
		if self.offset is not None:
			where.append(f"offset {self.offset}")
		if not where:
			return self.message
		return f"{self.message} ({', '.join(where)})"


class BadMagic(BCFError, ValueError):
	"""Stream does not start with the ``BCF`` marker."""


class UnsupportedVersion(BCFError, ValueError):
	def __init__(self, major: int, minor: int, **kwargs):
		super().__init__(f"unsupported BCF version {major}.{minor}", **kwargs)
		self.major = major
		self.minor = minor


class InvalidHeader(BCFError, ValueError):
	"""Header text is missing required structure or cannot be parsed."""


class DuplicateDefinition(InvalidHeader):
	"""Two INFO or FORMAT lines declare one key with conflicting Type/Number."""

	def __init__(self, namespace: str, key: str, first: str, second: str, **kwargs):
		super().__init__(
			f"{namespace} key {key!r} declared twice with conflicting definitions: {first} vs {second}",
			**kwargs,
		)
		self.namespace = namespace
		self.key = key


class MalformedEncoding(BCFError, ValueError):
	"""Typed value descriptor or payload is inconsistent with the bytes available."""


class UnknownDictionaryId(BCFError, KeyError):
	"""Record references a key ID that the header never declared."""

	def __init__(self, namespace: str, key_id: int, **kwargs):
		super().__init__(f"{namespace} id {key_id} not declared in header", **kwargs)
		self.namespace = namespace
		self.key_id = key_id


class TruncatedRecord(BCFError, ValueError):
	"""Frame or block shorter than its length prefix promised."""


class IoFailure(BCFError, OSError):
	"""Failure raised by the byte source, including decompression errors."""
