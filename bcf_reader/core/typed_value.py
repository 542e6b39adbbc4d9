"""Typed value codec for the BCF binary encoding.

Every INFO value, FORMAT column, allele, ID and dictionary key in a BCF record
is stored as a *typed value*: one descriptor byte followed by a little-endian
payload.

	descriptor = (count << 4) | type_tag

``type_tag`` is one of the :class:`BCFType` members. ``count`` is the number
of elements (0-14); 15 means the real count follows as a typed scalar integer.
Integer and float vectors reserve two bit patterns per type, MISSING and
END-OF-VECTOR (EOV). Both are resolved here, at the codec boundary:
MISSING elements become ``None`` and EOV cuts the logical vector, so nothing
downstream ever compares raw sentinel values again.

All functions are pure and operate on ``bytes`` (or any buffer accepted by
:func:`numpy.frombuffer`) plus an offset.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Iterable, Iterator, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import MalformedEncoding

__all__ = [
	"BCFType",
	"ValueKind",
	"TypedValue",
	"INT_MISSING",
	"INT_END_OF_VECTOR",
	"FLOAT_MISSING_BITS",
	"FLOAT_END_OF_VECTOR_BITS",
	"FLOAT_MISSING",
	"FLOAT_END_OF_VECTOR",
	"element_size",
	"decode_descriptor",
	"decode_typed",
	"decode_typed_int",
	"decode_typed_string",
	"read_array",
	"values_from_array",
	"encode_descriptor",
	"encode_typed",
	"smallest_int_type",
]


class BCFType(IntEnum):
	"""Type tag stored in the low nibble of a descriptor byte."""

	NULL = 0
	INT8 = 1
	INT16 = 2
	INT32 = 3
	FLOAT = 5
	CHAR = 7


class ValueKind(Enum):
	"""Logical kind of a decoded value."""

	INT8 = "int8"
	INT16 = "int16"
	INT32 = "int32"
	FLOAT = "float"
	CHARACTER = "character"
	STRING = "string"
	FLAG = "flag"
	MISSING = "missing"


INT_TYPES = (BCFType.INT8, BCFType.INT16, BCFType.INT32)

# Floats are read as raw uint32 words so sentinels can be matched bit-exactly.
_DTYPES = {
	BCFType.INT8: np.dtype("<i1"),
	BCFType.INT16: np.dtype("<i2"),
	BCFType.INT32: np.dtype("<i4"),
	BCFType.FLOAT: np.dtype("<u4"),
	BCFType.CHAR: np.dtype("u1"),
}

_SIZES = {
	BCFType.NULL: 0,
	BCFType.INT8: 1,
	BCFType.INT16: 2,
	BCFType.INT32: 4,
	BCFType.FLOAT: 4,
	BCFType.CHAR: 1,
}

INT_MISSING = {
	BCFType.INT8: -0x80,
	BCFType.INT16: -0x8000,
	BCFType.INT32: -0x80000000,
}
INT_END_OF_VECTOR = {
	BCFType.INT8: -0x7F,
	BCFType.INT16: -0x7FFF,
	BCFType.INT32: -0x7FFFFFFF,
}

# Smallest value each integer type may carry as data. The 8 lowest patterns
# of every width are reserved (MISSING, EOV and six for future use).
_INT_MIN = {
	BCFType.INT8: -120,
	BCFType.INT16: -32760,
	BCFType.INT32: -2147483640,
}
_INT_MAX = {
	BCFType.INT8: 0x7F,
	BCFType.INT16: 0x7FFF,
	BCFType.INT32: 0x7FFFFFFF,
}

FLOAT_MISSING_BITS = 0x7F800001
FLOAT_END_OF_VECTOR_BITS = 0x7F800002
FLOAT_MISSING, FLOAT_END_OF_VECTOR = np.array(
	[FLOAT_MISSING_BITS, FLOAT_END_OF_VECTOR_BITS], dtype="<u4"
).view("<f4")

_KIND_OF = {
	BCFType.INT8: ValueKind.INT8,
	BCFType.INT16: ValueKind.INT16,
	BCFType.INT32: ValueKind.INT32,
	BCFType.FLOAT: ValueKind.FLOAT,
	BCFType.CHAR: ValueKind.STRING,
}

_TAGS = {t.value: t for t in BCFType}


def element_size(bcf_type: BCFType) -> int:
	return _SIZES[bcf_type]


@dataclass(frozen=True)
class TypedValue:
	"""A decoded typed value.

	Attributes
	----------
	kind : ValueKind
		Logical kind. ``MISSING`` when the field is present but carries no
		data (every element MISSING, or the vector empty).
	values : tuple
		Logical elements after END-OF-VECTOR truncation. Integer and float
		elements are ``None`` where the MISSING sentinel was stored. A string
		is a single element until a comma split is applied for multi-valued
		String/Character fields.
	storage : BCFType
		Physical type tag the value was stored with.
	width : int
		Physical element count, including EOV padding. Together with
		``storage`` this keeps "present but MISSING" distinct from "absent"
		when the value is encoded again.
	"""

	kind: ValueKind
	values: Tuple[Any, ...] = ()
	storage: BCFType = BCFType.NULL
	width: int = 0

	@classmethod
	def missing(cls, storage: BCFType = BCFType.NULL, width: int = 0, count: int = 0) -> "TypedValue":
		return cls(ValueKind.MISSING, (None,) * count, storage, width)

	@classmethod
	def flag(cls) -> "TypedValue":
		return cls(ValueKind.FLAG, (True,), BCFType.NULL, 0)

	@property
	def is_missing(self) -> bool:
		return self.kind is ValueKind.MISSING

	@property
	def cardinality(self) -> int:
		"""Number of logical elements: 0, 1 or N."""
		if self.kind is ValueKind.MISSING:
			return 0
		return len(self.values)

	@property
	def value(self) -> Any:
		"""Scalar for single-element values, tuple otherwise, ``None`` when missing."""
		if self.kind is ValueKind.MISSING:
			return None
		if len(self.values) == 1:
			return self.values[0]
		return self.values

	def __len__(self) -> int:
		return self.cardinality

	def __bool__(self) -> bool:
		# present in the record, even when every element is missing
		return True

	def __iter__(self) -> Iterator[Any]:
		if self.kind is ValueKind.MISSING:
			return iter(())
		return iter(self.values)

	def __getitem__(self, index):
		if self.kind is ValueKind.MISSING:
			raise IndexError("value is missing")
		return self.values[index]

	def to_numpy(self) -> np.ma.MaskedArray:
		"""Return numeric elements as a masked array; MISSING elements are masked."""
		if self.kind is ValueKind.FLOAT:
			dtype = np.float32
		elif self.kind in (ValueKind.INT8, ValueKind.INT16, ValueKind.INT32):
			dtype = np.int32
		elif self.kind is ValueKind.MISSING:
			return np.ma.masked_all(len(self.values), dtype=np.float32)
		else:
			raise TypeError(f"{self.kind.value} value has no numeric array form")
		mask = np.array([v is None for v in self.values], dtype=bool)
		data = np.array([0 if v is None else v for v in self.values], dtype=dtype)
		return np.ma.masked_array(data, mask=mask)

	def to_vcf(self) -> str:
		"""Render the value the way it appears in VCF text."""
		if self.kind is ValueKind.MISSING:
			return "."
		if self.kind is ValueKind.FLAG:
			return ""
		if self.kind is ValueKind.FLOAT:
			return ",".join("." if v is None else f"{v:g}" for v in self.values)
		return ",".join("." if v is None else str(v) for v in self.values)

	def encode(self) -> bytes:
		"""Encode back into descriptor + payload bytes."""
		if self.kind is ValueKind.FLAG:
			return encode_descriptor(BCFType.NULL, 0)
		if self.storage is BCFType.NULL:
			return encode_descriptor(BCFType.NULL, self.width)
		if self.storage is BCFType.CHAR:
			text = "" if self.kind is ValueKind.MISSING else ",".join("." if v is None else str(v) for v in self.values)
			return encode_typed(text, BCFType.CHAR, self.width)
		return encode_typed(list(self.values), self.storage, self.width)


# -- decoding ---------------------------------------------------------------

def _type_from_tag(tag: int, offset: int) -> BCFType:
	try:
		return _TAGS[tag]
	except KeyError:
		raise MalformedEncoding(f"unknown type tag {tag}", offset=offset) from None


def _read_int(buf, bcf_type: BCFType, offset: int) -> int:
	size = _SIZES[bcf_type]
	if offset + size > len(buf):
		raise MalformedEncoding(
			f"{bcf_type.name} scalar needs {size} bytes, {max(len(buf) - offset, 0)} remain", offset=offset
		)
	return int(np.frombuffer(buf, dtype=_DTYPES[bcf_type], count=1, offset=offset)[0])


def decode_descriptor(buf, offset: int = 0) -> Tuple[BCFType, int, int]:
	"""Decode a descriptor byte and its optional overflow count.

	Returns
	-------
	(bcf_type, count, bytes_consumed)
	"""
	if offset >= len(buf):
		raise MalformedEncoding("descriptor byte past end of block", offset=offset)
	byte = buf[offset]
	bcf_type = _type_from_tag(byte & 0x0F, offset)
	count = byte >> 4
	consumed = 1
	if count == 15:
		# the count itself is one typed scalar integer; it never overflows again
		if offset + 1 >= len(buf):
			raise MalformedEncoding("overflow count past end of block", offset=offset + 1)
		count_byte = buf[offset + 1]
		count_type = _type_from_tag(count_byte & 0x0F, offset + 1)
		if count_type not in INT_TYPES or count_byte >> 4 != 1:
			raise MalformedEncoding(
				f"overflow count must be a scalar integer, got descriptor 0x{count_byte:02x}", offset=offset
			)
		count = _read_int(buf, count_type, offset + 2)
		if count < 0:
			raise MalformedEncoding(f"negative overflow count {count}", offset=offset)
		consumed += 1 + _SIZES[count_type]
	return bcf_type, count, consumed


def read_array(buf, bcf_type: BCFType, count: int, offset: int) -> np.ndarray:
	"""Read ``count`` physical elements of ``bcf_type`` starting at ``offset``."""
	if bcf_type is BCFType.NULL or count == 0:
		return np.empty(0, dtype=_DTYPES.get(bcf_type, np.dtype("u1")))
	size = count * _SIZES[bcf_type]
	if offset + size > len(buf):
		raise MalformedEncoding(
			f"{count} x {bcf_type.name} needs {size} bytes, {max(len(buf) - offset, 0)} remain", offset=offset
		)
	return np.frombuffer(buf, dtype=_DTYPES[bcf_type], count=count, offset=offset)


def _decode_text(data: bytes, offset: int) -> str:
	try:
		return data.decode("utf-8")
	except UnicodeDecodeError as exc:
		raise MalformedEncoding(f"string is not valid UTF-8: {exc.reason}", offset=offset) from None


def values_from_array(bcf_type: BCFType, raw: np.ndarray, offset: int = 0) -> TypedValue:
	"""Apply the sentinel policy to one physical vector.

	``raw`` holds the physical elements as returned by :func:`read_array`
	(float vectors as uint32 words). ``offset`` is only used in errors.
	"""
	width = len(raw)
	if bcf_type is BCFType.NULL:
		return TypedValue.missing(BCFType.NULL, width)

	if bcf_type is BCFType.CHAR:
		data = raw.tobytes()
		if width == 1 and data == b"\x00":
			return TypedValue.missing(BCFType.CHAR, width)
		text = _decode_text(data.split(b"\x00", 1)[0], offset)
		if text in ("", "."):
			return TypedValue.missing(BCFType.CHAR, width)
		return TypedValue(ValueKind.STRING, (text,), BCFType.CHAR, width)

	if bcf_type is BCFType.FLOAT:
		eov = np.flatnonzero(raw == FLOAT_END_OF_VECTOR_BITS)
		logical = raw[: eov[0]] if len(eov) else raw
		missing = logical == FLOAT_MISSING_BITS
		floats = logical.view("<f4")
		values = tuple(None if m else float(v) for v, m in zip(floats, missing))
	else:
		eov = np.flatnonzero(raw == INT_END_OF_VECTOR[bcf_type])
		logical = raw[: eov[0]] if len(eov) else raw
		missing = logical == INT_MISSING[bcf_type]
		values = tuple(None if m else int(v) for v, m in zip(logical, missing))

	if not values or all(v is None for v in values):
		return TypedValue(ValueKind.MISSING, values, bcf_type, width)
	return TypedValue(_KIND_OF[bcf_type], values, bcf_type, width)


def decode_typed(buf, offset: int = 0) -> Tuple[TypedValue, int]:
	"""Decode one typed value at ``offset``.

	Returns
	-------
	(TypedValue, bytes_consumed)

	Raises
	------
	MalformedEncoding
		Unknown type tag, invalid overflow count, or fewer bytes remaining
		than the descriptor declares.
	"""
	bcf_type, count, head = decode_descriptor(buf, offset)
	raw = read_array(buf, bcf_type, count, offset + head)
	return values_from_array(bcf_type, raw, offset), head + count * _SIZES[bcf_type]


def decode_typed_int(buf, offset: int = 0) -> Tuple[int, int]:
	"""Decode a typed scalar integer, e.g. a dictionary key."""
	bcf_type, count, head = decode_descriptor(buf, offset)
	if bcf_type not in INT_TYPES or count != 1:
		raise MalformedEncoding(f"expected a typed integer, got {count} x {bcf_type.name}", offset=offset)
	value = _read_int(buf, bcf_type, offset + head)
	if value in (INT_MISSING[bcf_type], INT_END_OF_VECTOR[bcf_type]):
		raise MalformedEncoding("typed integer holds a sentinel", offset=offset)
	return value, head + _SIZES[bcf_type]


def decode_typed_string(buf, offset: int = 0) -> Tuple[str, int]:
	"""Decode a typed character vector as text; trailing NUL padding is dropped."""
	bcf_type, count, head = decode_descriptor(buf, offset)
	if bcf_type is BCFType.NULL:
		return "", head
	if bcf_type is not BCFType.CHAR:
		raise MalformedEncoding(f"expected a typed string, got {bcf_type.name}", offset=offset)
	raw = read_array(buf, bcf_type, count, offset + head)
	return _decode_text(raw.tobytes().split(b"\x00", 1)[0], offset), head + count


# -- encoding ---------------------------------------------------------------

def smallest_int_type(values: Iterable[Optional[int]]) -> BCFType:
	"""Pick the narrowest integer type able to hold every non-missing value."""
	present = [v for v in values if v is not None]
	if not present:
		return BCFType.INT8
	lo, hi = min(present), max(present)
	for bcf_type in INT_TYPES:
		if _INT_MIN[bcf_type] <= lo and hi <= _INT_MAX[bcf_type]:
			return bcf_type
	raise ValueError(f"integer range {lo}..{hi} does not fit int32")


def encode_descriptor(bcf_type: BCFType, count: int) -> bytes:
	if count < 0:
		raise ValueError("count must be non-negative")
	if count < 15:
		return bytes([(count << 4) | bcf_type])
	return bytes([0xF0 | bcf_type]) + encode_typed(count)


def encode_typed(
	values: Union[None, int, float, str, Sequence[Any]],
	bcf_type: Optional[BCFType] = None,
	width: Optional[int] = None,
) -> bytes:
	"""Encode Python values as a typed value.

	``None`` elements are written as MISSING; vectors shorter than ``width``
	are padded with END-OF-VECTOR (strings with NUL bytes). When
	``bcf_type`` is omitted, strings become CHAR, floats FLOAT and integers the
	smallest integer type that fits.
	"""
	if isinstance(values, (bytes, str)):
		data = values.encode("utf-8") if isinstance(values, str) else values
		if bcf_type not in (None, BCFType.CHAR):
			raise ValueError(f"cannot encode text as {bcf_type.name}")
		width = len(data) if width is None else width
		if len(data) > width:
			raise ValueError(f"string of {len(data)} bytes exceeds width {width}")
		return encode_descriptor(BCFType.CHAR, width) + data.ljust(width, b"\x00")

	if values is None or not isinstance(values, (list, tuple)):
		values = [values]
	values = list(values)
	if bcf_type is None:
		if any(isinstance(v, float) for v in values):
			bcf_type = BCFType.FLOAT
		else:
			bcf_type = smallest_int_type(values)
	width = len(values) if width is None else width
	if len(values) > width:
		raise ValueError(f"{len(values)} values exceed width {width}")
	if bcf_type is BCFType.NULL:
		return encode_descriptor(BCFType.NULL, width)

	padding = width - len(values)
	if bcf_type is BCFType.FLOAT:
		words = np.array([0 if v is None else v for v in values], dtype="<f4").view("<u4")
		words[[v is None for v in values]] = FLOAT_MISSING_BITS
		payload = np.concatenate([words, np.full(padding, FLOAT_END_OF_VECTOR_BITS, dtype="<u4")])
	elif bcf_type in INT_TYPES:
		ints = [INT_MISSING[bcf_type] if v is None else int(v) for v in values]
		ints.extend([INT_END_OF_VECTOR[bcf_type]] * padding)
		payload = np.array(ints, dtype=_DTYPES[bcf_type])
	else:
		raise ValueError(f"cannot encode numeric values as {bcf_type.name}")
	return encode_descriptor(bcf_type, width) + payload.tobytes()
