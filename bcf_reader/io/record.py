"""Record decoder.

A record frame holds two blocks:

shared block
	chrom_id, pos (0-based), ref_len, quality, the packed words
	``n_allele << 16 | n_info`` and ``n_fmt << 24 | n_sample``, the ID, the
	alleles, the FILTER vector and ``n_info`` (key, value) pairs.
individual block
	``n_fmt`` FORMAT columns: key, one descriptor shared by all samples, then
	``n_sample`` slots of identical width.

Decoding runs in two phases. Phase one is purely physical: typed values and
``(n_sample, width)`` slot arrays. Phase two (:func:`resolve_value`) applies
the header's Type/Number to the physical values: ``A``/``R``/``G`` counts
against the record's allele count and each sample's ploidy, comma split of
multi-valued strings, flags.
"""

from __future__ import annotations

import dataclasses
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

import numpy as np

from ..core.errors import BCFError, MalformedEncoding, TruncatedRecord
from ..core.typed_value import (
	FLOAT_END_OF_VECTOR_BITS,
	FLOAT_MISSING_BITS,
	INT_END_OF_VECTOR,
	INT_MISSING,
	BCFType,
	TypedValue,
	ValueKind,
	decode_descriptor,
	decode_typed,
	decode_typed_int,
	decode_typed_string,
	element_size,
	read_array,
	values_from_array,
)
from ..utils import Genotype, decode_genotype
from .header import Dictionary, HeaderEntry

__all__ = ["Record", "SampleView", "FormatColumn", "decode_record", "resolve_value", "SHARED_FIXED_SIZE"]

logger = logging.getLogger(__name__)

_SHARED_FIXED = np.dtype([
	("chrom", "<i4"),
	("pos", "<i4"),
	("rlen", "<i4"),
	("qual", "<u4"),
	("n_allele_info", "<u4"),
	("n_fmt_sample", "<u4"),
])
SHARED_FIXED_SIZE = _SHARED_FIXED.itemsize  # 24

# Frame layout: l_shared and l_indiv precede the shared block.
_FRAME_PREFIX = 8


@contextmanager
def _locating(base_offset: Optional[int], record_index: Optional[int]):
	try:
		yield
	except BCFError as exc:
		exc.locate(base_offset=base_offset, record_index=record_index)
		raise


def resolve_value(
	entry: HeaderEntry, value: TypedValue, n_allele: int, ploidy: Optional[int] = None
) -> TypedValue:
	"""Interpret a physical value against its header definition.

	Vectors longer than the count implied by ``Number`` (fixed, ``A``, ``R``
	or ``G`` with the given ploidy) are cut to that count; the dropped
	elements are reported at DEBUG level. ``ploidy`` of
	``None`` leaves ``G`` fields as stored.
	"""
	if entry.type == "Flag":
		return TypedValue.flag()
	if value.is_missing:
		return value
	# GT is declared Number=1 but stores one integer per allele
	if entry.namespace == "FORMAT" and entry.name == "GT":
		return value
	expected = None
	if entry.number != "G" or ploidy:
		expected = entry.expected_length(n_allele, ploidy or 2)
	if value.storage is BCFType.CHAR:
		kind = ValueKind.CHARACTER if entry.type == "Character" else ValueKind.STRING
		text = value.values[0]
		if entry.fixed_count == 1:
			return TypedValue(kind, (text,), value.storage, value.width)
		parts = tuple(None if p == "." else p for p in text.split(","))
		if expected is not None and len(parts) > expected:
			logger.debug("%s: %d values stored, Number=%s keeps %d", entry.name, len(parts), entry.number, expected)
			parts = parts[:expected]
		return TypedValue(kind, parts, value.storage, value.width)
	if expected is not None and len(value.values) > expected:
		logger.debug("%s: %d values stored, Number=%s keeps %d", entry.name, len(value.values), entry.number, expected)
		return dataclasses.replace(value, values=value.values[:expected])
	return value


@dataclass(frozen=True, eq=False)
class FormatColumn:
	"""Physical FORMAT data: one fixed-width slot per sample.

	``data`` is a read-only ``(n_sample, width)`` array in storage layout
	(float slots as uint32 words, characters as uint8).
	"""

	entry: HeaderEntry
	storage: BCFType
	width: int
	data: np.ndarray = field(repr=False)

	@property
	def name(self) -> str:
		return self.entry.name

	def sample_value(self, index: int) -> TypedValue:
		return values_from_array(self.storage, self.data[index])

	def to_numpy(self) -> np.ndarray:
		"""Rectangular view with sentinels resolved.

		Numeric columns become a masked ``(n_sample, width)`` array; MISSING
		slots and every slot from END-OF-VECTOR onward are masked. Character
		columns become an object array with one string (or ``None``) per
		sample.
		"""
		if self.storage is BCFType.CHAR:
			return np.array([self.sample_value(i).value for i in range(len(self.data))], dtype=object)
		if self.storage is BCFType.NULL:
			return np.ma.masked_all((len(self.data), 0), dtype=np.int32)
		if self.storage is BCFType.FLOAT:
			missing, eov = FLOAT_MISSING_BITS, FLOAT_END_OF_VECTOR_BITS
			values = self.data.view("<f4").astype(np.float32)
		else:
			missing, eov = INT_MISSING[self.storage], INT_END_OF_VECTOR[self.storage]
			values = self.data.astype(np.int32)
		padded = np.logical_or.accumulate(self.data == eov, axis=1)
		return np.ma.masked_array(values, mask=padded | (self.data == missing))


class SampleView(Mapping):
	"""FORMAT key -> resolved :class:`TypedValue` for one sample of one record."""

	def __init__(self, record: "Record", index: int):
		self._record = record
		self.index = index

	@property
	def name(self) -> str:
		return self._record.dictionary.samples[self.index]

	@property
	def genotype(self) -> Optional[Genotype]:
		genotypes = self._record.genotypes
		return None if genotypes is None else genotypes[self.index]

	def __getitem__(self, key: str) -> TypedValue:
		values = self._record.format(key)
		if values is None:
			raise KeyError(key)
		return values[self.index]

	def __iter__(self) -> Iterator[str]:
		return iter(self._record.format_keys)

	def __len__(self) -> int:
		return len(self._record.format_keys)

	def __repr__(self) -> str:
		return f"SampleView({self.name!r}, {dict(self)!r})"


@dataclass(frozen=True, eq=False)
class Record:
	"""One variant site decoded from a BCF record frame.

	Site-level fields are decoded up front. INFO and FORMAT data are decoded
	on first access (or immediately when produced with ``lazy=False``) and
	cached; a record never changes after it is handed out and owns the bytes
	it was decoded from.
	"""

	dictionary: Dictionary = field(repr=False)
	chrom_id: int
	pos: int
	ref_len: int
	quality: Optional[float]
	id: Optional[str]
	alleles: Tuple[str, ...]
	filter_ids: Tuple[int, ...]
	n_info: int = field(repr=False)
	n_sample: int = field(repr=False)
	n_fmt: int = field(repr=False)
	record_index: Optional[int] = field(default=None, repr=False)
	offset: Optional[int] = field(default=None, repr=False)
	shared: bytes = field(default=b"", repr=False)
	indiv: bytes = field(default=b"", repr=False)
	info_start: int = field(default=0, repr=False)

	# -- site ----------------------------------------------------------------
	@property
	def chrom(self) -> str:
		return self.dictionary.contigs.name_of(self.chrom_id)

	@property
	def end(self) -> int:
		"""0-based exclusive end of the reference span."""
		return self.pos + self.ref_len

	@property
	def n_allele(self) -> int:
		return len(self.alleles)

	@property
	def ref(self) -> str:
		return self.alleles[0] if self.alleles else ""

	@property
	def alts(self) -> Tuple[str, ...]:
		return self.alleles[1:]

	@property
	def filters(self) -> Tuple[str, ...]:
		return tuple(self.dictionary.filters.name_of(i) for i in self.filter_ids)

	@property
	def passed(self) -> bool:
		"""True when FILTER is exactly PASS."""
		return self.filters == ("PASS",)

	def _block_offset(self, block: str) -> Optional[int]:
		if self.offset is None:
			return None
		base = self.offset + _FRAME_PREFIX
		return base if block == "shared" else base + len(self.shared)

	# -- INFO ----------------------------------------------------------------
	@cached_property
	def info_by_id(self) -> Mapping[int, TypedValue]:
		"""Physical INFO values keyed by dictionary ID, in record order."""
		buf, cursor = self.shared, self.info_start
		out: Dict[int, TypedValue] = {}
		with _locating(self._block_offset("shared"), self.record_index):
			for _ in range(self.n_info):
				key_offset = cursor
				key_id, used = decode_typed_int(buf, cursor)
				cursor += used
				self.dictionary.info.by_id(key_id, offset=key_offset)
				if key_id in out:
					raise MalformedEncoding(f"INFO id {key_id} repeated", offset=key_offset)
				out[key_id], used = decode_typed(buf, cursor)
				cursor += used
		return MappingProxyType(out)

	@cached_property
	def info(self) -> Mapping[str, TypedValue]:
		"""Resolved INFO values keyed by name; absent keys are simply not present."""
		out: Dict[str, TypedValue] = {}
		with _locating(self._block_offset("shared"), self.record_index):
			for key_id, value in self.info_by_id.items():
				entry = self.dictionary.info.by_id(key_id)
				ploidy = self._site_ploidy if entry.number == "G" else None
				out[entry.name] = resolve_value(entry, value, self.n_allele, ploidy)
		return MappingProxyType(out)

	def get_info(self, name: str, default=None):
		return self.info.get(name, default)

	# -- FORMAT --------------------------------------------------------------
	@cached_property
	def format_columns(self) -> Mapping[str, FormatColumn]:
		"""Phase one: physical FORMAT slots keyed by name, in record order."""
		buf, cursor = self.indiv, 0
		columns: Dict[str, FormatColumn] = {}
		with _locating(self._block_offset("indiv"), self.record_index):
			if self.n_fmt and self.n_sample != self.dictionary.n_sample:
				raise MalformedEncoding(
					f"record has {self.n_sample} samples, header declares {self.dictionary.n_sample}"
				)
			for _ in range(self.n_fmt):
				key_offset = cursor
				key_id, used = decode_typed_int(buf, cursor)
				cursor += used
				entry = self.dictionary.formats.by_id(key_id, offset=key_offset)
				if entry.name in columns:
					raise MalformedEncoding(f"FORMAT {entry.name} repeated", offset=key_offset)
				bcf_type, width, used = decode_descriptor(buf, cursor)
				cursor += used
				if bcf_type is BCFType.NULL:
					data = np.empty((self.n_sample, 0), dtype=np.uint8)
				else:
					data = read_array(buf, bcf_type, width * self.n_sample, cursor).reshape(self.n_sample, width)
				cursor += width * self.n_sample * element_size(bcf_type)
				columns[entry.name] = FormatColumn(entry, bcf_type, width, data)
		return MappingProxyType(columns)

	@property
	def format_keys(self) -> Tuple[str, ...]:
		return tuple(self.format_columns)

	@cached_property
	def ploidy(self) -> Tuple[Optional[int], ...]:
		"""Per-sample ploidy read from each sample's own GT slot (``None`` without GT)."""
		column = self.format_columns.get("GT")
		if column is None:
			return (None,) * self.n_sample
		return tuple(len(column.sample_value(i).values) for i in range(self.n_sample))

	@property
	def _site_ploidy(self) -> Optional[int]:
		if not self.n_fmt:
			return None
		known = [p for p in self.ploidy if p]
		return max(known) if known else None

	@cached_property
	def _format_values(self) -> Mapping[str, Tuple[TypedValue, ...]]:
		out = {}
		with _locating(self._block_offset("indiv"), self.record_index):
			for name, column in self.format_columns.items():
				out[name] = tuple(
					resolve_value(column.entry, column.sample_value(i), self.n_allele, self.ploidy[i])
					for i in range(self.n_sample)
				)
		return MappingProxyType(out)

	def format(self, name: str) -> Optional[Tuple[TypedValue, ...]]:
		"""Resolved per-sample values of one FORMAT key, ``None`` when absent."""
		return self._format_values.get(name)

	def format_array(self, name: str) -> Optional[np.ndarray]:
		"""Rectangular ``(n_sample, width)`` view of one FORMAT key, ``None`` when absent."""
		column = self.format_columns.get(name)
		return None if column is None else column.to_numpy()

	@cached_property
	def samples(self) -> Tuple[SampleView, ...]:
		return tuple(SampleView(self, i) for i in range(self.n_sample))

	def sample(self, key: Union[int, str]) -> SampleView:
		index = self.dictionary.sample_index(key) if isinstance(key, str) else key
		return self.samples[index]

	@cached_property
	def genotypes(self) -> Optional[Tuple[Genotype, ...]]:
		values = self.format("GT")
		if values is None:
			return None
		return tuple(decode_genotype(v) for v in values)


def _decode_filters(buf, cursor: int, dictionary: Dictionary) -> Tuple[Tuple[int, ...], int]:
	value, used = decode_typed(buf, cursor)
	if value.storage is BCFType.NULL:
		return (), used
	if value.storage not in (BCFType.INT8, BCFType.INT16, BCFType.INT32):
		raise MalformedEncoding(f"FILTER vector stored as {value.storage.name}", offset=cursor)
	if any(v is None for v in value.values):
		raise MalformedEncoding("FILTER vector holds a MISSING id", offset=cursor)
	for key_id in value.values:
		dictionary.filters.by_id(key_id, offset=cursor)
	return tuple(value.values), used


def decode_record(
	shared: bytes,
	indiv: bytes,
	dictionary: Dictionary,
	*,
	lazy: bool = False,
	record_index: Optional[int] = None,
	offset: Optional[int] = None,
) -> Record:
	"""Decode one record from its shared and individual blocks.

	Parameters
	----------
	shared, indiv : bytes
		The two blocks of one frame. They are copied into the record, so the
		caller may reuse its buffers.
	dictionary : Dictionary
		Header dictionary of the stream the frame came from.
	lazy : bool
		Defer INFO and FORMAT decoding (and their errors) to first access.
	record_index, offset : int | None
		Frame index and stream offset of the frame, reported in errors.

	Raises
	------
	TruncatedRecord
		Shared block shorter than its fixed fields.
	MalformedEncoding
		A typed value inconsistent with the bytes available.
	UnknownDictionaryId
		A contig, FILTER, INFO or FORMAT id absent from ``dictionary``.
	"""
	shared, indiv = bytes(shared), bytes(indiv)
	base = None if offset is None else offset + _FRAME_PREFIX
	with _locating(base, record_index):
		if len(shared) < SHARED_FIXED_SIZE:
			raise TruncatedRecord(
				f"shared block of {len(shared)} bytes is shorter than its {SHARED_FIXED_SIZE} fixed bytes", offset=0
			)
		fixed = np.frombuffer(shared, dtype=_SHARED_FIXED, count=1)[0]
		chrom_id = int(fixed["chrom"])
		dictionary.contigs.by_id(chrom_id, offset=0)
		if int(fixed["qual"]) == FLOAT_MISSING_BITS:
			quality = None
		else:
			quality = float(np.frombuffer(shared, dtype="<f4", count=1, offset=12)[0])
		n_allele_info = int(fixed["n_allele_info"])
		n_fmt_sample = int(fixed["n_fmt_sample"])

		cursor = SHARED_FIXED_SIZE
		ident, used = decode_typed_string(shared, cursor)
		cursor += used
		alleles = []
		for _ in range(n_allele_info >> 16):
			allele, used = decode_typed_string(shared, cursor)
			alleles.append(allele)
			cursor += used
		filter_ids, used = _decode_filters(shared, cursor, dictionary)
		cursor += used

	record = Record(
		dictionary=dictionary,
		chrom_id=chrom_id,
		pos=int(fixed["pos"]),
		ref_len=int(fixed["rlen"]),
		quality=quality,
		id=None if ident in ("", ".") else ident,
		alleles=tuple(alleles),
		filter_ids=filter_ids,
		n_info=n_allele_info & 0xFFFF,
		n_sample=n_fmt_sample & 0xFFFFFF,
		n_fmt=n_fmt_sample >> 24,
		record_index=record_index,
		offset=offset,
		shared=shared,
		indiv=indiv,
		info_start=cursor,
	)
	if not lazy:
		_ = record.info
		_ = record._format_values
	return record
