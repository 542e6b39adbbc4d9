"""Header dictionary builder.

A BCF body never spells out contig, FILTER, INFO or FORMAT names; it stores
small integer IDs that index dictionaries derived from the VCF header text
embedded at the start of the file. :func:`build_dictionary` turns that text
into an immutable :class:`Dictionary` holding one :class:`Namespace` per key
kind plus the ordered sample names.

ID schemes
----------
namespace
	Each namespace numbers its first-seen keys 0, 1, 2, ... in declaration
	order. FILTER reserves 0 for the implicit ``PASS``.
shared
	FILTER, INFO and FORMAT draw from one string dictionary (``PASS`` = 0; a
	key declared in several namespaces keeps one ID), as BCF 2.2 writers do.
	An explicit ``IDX=`` attribute overrides the running counter. Contigs keep
	their own counter, also honouring ``IDX=``.
auto
	``shared`` when any definition carries ``IDX=``, else ``namespace``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from math import comb
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from ..config import ID_SCHEMES, VCF_FIXED_COLUMNS
from ..core.errors import DuplicateDefinition, InvalidHeader, UnknownDictionaryId

__all__ = [
	"HeaderEntry",
	"Namespace",
	"Dictionary",
	"build_dictionary",
	"parse_structured",
]

logger = logging.getLogger(__name__)

CONTIG, FILTER, INFO, FORMAT = "contig", "FILTER", "INFO", "FORMAT"
_STRUCTURED = (CONTIG, FILTER, INFO, FORMAT)
_TYPED = (INFO, FORMAT)

VALUE_TYPES = ("Integer", "Float", "Character", "String", "Flag")
NUMBER_CODES = (".", "A", "R", "G")
PASS = "PASS"


@dataclass(frozen=True)
class HeaderEntry:
	"""One ``##contig`` / ``##FILTER`` / ``##INFO`` / ``##FORMAT`` definition."""

	name: str
	id: int
	namespace: str
	number: Optional[str] = None
	type: Optional[str] = None
	description: Optional[str] = None
	length: Optional[int] = None
	attributes: Mapping[str, str] = field(default_factory=dict, compare=False, repr=False)

	@property
	def fixed_count(self) -> Optional[int]:
		if self.number is not None and self.number.isdigit():
			return int(self.number)
		return None

	def expected_length(self, n_allele: int, ploidy: int = 2) -> Optional[int]:
		"""Resolve ``Number`` against a record's allele count and a sample's ploidy.

		Returns ``None`` for ``Number=.`` (and entries without a Number).
		"""
		if self.number is None or self.number == ".":
			return None
		if self.number == "A":
			return max(n_allele - 1, 0)
		if self.number == "R":
			return n_allele
		if self.number == "G":
			if ploidy <= 0:
				return 0
			return comb(n_allele + ploidy - 1, ploidy)
		return int(self.number)


class Namespace(Mapping):
	"""Immutable, ordered name <-> ID table for one kind of header key.

	Iterates names in declaration order; ``namespace["DP"]`` returns the
	:class:`HeaderEntry`.
	"""

	def __init__(self, name: str, entries: List[HeaderEntry]):
		self.name = name
		self._by_name: Dict[str, HeaderEntry] = {e.name: e for e in entries}
		self._by_id: Dict[int, HeaderEntry] = {e.id: e for e in entries}

	def __getitem__(self, key: str) -> HeaderEntry:
		return self._by_name[key]

	def __iter__(self) -> Iterator[str]:
		return iter(self._by_name)

	def __len__(self) -> int:
		return len(self._by_name)

	def __repr__(self) -> str:
		return f"Namespace({self.name!r}, {[(e.name, e.id) for e in self._by_name.values()]})"

	def by_id(self, key_id: int, offset: Optional[int] = None) -> HeaderEntry:
		try:
			return self._by_id[key_id]
		except KeyError:
			raise UnknownDictionaryId(self.name, key_id, offset=offset) from None

	def has_id(self, key_id: int) -> bool:
		return key_id in self._by_id

	def id_of(self, name: str) -> int:
		return self._by_name[name].id

	def name_of(self, key_id: int) -> str:
		return self.by_id(key_id).name

	def ids(self) -> Dict[str, int]:
		return {n: e.id for n, e in self._by_name.items()}


@dataclass(frozen=True)
class Dictionary:
	"""Per-file lookup tables built once from the header text.

	Shared read-only by every record decoded from the same stream.
	"""

	contigs: Namespace
	filters: Namespace
	info: Namespace
	formats: Namespace
	samples: Tuple[str, ...]
	meta: Tuple[Tuple[str, str], ...] = ()
	text: str = field(default="", repr=False)
	id_scheme: str = "namespace"

	@classmethod
	def build(cls, header_text: Union[str, bytes], id_scheme: str = "auto") -> "Dictionary":
		return build_dictionary(header_text, id_scheme=id_scheme)

	@property
	def fileformat(self) -> Optional[str]:
		for key, value in self.meta:
			if key == "fileformat":
				return value
		return None

	@property
	def n_sample(self) -> int:
		return len(self.samples)

	def sample_index(self, name: str) -> int:
		try:
			return self.samples.index(name)
		except ValueError:
			raise KeyError(f"sample {name!r} not in header") from None

	def namespace(self, name: str) -> Namespace:
		return {CONTIG: self.contigs, FILTER: self.filters, INFO: self.info, FORMAT: self.formats}[name]


# -- parsing ----------------------------------------------------------------

def parse_structured(text: str) -> Dict[str, str]:
	"""Parse ``<ID=DP,Number=1,Description="a, b">`` into an ordered dict.

	Quoted values may contain commas and ``\\"`` / ``\\\\`` escapes.
	"""
	if not (text.startswith("<") and text.endswith(">")):
		raise ValueError("structured value must be enclosed in <>")
	body = text[1:-1]
	out: Dict[str, str] = {}
	i, n = 0, len(body)
	while i < n:
		eq = body.find("=", i)
		if eq < 0:
			raise ValueError(f"missing '=' in {body[i:]!r}")
		key = body[i:eq].strip()
		i = eq + 1
		if i < n and body[i] == '"':
			i += 1
			chars = []
			while i < n and body[i] != '"':
				if body[i] == "\\" and i + 1 < n:
					i += 1
				chars.append(body[i])
				i += 1
			if i >= n:
				raise ValueError("unterminated quoted value")
			value = "".join(chars)
			i += 1
		else:
			comma = body.find(",", i)
			end = n if comma < 0 else comma
			value = body[i:end]
			i = end
		out[key] = value
		if i < n:
			if body[i] != ",":
				raise ValueError(f"expected ',' after {key}=, found {body[i]!r}")
			i += 1
	return out


@dataclass
class _Definition:
	namespace: str
	name: str
	attrs: Dict[str, str]
	offset: int


def _signature(attrs: Mapping[str, str]) -> str:
	return f"Number={attrs.get('Number')},Type={attrs.get('Type')}"


def _check_typed(defn: _Definition) -> None:
	number, vtype = defn.attrs.get("Number"), defn.attrs.get("Type")
	if number is None or vtype is None:
		raise InvalidHeader(f"{defn.namespace} {defn.name!r} lacks Number or Type", offset=defn.offset)
	if not (number.isdigit() or number in NUMBER_CODES):
		raise InvalidHeader(f"{defn.namespace} {defn.name!r} has invalid Number={number}", offset=defn.offset)
	if vtype not in VALUE_TYPES:
		raise InvalidHeader(f"{defn.namespace} {defn.name!r} has invalid Type={vtype}", offset=defn.offset)


def _parse_idx(defn: _Definition) -> Optional[int]:
	raw = defn.attrs.get("IDX")
	if raw is None:
		return None
	if not raw.isdigit():
		raise InvalidHeader(f"{defn.namespace} {defn.name!r} has invalid IDX={raw}", offset=defn.offset)
	return int(raw)


def _scan(text: str):
	"""Collect definitions, meta lines and sample names in file order."""
	definitions: List[_Definition] = []
	seen: Dict[Tuple[str, str], _Definition] = {}
	meta: List[Tuple[str, str]] = []
	samples: Optional[Tuple[str, ...]] = None
	offset = 0
	for raw_line in text.split("\n"):
		line_offset = offset
		offset += len(raw_line.encode("utf-8")) + 1
		line = raw_line.rstrip("\r")
		if not line:
			continue
		if samples is not None:
			raise InvalidHeader("unexpected text after the #CHROM line", offset=line_offset)
		if line.startswith("##"):
			key, _sep, value = line[2:].partition("=")
			if key not in _STRUCTURED:
				meta.append((key, value))
				continue
			try:
				attrs = parse_structured(value)
			except ValueError as exc:
				raise InvalidHeader(f"cannot parse ##{key} line: {exc}", offset=line_offset) from None
			name = attrs.get("ID")
			if not name:
				raise InvalidHeader(f"##{key} line without ID", offset=line_offset)
			defn = _Definition(key, name, attrs, line_offset)
			if key in _TYPED:
				_check_typed(defn)
			previous = seen.get((key, name))
			if previous is not None:
				if key in _TYPED and _signature(previous.attrs) != _signature(attrs):
					raise DuplicateDefinition(
						key, name, _signature(previous.attrs), _signature(attrs), offset=line_offset
					)
				continue
			seen[(key, name)] = defn
			definitions.append(defn)
		elif line.startswith("#CHROM"):
			columns = line.split("\t")
			if tuple(columns[:8]) != VCF_FIXED_COLUMNS[:8]:
				raise InvalidHeader(f"malformed column header line: {line[:80]!r}", offset=line_offset)
			if len(columns) > 8 and columns[8] != VCF_FIXED_COLUMNS[8]:
				raise InvalidHeader(f"expected FORMAT as ninth column, found {columns[8]!r}", offset=line_offset)
			samples = tuple(columns[len(VCF_FIXED_COLUMNS):])
		else:
			raise InvalidHeader(f"unexpected header line: {line[:80]!r}", offset=line_offset)
	if samples is None:
		raise InvalidHeader("header has no #CHROM column line", offset=offset)
	return definitions, meta, samples


def _assign_namespace_ids(definitions: List[_Definition]) -> Dict[Tuple[str, str], int]:
	counters = {ns: 0 for ns in _STRUCTURED}
	ids = {(FILTER, PASS): 0}
	counters[FILTER] = 1
	for defn in definitions:
		key = (defn.namespace, defn.name)
		if key in ids:
			continue
		ids[key] = counters[defn.namespace]
		counters[defn.namespace] += 1
	return ids


def _assign_shared_ids(definitions: List[_Definition]) -> Dict[Tuple[str, str], int]:
	strings: Dict[str, int] = {PASS: 0}
	contigs: Dict[str, int] = {}
	ids: Dict[Tuple[str, str], int] = {}
	for defn in definitions:
		table = contigs if defn.namespace == CONTIG else strings
		idx = _parse_idx(defn)
		current = table.get(defn.name)
		if idx is None:
			idx = current if current is not None else max(table.values(), default=-1) + 1
		elif current is not None and current != idx:
			raise InvalidHeader(
				f"{defn.name!r} declared with IDX={idx} but already holds IDX={current}", offset=defn.offset
			)
		else:
			holder = next((n for n, i in table.items() if i == idx and n != defn.name), None)
			if holder is not None:
				raise InvalidHeader(f"IDX={idx} of {defn.name!r} already used by {holder!r}", offset=defn.offset)
		table[defn.name] = idx
		ids[(defn.namespace, defn.name)] = idx
	ids.setdefault((FILTER, PASS), 0)
	return ids


def _entry(defn: _Definition, key_id: int) -> HeaderEntry:
	attrs = defn.attrs
	length = attrs.get("length")
	return HeaderEntry(
		name=defn.name,
		id=key_id,
		namespace=defn.namespace,
		number=attrs.get("Number"),
		type=attrs.get("Type"),
		description=attrs.get("Description"),
		length=int(length) if length is not None and length.isdigit() else None,
		attributes=MappingProxyType(dict(attrs)),
	)


def build_dictionary(header_text: Union[str, bytes], id_scheme: str = "auto") -> Dictionary:
	"""Build the per-file :class:`Dictionary` from VCF header text.

	Parameters
	----------
	header_text : str | bytes
		Header text as embedded in the BCF file; trailing NUL padding is
		ignored.
	id_scheme : str
		``"auto"``, ``"namespace"`` or ``"shared"`` (see module docstring).

	Raises
	------
	InvalidHeader
		No ``#CHROM`` line, an unparseable definition, or an invalid
		Type / Number / IDX value.
	DuplicateDefinition
		An INFO or FORMAT key declared twice with different Type/Number.
	"""
	if id_scheme not in ID_SCHEMES:
		raise ValueError(f"id_scheme must be one of {ID_SCHEMES}, got {id_scheme!r}")
	if isinstance(header_text, (bytes, bytearray, memoryview)):
		try:
			header_text = bytes(header_text).decode("utf-8")
		except UnicodeDecodeError as exc:
			raise InvalidHeader(f"header text is not valid UTF-8: {exc.reason}", offset=exc.start) from None
	text = header_text.rstrip("\x00")

	definitions, meta, samples = _scan(text)
	if id_scheme == "auto":
		id_scheme = "shared" if any("IDX" in d.attrs for d in definitions) else "namespace"
	if id_scheme == "shared":
		ids = _assign_shared_ids(definitions)
	else:
		ids = _assign_namespace_ids(definitions)

	grouped: Dict[str, List[HeaderEntry]] = {ns: [] for ns in _STRUCTURED}
	explicit_pass = any(d.namespace == FILTER and d.name == PASS for d in definitions)
	if not explicit_pass:
		grouped[FILTER].append(
			HeaderEntry(PASS, ids[(FILTER, PASS)], FILTER, description="All filters passed")
		)
	for defn in definitions:
		grouped[defn.namespace].append(_entry(defn, ids[(defn.namespace, defn.name)]))
	# PASS leads the FILTER namespace even when declared late
	grouped[FILTER].sort(key=lambda e: e.name != PASS)

	dictionary = Dictionary(
		contigs=Namespace(CONTIG, grouped[CONTIG]),
		filters=Namespace(FILTER, grouped[FILTER]),
		info=Namespace(INFO, grouped[INFO]),
		formats=Namespace(FORMAT, grouped[FORMAT]),
		samples=samples,
		meta=tuple(meta),
		text=text,
		id_scheme=id_scheme,
	)
	logger.debug(
		"header: %d contigs, %d filters, %d info, %d format keys, %d samples (%s ids)",
		len(dictionary.contigs), len(dictionary.filters), len(dictionary.info),
		len(dictionary.formats), len(samples), id_scheme,
	)
	return dictionary
