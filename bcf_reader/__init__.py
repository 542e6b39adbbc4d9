"""bcf_reader – a streaming decoder for BCF (binary VCF) files.

Subpackages:
	core      – typed value codec and error hierarchy
	io        – byte source, header dictionary, record decoder, stream reader
	tables    – pandas projections of decoded records

Most users only need::

	from bcf_reader import BCFReader

	with BCFReader("calls.bcf.gz") as reader:
		for rec in reader:
			rec.chrom, rec.pos, rec.alleles, rec.info.get("DP")
"""

from .config import ReaderOptions
from .core.errors import (
	BCFError,
	BadMagic,
	UnsupportedVersion,
	InvalidHeader,
	DuplicateDefinition,
	MalformedEncoding,
	UnknownDictionaryId,
	TruncatedRecord,
	IoFailure,
)
from .core.typed_value import BCFType, TypedValue, ValueKind
from .io import BCFReader, Dictionary, Record, ReaderState, build_dictionary, decode_record, read_bcf

__version__ = "0.1.0"
__all__ = [
	"BCFReader",
	"ReaderState",
	"ReaderOptions",
	"read_bcf",
	"Dictionary",
	"build_dictionary",
	"Record",
	"decode_record",
	"BCFType",
	"TypedValue",
	"ValueKind",
	"BCFError",
	"BadMagic",
	"UnsupportedVersion",
	"InvalidHeader",
	"DuplicateDefinition",
	"MalformedEncoding",
	"UnknownDictionaryId",
	"TruncatedRecord",
	"IoFailure",
	"__version__",
]
