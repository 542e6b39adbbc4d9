"""I/O subpackage.

	source     – decompressing byte source (gzip / BGZF detected by magic)
	header     – header dictionary builder
	record     – record decoder and the Record type
	reader     – streaming reader / cursor
"""

from .reader import BCFReader, ReaderState, read_bcf  # noqa: F401
from .header import Dictionary, HeaderEntry, Namespace, build_dictionary  # noqa: F401
from .record import FormatColumn, Record, SampleView, decode_record  # noqa: F401
from .source import ByteSource, open_source  # noqa: F401

__all__ = [
	"BCFReader",
	"ReaderState",
	"read_bcf",
	"Dictionary",
	"HeaderEntry",
	"Namespace",
	"build_dictionary",
	"Record",
	"SampleView",
	"FormatColumn",
	"decode_record",
	"ByteSource",
	"open_source",
]
