"""Configuration constants and reader settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

__all__ = [
	"BCF_MAGIC",
	"SUPPORTED_VERSIONS",
	"GZIP_MAGIC",
	"VCF_FIXED_COLUMNS",
	"ERROR_MODES",
	"ID_SCHEMES",
	"ReaderOptions",
]

BCF_MAGIC = b"BCF"
# (major, minor); 2.1 and 2.2 share the record layout
SUPPORTED_VERSIONS: Tuple[Tuple[int, int], ...] = ((2, 1), (2, 2))
GZIP_MAGIC = b"\x1f\x8b"

VCF_FIXED_COLUMNS = ("#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO", "FORMAT")

ERROR_MODES = ("abort", "skip")
ID_SCHEMES = ("auto", "namespace", "shared")


@dataclass(frozen=True)
class ReaderOptions:
	"""Settings for :class:`bcf_reader.io.BCFReader`.

	Parameters
	----------
	on_error : str
		``"abort"`` (default) stops the stream at the first record that fails
		to decode; ``"skip"`` logs and drops such records. Truncated frames
		and I/O failures always abort.
	lazy : bool
		Defer INFO / FORMAT decoding until first access.
	shareable : bool
		Serialise cursor advancement with a lock so several threads may pull
		records from one reader. The header dictionary is immutable and
		shareable either way.
	id_scheme : str
		How header dictionary IDs are assigned: ``"auto"``, ``"namespace"``
		or ``"shared"`` (see :func:`bcf_reader.io.header.build_dictionary`).
	"""

	on_error: str = "abort"
	lazy: bool = False
	shareable: bool = False
	id_scheme: str = "auto"

	def __post_init__(self):
		if self.on_error not in ERROR_MODES:
			raise ValueError(f"on_error must be one of {ERROR_MODES}, got {self.on_error!r}")
		if self.id_scheme not in ID_SCHEMES:
			raise ValueError(f"id_scheme must be one of {ID_SCHEMES}, got {self.id_scheme!r}")

	@property
	def skip_invalid(self) -> bool:
		return self.on_error == "skip"
