"""Small helpers used across the bcf_reader package.

Genotype decoding and VCF-text rendering of decoded records. Pure Python,
easy to unit-test, no I/O.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Tuple

from .core.typed_value import TypedValue, ValueKind

if TYPE_CHECKING:  # pragma: no cover
    from .io.record import Record


@dataclass(frozen=True)
class Genotype:
    """Decoded GT value of one sample.

    Attributes
    ----------
    alleles : tuple of int | None
        Allele indices (0 = REF); ``None`` for a missing allele ('.').
    phased : tuple of bool
        Phasing flag per allele. The first flag is always False in
        well-formed data; VCF text only shows the flags of alleles 2..n.
    """

    alleles: Tuple[Optional[int], ...]
    phased: Tuple[bool, ...]

    @property
    def ploidy(self) -> int:
        return len(self.alleles)

    @property
    def is_missing(self) -> bool:
        """True for missing or half-missing calls ('.', './.', '0/.', ...)."""
        return not self.alleles or any(a is None for a in self.alleles)

    @property
    def is_het(self) -> bool:
        return not self.is_missing and len(set(self.alleles)) > 1

    @property
    def is_hom_ref(self) -> bool:
        return not self.is_missing and all(a == 0 for a in self.alleles)

    def __str__(self) -> str:
        if not self.alleles:
            return "."
        out = ["." if self.alleles[0] is None else str(self.alleles[0])]
        for allele, phased in zip(self.alleles[1:], self.phased[1:]):
            out.append("|" if phased else "/")
            out.append("." if allele is None else str(allele))
        return "".join(out)


def decode_genotype(value: TypedValue) -> Genotype:
    """Decode a GT value: each element is ``(allele + 1) << 1 | phased``.

    Element 0 (allele -1) and the MISSING sentinel both mean a missing
    allele. Ploidy is the vector length after END-OF-VECTOR truncation.
    """
    alleles: List[Optional[int]] = []
    phased: List[bool] = []
    for raw in value.values:
        if raw is None:
            alleles.append(None)
            phased.append(False)
            continue
        allele = (raw >> 1) - 1
        alleles.append(None if allele < 0 else allele)
        phased.append(bool(raw & 1))
    return Genotype(tuple(alleles), tuple(phased))


def format_info(record: "Record") -> str:
    """Render the INFO column ('.' when empty)."""
    parts = []
    for key, value in record.info.items():
        if value.kind is ValueKind.FLAG:
            parts.append(key)
        else:
            parts.append(f"{key}={value.to_vcf()}")
    return ";".join(parts) if parts else "."


def format_sample(record: "Record", index: int) -> str:
    """Render one sample column in FORMAT key order."""
    fields = []
    for key in record.format_keys:
        if key == "GT":
            fields.append(str(record.genotypes[index]))
        else:
            fields.append(record.format(key)[index].to_vcf())
    return ":".join(fields)


def format_vcf_line(record: "Record") -> str:
    """Render a record as one tab-separated VCF data line (1-based POS)."""
    quality = "." if record.quality is None else f"{record.quality:g}"
    columns = [
        record.chrom,
        str(record.pos + 1),
        record.id or ".",
        record.ref,
        ",".join(record.alts) if record.alts else ".",
        quality,
        ";".join(record.filters) if record.filter_ids else ".",
        format_info(record),
    ]
    if record.format_keys:
        columns.append(":".join(record.format_keys))
        columns.extend(format_sample(record, i) for i in range(record.n_sample))
    return "\t".join(columns)


def normalize_chrom(chrom: Optional[str]) -> str:
    """Lightweight normalization for chromosome names.

    Examples: 'chr1' -> '1', '1' -> '1', 'MT'->'MT'
    Only a leading 'chr' or 'CHR' is stripped.
    """
    if chrom is None:
        return ""
    c = str(chrom)
    if c.lower().startswith("chr"):
        return c[3:]
    return c


__all__ = [
    "Genotype",
    "decode_genotype",
    "format_info",
    "format_sample",
    "format_vcf_line",
    "normalize_chrom",
]
