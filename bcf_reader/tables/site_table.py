"""Site-level table assembly.

Converts a stream of ``Record`` objects into a DataFrame with one row per
variant site.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

import pandas as pd

from ..core.typed_value import TypedValue, ValueKind
from ..io.header import HeaderEntry
from ..io.record import Record
from ..utils import normalize_chrom

__all__ = ["site_table", "value_cell", "is_numeric_scalar"]

SITE_COLUMNS = ["Chrom", "Pos", "ID", "REF", "ALT", "QUAL", "FILTER"]


def value_cell(value: Optional[TypedValue]) -> Any:
    """Flatten a TypedValue into one table cell.

    Absent and MISSING values become None, flags True, single elements the
    element itself and longer vectors their VCF text ('1,2,.').
    """
    if value is None or value.is_missing:
        return None
    if value.kind is ValueKind.FLAG:
        return True
    if len(value.values) == 1:
        return value.values[0]
    return value.to_vcf()


def is_numeric_scalar(entry: Optional[HeaderEntry]) -> bool:
    return entry is not None and entry.type in ("Integer", "Float") and entry.fixed_count == 1


def site_table(
    records: Iterable[Record],
    info_fields: Sequence[str] = (),
    limit: Optional[int] = None,
    normalize_chroms: bool = False,
) -> pd.DataFrame:
    """Return DataFrame with columns: Chrom, Pos (1-based), ID, REF, ALT, QUAL, FILTER, <info_fields>.

    Flag INFO columns hold True where set and None elsewhere.
    """
    rows = []
    numeric = set()
    for i, rec in enumerate(records):
        row = {
            "Chrom": normalize_chrom(rec.chrom) if normalize_chroms else rec.chrom,
            "Pos": rec.pos + 1,
            "ID": rec.id,
            "REF": rec.ref,
            "ALT": ",".join(rec.alts) if rec.alts else None,
            "QUAL": rec.quality,
            "FILTER": ";".join(rec.filters) if rec.filter_ids else None,
        }
        for key in info_fields:
            if is_numeric_scalar(rec.dictionary.info.get(key)):
                numeric.add(key)
            row[key] = value_cell(rec.info.get(key))
        rows.append(row)
        if limit and i + 1 >= limit:
            break
    df = pd.DataFrame(rows, columns=SITE_COLUMNS + list(info_fields))
    # Ensure numeric types where possible
    for col in ["Pos", "QUAL", *sorted(numeric)]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df
