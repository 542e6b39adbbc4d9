"""Genotype-level table assembly.

Long-form DataFrame with one row per (site, sample) pair.
"""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

import pandas as pd

from ..io.record import Record
from .site_table import is_numeric_scalar, value_cell

__all__ = ["genotype_table"]


def genotype_table(
    records: Iterable[Record],
    fields: Sequence[str] = ("GT",),
    samples: Optional[Sequence[str]] = None,
    limit: Optional[int] = None,
) -> pd.DataFrame:
    """Return DataFrame with columns: Sample, Chrom, Pos (1-based), <fields>.

    Parameters
    ----------
    records : iterable of Record
        Decoded records, e.g. a ``BCFReader``.
    fields : sequence of str
        FORMAT keys to project. GT is rendered as VCF text ('0|1', './.').
        Keys absent from a record yield None.
    samples : sequence of str | None
        Restrict to these samples (header order is kept); all when None.
    limit : int | None
        Stop after this many sites.
    """
    rows = []
    numeric = set()
    for i, rec in enumerate(records):
        names = rec.dictionary.samples
        wanted = [idx for idx, name in enumerate(names) if samples is None or name in samples]
        for key in fields:
            if key != "GT" and is_numeric_scalar(rec.dictionary.formats.get(key)):
                numeric.add(key)
        for idx in wanted:
            row = {"Sample": names[idx], "Chrom": rec.chrom, "Pos": rec.pos + 1}
            for key in fields:
                if key == "GT":
                    row[key] = str(rec.genotypes[idx]) if rec.genotypes is not None else None
                    continue
                values = rec.format(key)
                row[key] = value_cell(values[idx]) if values is not None else None
            rows.append(row)
        if limit and i + 1 >= limit:
            break

    df = pd.DataFrame(rows, columns=["Sample", "Chrom", "Pos", *fields])
    # Ensure numeric types where possible
    for col in ["Pos", *sorted(numeric)]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df
