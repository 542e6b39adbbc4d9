"""Tabular (pandas) projections of decoded records."""

from .site_table import site_table, value_cell  # noqa: F401
from .genotype_table import genotype_table  # noqa: F401

__all__ = ["site_table", "genotype_table", "value_cell"]
