import pytest

from bcf_builder import EXAMPLE_LINE, example_blocks
from bcf_reader.core.typed_value import BCFType, TypedValue, ValueKind
from bcf_reader.io.record import decode_record
from bcf_reader.utils import Genotype, decode_genotype, format_vcf_line, normalize_chrom


def _gt(*raw):
    return TypedValue(ValueKind.INT8, raw, BCFType.INT8, len(raw))


@pytest.mark.parametrize(
    "raw,text",
    [
        ((2, 4), "0/1"),
        ((2, 5), "0|1"),
        ((4,), "1"),
        ((0, 0), "./."),
        ((2, 0), "0/."),
        ((2, 4, 7), "0/1|2"),
    ],
)
def test_genotype_text(raw, text):
    assert str(decode_genotype(_gt(*raw))) == text


def test_genotype_properties():
    het = decode_genotype(_gt(2, 4))
    assert het.ploidy == 2 and het.is_het and not het.is_hom_ref
    assert decode_genotype(_gt(2, 2)).is_hom_ref
    half = decode_genotype(_gt(2, 0))
    assert half.is_missing and not half.is_het
    assert str(Genotype((), ())) == "."


def test_format_vcf_line(dictionary):
    rec = decode_record(*example_blocks(), dictionary)
    assert format_vcf_line(rec) == EXAMPLE_LINE


def test_normalize_chrom():
    assert normalize_chrom("chr1") == "1"
    assert normalize_chrom("CHRX") == "X"
    assert normalize_chrom("MT") == "MT"
    assert normalize_chrom(None) == ""
