import pytest

from bcf_builder import header_text
from bcf_reader.core.errors import DuplicateDefinition, InvalidHeader, UnknownDictionaryId
from bcf_reader.io.header import HeaderEntry, build_dictionary, parse_structured


def _info(key, number="1", vtype="Integer", extra=""):
    return f'##INFO=<ID={key},Number={number},Type={vtype},Description="{key}"{extra}>'


def _header(*lines, samples=("S1",)):
    return header_text(samples=samples, lines=["##fileformat=VCFv4.2", *lines])


def test_info_ids_follow_declaration_order():
    d = build_dictionary(_header(_info("DP"), _info("AF", "A", "Float"), _info("AC", "A")))
    assert d.info.ids() == {"DP": 0, "AF": 1, "AC": 2}
    reordered = build_dictionary(_header(_info("AC", "A"), _info("DP"), _info("AF", "A", "Float")))
    assert reordered.info.ids() == {"AC": 0, "DP": 1, "AF": 2}


def test_same_text_same_ids():
    text = header_text()
    assert build_dictionary(text).formats.ids() == build_dictionary(text).formats.ids()


def test_pass_is_always_filter_zero():
    d = build_dictionary(_header('##FILTER=<ID=q10,Description="low">'))
    assert d.filters.ids() == {"PASS": 0, "q10": 1}
    assert d.filters["PASS"].description == "All filters passed"

    late = build_dictionary(_header(
        '##FILTER=<ID=q10,Description="low">',
        '##FILTER=<ID=PASS,Description="All filters passed">',
    ))
    assert list(late.filters) == ["PASS", "q10"]
    assert late.filters.id_of("PASS") == 0
    assert late.filters.id_of("q10") == 1


def test_identical_duplicates_collapse():
    d = build_dictionary(_header(_info("DP"), _info("DP")))
    assert len(d.info) == 1


def test_conflicting_duplicates_rejected():
    with pytest.raises(DuplicateDefinition) as err:
        build_dictionary(_header(_info("DP"), _info("DP", vtype="Float")))
    assert isinstance(err.value, InvalidHeader)
    assert err.value.key == "DP"


def test_missing_column_line():
    with pytest.raises(InvalidHeader):
        build_dictionary("##fileformat=VCFv4.2\n" + _info("DP") + "\n")


def test_text_after_column_line():
    with pytest.raises(InvalidHeader):
        build_dictionary(_header() + "chr1\t1\n")


@pytest.mark.parametrize(
    "line",
    [
        _info("DP", number="X"),
        _info("DP", vtype="Double"),
        '##INFO=<ID=DP,Type=Integer,Description="no number">',
        '##INFO=<Number=1,Type=Integer,Description="no id">',
        '##INFO=<ID=DP,Number=1,Type=Integer,Description="unterminated>',
        "plain text line",
    ],
)
def test_invalid_definitions(line):
    with pytest.raises(InvalidHeader):
        build_dictionary(_header(line))


def test_error_offset_points_at_line():
    first = "##fileformat=VCFv4.2\n"
    text = first + _info("DP", number="X") + "\n#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n"
    with pytest.raises(InvalidHeader) as err:
        build_dictionary(text)
    assert err.value.offset == len(first)


def test_samples_and_meta():
    d = build_dictionary(header_text(samples=("NA1", "NA2", "NA3")))
    assert d.samples == ("NA1", "NA2", "NA3")
    assert d.n_sample == 3
    assert d.sample_index("NA2") == 1
    with pytest.raises(KeyError):
        d.sample_index("NA9")
    assert d.fileformat == "VCFv4.2"
    assert d.contigs["chr1"].length == 1000
    assert d.contigs.id_of("chr2") == 1


def test_sites_only_header():
    d = build_dictionary(header_text(samples=()))
    assert d.samples == ()


def test_quoted_description_keeps_commas():
    d = build_dictionary(header_text())
    assert d.filters["s50"].description == "Less than 50% of samples, see docs"


def test_parse_structured_escapes():
    attrs = parse_structured(r'<ID=X,Description="say \"hi\", then \\ go",Source=x>')
    assert attrs == {"ID": "X", "Description": 'say "hi", then \\ go', "Source": "x"}


def test_bytes_with_nul_padding():
    d = build_dictionary(header_text().encode() + b"\x00\x00")
    assert d.samples == ("S1", "S2")
    with pytest.raises(InvalidHeader):
        build_dictionary(b"##fileformat=\xff\n")


def test_idx_selects_shared_scheme():
    d = build_dictionary(_header(
        "##contig=<ID=chr1,IDX=0>",
        '##FILTER=<ID=PASS,Description="All filters passed",IDX=0>',
        '##FILTER=<ID=q10,Description="low",IDX=1>',
        _info("DP", extra=",IDX=2"),
        '##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype",IDX=3>',
        '##FORMAT=<ID=DP,Number=1,Type=Integer,Description="Depth",IDX=2>',
    ))
    assert d.id_scheme == "shared"
    assert d.info.id_of("DP") == 2
    assert d.formats.ids() == {"GT": 3, "DP": 2}
    assert d.contigs.id_of("chr1") == 0


def test_shared_scheme_without_idx():
    d = build_dictionary(header_text(), id_scheme="shared")
    assert d.filters.ids() == {"PASS": 0, "q10": 1, "s50": 2}
    assert d.info.ids() == {"DP": 3, "AF": 4, "DB": 5, "ANN": 6}
    # FORMAT DP reuses the string id of INFO DP
    assert d.formats.ids() == {"GT": 7, "DP": 3, "PL": 8, "AD": 9, "FT": 10}
    assert d.contigs.ids() == {"chr1": 0, "chr2": 1}


def test_conflicting_idx():
    with pytest.raises(InvalidHeader):
        build_dictionary(_header(_info("DP", extra=",IDX=1"), _info("AF", "A", "Float", extra=",IDX=1")))


def test_unknown_id_lookup(dictionary):
    with pytest.raises(UnknownDictionaryId) as err:
        dictionary.info.by_id(99)
    assert err.value.namespace == "INFO"
    assert err.value.key_id == 99
    assert isinstance(err.value, KeyError)


def test_unknown_scheme():
    with pytest.raises(ValueError):
        build_dictionary(header_text(), id_scheme="global")


@pytest.mark.parametrize(
    "number,n_allele,ploidy,expected",
    [
        ("A", 3, 2, 2),
        ("R", 3, 2, 3),
        ("G", 2, 2, 3),
        ("G", 3, 2, 6),
        ("G", 2, 1, 2),
        ("2", 4, 2, 2),
        (".", 2, 2, None),
    ],
)
def test_expected_length(number, n_allele, ploidy, expected):
    entry = HeaderEntry("X", 0, "FORMAT", number=number, type="Integer")
    assert entry.expected_length(n_allele, ploidy) == expected


def test_ninth_column_must_be_format():
    text = "##fileformat=VCFv4.2\n#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFMT\tS1\n"
    with pytest.raises(InvalidHeader):
        build_dictionary(text)
