import pandas as pd

from bcf_reader import BCFReader
from bcf_reader.tables import genotype_table, site_table


def test_site_table(example_stream):
    df = site_table(BCFReader(example_stream), info_fields=["DP", "AF", "DB", "ANN"])
    assert list(df.columns) == ["Chrom", "Pos", "ID", "REF", "ALT", "QUAL", "FILTER", "DP", "AF", "DB", "ANN"]
    assert df["Pos"].tolist() == [100, 200]
    assert df["QUAL"].tolist() == [50.0, 50.0]
    assert df["FILTER"].tolist() == ["PASS", "PASS"]
    assert df["DP"].tolist() == [30, 30]
    assert pd.api.types.is_numeric_dtype(df["DP"])
    assert df["AF"].tolist() == [0.5, 0.5]
    assert df["DB"].tolist() == [True, True]
    assert df["ANN"].isna().all()


def test_site_table_limit_and_chrom_names(example_stream):
    df = site_table(BCFReader(example_stream), limit=1, normalize_chroms=True)
    assert len(df) == 1
    assert df.loc[0, "Chrom"] == "1"


def test_genotype_table(example_stream):
    df = genotype_table(BCFReader(example_stream), fields=["GT", "DP", "PL"])
    assert list(df.columns) == ["Sample", "Chrom", "Pos", "GT", "DP", "PL"]
    assert len(df) == 4
    first = df[df["Pos"] == 100]
    assert first["Sample"].tolist() == ["S1", "S2"]
    assert first["GT"].tolist() == ["0/1", "1|1"]
    assert first["DP"].iloc[0] == 12
    assert pd.isna(first["DP"].iloc[1])
    assert first["PL"].tolist() == ["30,0,300", "400,45,0"]


def test_genotype_table_sample_subset(example_stream):
    df = genotype_table(BCFReader(example_stream), samples=["S2"])
    assert df["Sample"].unique().tolist() == ["S2"]
    assert df["GT"].tolist() == ["1|1", "1|1"]


def test_genotype_table_without_records():
    df = genotype_table([])
    assert df.empty
    assert list(df.columns) == ["Sample", "Chrom", "Pos", "GT"]
