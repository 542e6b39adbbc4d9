import gzip
import io
import threading

import numpy as np
import pytest

from bcf_builder import bcf_bytes, example_record, frame, header_text, info_pair, shared_block
from bcf_reader import BCFReader, ReaderOptions, ReaderState, read_bcf
from bcf_reader.core.errors import (
    BadMagic,
    BCFError,
    InvalidHeader,
    IoFailure,
    TruncatedRecord,
    UnknownDictionaryId,
    UnsupportedVersion,
)
from bcf_reader.io.source import ByteSource


def _minimal_header():
    return header_text(samples=("S1",), lines=["##fileformat=VCFv4.2", "##contig=<ID=chr1>"])


def test_single_record_stream():
    data = bcf_bytes(_minimal_header(), [frame(shared_block(pos=99, alleles=("A", "T")))])
    reader = BCFReader(io.BytesIO(data))
    assert reader.samples == ("S1",)
    assert reader.state is ReaderState.HEADER_READ
    rec = next(reader)
    assert (rec.chrom, rec.pos, rec.alleles) == ("chr1", 99, ("A", "T"))
    assert reader.state is ReaderState.STREAMING
    with pytest.raises(StopIteration):
        next(reader)
    assert reader.state is ReaderState.EXHAUSTED
    assert reader.read_record() is None
    assert reader.records_read == 1


def test_iterates_every_record(example_stream):
    with BCFReader(example_stream) as reader:
        assert reader.version == (2, 2)
        positions = [rec.pos for rec in reader]
    assert positions == [99, 199]


def test_truncated_frame():
    text = _minimal_header()
    body = np.array([40, 0], dtype="<u4").tobytes() + bytes(30)
    data = bcf_bytes(text, [body])
    reader = BCFReader(io.BytesIO(data))
    with pytest.raises(TruncatedRecord) as err:
        reader.read_record()
    assert err.value.record_index == 0
    assert err.value.offset == 9 + len(text) + 1
    assert reader.state is ReaderState.ERROR
    with pytest.raises(BCFError):
        reader.read_record()


def test_truncated_frame_prefix():
    data = bcf_bytes(_minimal_header()) + b"\x01\x00"
    with pytest.raises(TruncatedRecord):
        list(BCFReader(io.BytesIO(data)))


def test_bad_magic():
    reader = BCFReader(io.BytesIO(b"VCF\x02\x02" + bytes(8)))
    with pytest.raises(BadMagic) as err:
        reader.open()
    assert err.value.offset == 0
    assert reader.state is ReaderState.ERROR
    assert reader.dictionary is None


def test_empty_stream():
    with pytest.raises(BadMagic):
        BCFReader(io.BytesIO(b"")).open()


def test_unsupported_version():
    data = bcf_bytes(_minimal_header(), version=(3, 0))
    with pytest.raises(UnsupportedVersion) as err:
        BCFReader(io.BytesIO(data)).open()
    assert (err.value.major, err.value.minor) == (3, 0)
    assert err.value.offset == 3


def test_version_2_1_accepted():
    data = bcf_bytes(_minimal_header(), [frame(shared_block())], version=(2, 1))
    with BCFReader(io.BytesIO(data)) as reader:
        assert reader.version == (2, 1)
        assert len(list(reader)) == 1


def test_header_truncation():
    with pytest.raises(InvalidHeader):
        BCFReader(io.BytesIO(b"BCF\x02\x02\x10")).open()
    data = bcf_bytes(_minimal_header())
    with pytest.raises(InvalidHeader):
        BCFReader(io.BytesIO(data[:20])).open()


def test_header_error_offset_is_absolute():
    text = "##fileformat=VCFv4.2\n##INFO=<ID=DP,Number=Z,Type=Integer,Description=\"x\">\n"
    with pytest.raises(InvalidHeader) as err:
        BCFReader(io.BytesIO(bcf_bytes(text))).open()
    assert err.value.offset == 9 + len("##fileformat=VCFv4.2\n")


def test_gzip_is_detected_by_magic(example_bcf):
    with BCFReader(io.BytesIO(gzip.compress(example_bcf))) as reader:
        assert [rec.pos for rec in reader] == [99, 199]


def test_multi_member_gzip(example_bcf):
    cut = len(example_bcf) // 2
    data = gzip.compress(example_bcf[:cut]) + gzip.compress(example_bcf[cut:])
    assert [rec.pos for rec in read_bcf(io.BytesIO(data))] == [99, 199]


def test_truncated_gzip(example_bcf):
    data = gzip.compress(example_bcf)[:-12]
    with pytest.raises(IoFailure):
        list(BCFReader(io.BytesIO(data)))


def test_byte_source_counts_uncompressed_bytes():
    with ByteSource(io.BytesIO(gzip.compress(b"abcdef"))) as source:
        assert source.compressed
        assert source.read(4) == b"abcd"
        assert source.read(10) == b"ef"
        assert source.offset == 6
    assert source.closed
    with pytest.raises(IoFailure):
        source.read(1)


def test_reads_from_path(example_path):
    with BCFReader(example_path) as reader:
        assert reader.header.samples == ("S1", "S2")
        assert len(list(reader)) == 2


def test_missing_file(tmp_path):
    with pytest.raises(IoFailure):
        BCFReader(tmp_path / "missing.bcf").open()


def test_abort_mode_stops_at_bad_record():
    data = bcf_bytes(header_text(), [example_record(1), example_record(2, filters=(9,)), example_record(3)])
    reader = BCFReader(io.BytesIO(data))
    assert next(reader).pos == 1
    with pytest.raises(UnknownDictionaryId) as err:
        next(reader)
    assert err.value.record_index == 1
    assert reader.state is ReaderState.ERROR


def test_skip_mode_drops_bad_records():
    data = bcf_bytes(header_text(), [example_record(1), example_record(2, filters=(9,)), example_record(3)])
    reader = BCFReader(io.BytesIO(data), on_error="skip")
    assert [rec.pos for rec in reader] == [1, 3]
    assert reader.skipped == 1
    assert reader.records_read == 2
    assert reader.state is ReaderState.EXHAUSTED


def test_lazy_mode_defers_errors():
    bad = frame(shared_block(info=[info_pair(42, 1)]))
    data = bcf_bytes(header_text(), [bad])
    rec = next(BCFReader(io.BytesIO(data), ReaderOptions(lazy=True)))
    with pytest.raises(UnknownDictionaryId):
        rec.info


def test_max_records(example_stream):
    reader = BCFReader(example_stream, max_records=1)
    assert len(list(reader)) == 1
    assert reader.state is ReaderState.EXHAUSTED


def test_offset_tracks_frames():
    text = header_text()
    first = example_record(1)
    reader = BCFReader(io.BytesIO(bcf_bytes(text, [first, example_record(2)])))
    reader.open()
    assert reader.offset == 9 + len(text) + 1
    rec = reader.read_record()
    assert rec.offset == 9 + len(text) + 1
    assert reader.offset == rec.offset + len(first)


def test_shareable_reader_hands_out_each_record_once():
    frames = [example_record(i) for i in range(40)]
    reader = BCFReader(io.BytesIO(bcf_bytes(header_text(), frames)), shareable=True)
    seen = []
    lock = threading.Lock()

    def pull():
        while True:
            rec = reader.read_record()
            if rec is None:
                return
            with lock:
                seen.append(rec.pos)

    threads = [threading.Thread(target=pull) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(seen) == list(range(40))


def test_invalid_options():
    with pytest.raises(ValueError):
        ReaderOptions(on_error="ignore")
    with pytest.raises(ValueError):
        BCFReader(io.BytesIO(b""), id_scheme="global")


def test_oversized_frame_length_on_file(tmp_path):
    text = _minimal_header()
    prefix = np.array([0xFFFFFFF0, 0xFFFFFFF0], dtype="<u4").tobytes()
    path = tmp_path / "huge_frame.bcf"
    path.write_bytes(bcf_bytes(text, [prefix + bytes(30)]))
    reader = BCFReader(path)
    with pytest.raises(TruncatedRecord) as err:
        reader.read_record()
    assert err.value.offset == 9 + len(text) + 1
    assert reader.state is ReaderState.ERROR


def test_oversized_header_length_on_file(tmp_path):
    path = tmp_path / "huge_header.bcf"
    path.write_bytes(b"BCF\x02\x02" + np.array([0xFFFFFFF0], dtype="<u4").tobytes() + b"##fileformat=VCFv4.2\n")
    reader = BCFReader(path)
    with pytest.raises(InvalidHeader):
        reader.open()
    assert reader.state is ReaderState.ERROR
