import io

import pytest

from bcf_builder import bcf_bytes, example_record, header_text
from bcf_reader.io.header import build_dictionary


@pytest.fixture
def dictionary():
    return build_dictionary(header_text())


@pytest.fixture
def example_bcf():
    """Two example sites (POS 100 and 200) in an uncompressed stream."""
    return bcf_bytes(header_text(), [example_record(99), example_record(199)])


@pytest.fixture
def example_stream(example_bcf):
    return io.BytesIO(example_bcf)


@pytest.fixture
def example_path(tmp_path, example_bcf):
    path = tmp_path / "example.bcf"
    path.write_bytes(example_bcf)
    return path
