import pytest


@pytest.fixture
def write_binary(tmp_path):
    """Write bytes to a file under tmp_path and return its path as a string."""
    def _write(data, name="sample.bin"):
        path = tmp_path / name
        path.write_bytes(data)
        return str(path)
    return _write
