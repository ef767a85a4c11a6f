import numpy as np
import pytest

from vmm import MMU, PAGE_SIZE, PAGE_TABLE_ENTRIES


@pytest.fixture
def store_bytes() -> np.ndarray:
    """Deterministic backing store contents as signed bytes"""
    rng = np.random.default_rng(343)
    return rng.integers(-128, 128, size=PAGE_TABLE_ENTRIES * PAGE_SIZE, dtype=np.int8)


@pytest.fixture
def store_path(tmp_path, store_bytes):
    path = tmp_path / "BACKING_STORE.bin"
    path.write_bytes(store_bytes.tobytes())
    return path


@pytest.fixture
def mmu(store_path):
    with MMU.open(str(store_path)) as m:
        yield m


@pytest.fixture
def byte_at(store_bytes):
    """Signed byte stored at (page, offset) in the backing store"""
    def lookup(page: int, offset: int) -> int:
        return int(store_bytes[page * PAGE_SIZE + offset])
    return lookup
