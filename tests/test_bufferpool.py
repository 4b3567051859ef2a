import pytest

from rpcplug.bufferpool import LimitedPool


@pytest.fixture
def pool():
    return LimitedPool(512, 4096)


@pytest.mark.parametrize(
    "size, want",
    [
        (200, 512),
        (512, 512),
        (1000, 1024),
        (2000, 2048),
        (2048, 2048),
        (4095, 4096),
        (4096, 4096),
        (4097, None),
    ],
)
def test_find_pool(pool, size, want):
    assert pool.find_pool_size(size) == want


@pytest.mark.parametrize(
    "size, want",
    [
        (200, None),
        (512, 512),
        (1000, 512),
        (2000, 1024),
        (2048, 2048),
        (4095, 2048),
        (4096, 4096),
        (4097, None),
    ],
)
def test_find_put_pool(pool, size, want):
    assert pool.find_put_pool_size(size) == want


def test_max_less_than_min_rejected():
    with pytest.raises(ValueError):
        LimitedPool(4096, 512)


@pytest.mark.parametrize("size", [0, 100, 512, 1000, 4096, 5000])
def test_get_returns_requested_length(pool, size):
    assert len(pool.get(size)) == size


def test_put_then_get_reuses_buffer(pool):
    buf = pool.get(1024)
    pool.put(buf)
    again = pool.get(1024)
    assert again is buf
    assert len(again) == 1024


def test_small_buffer_is_discarded(pool):
    small = bytearray(200)
    pool.put(small)
    got = pool.get(200)
    assert got is not small
    assert len(got) == 200


def test_oversized_buffer_is_discarded(pool):
    big = bytearray(5000)
    pool.put(big)
    got = pool.get(4096)
    assert got is not big
    assert len(got) == 4096


def test_negative_size_rejected(pool):
    with pytest.raises(ValueError):
        pool.get(-1)