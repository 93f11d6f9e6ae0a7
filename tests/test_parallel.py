from staged_eval.utils.parallel import LocalExecutor, resolve_executor


def test_split_range_covers_range():
    pool = LocalExecutor(thread_count=4, min_block_size=5)
    blocks = pool.split_range(3, 50)

    assert blocks[0][0] == 3
    assert blocks[-1][1] == 50
    assert all(a[1] == b[0] for a, b in zip(blocks, blocks[1:]))
    assert len(blocks) <= 4
    assert pool.split_range(5, 5) == []


def test_small_ranges_stay_in_one_block():
    pool = LocalExecutor(thread_count=8, min_block_size=100)
    assert pool.split_range(0, 50) == [(0, 50)]


def test_map_blocks_keeps_block_order():
    with LocalExecutor(thread_count=4, min_block_size=1) as pool:
        results = pool.map_blocks(0, 40, lambda begin, end: list(range(begin, end)))

    assert [x for block in results for x in block] == list(range(40))


def test_resolve_executor():
    assert resolve_executor(None).thread_count == 1
    pool = LocalExecutor(thread_count=2)
    assert resolve_executor(pool) is pool
