import pytest

from stagegate.core.errors import ConfigError
from stagegate.core.partition import partition


@pytest.mark.parametrize("length", [0, 1, 2, 5, 7, 16, 33])
@pytest.mark.parametrize("workers", [1, 2, 3, 4, 8])
def test_partitions_are_contiguous_and_balanced(length, workers):
    change_set = [f"src/f{i}.cpp" for i in range(length)]
    parts = partition(change_set, workers)

    assert [p.index for p in parts] == list(range(workers))
    rebuilt = [path for p in parts for path in p.paths]
    assert rebuilt == change_set
    assert sum(len(p.paths) for p in parts) == length

    sizes = [len(p.paths) for p in parts]
    assert max(sizes) - min(sizes) <= 1


def test_single_path_two_workers_leaves_one_empty():
    parts = partition(["a.cpp"], 2)
    assert parts[0].paths == ("a.cpp",)
    assert parts[1].paths == ()


def test_block_sizes_recomputed_per_slot():
    # 5 paths / 3 slots: ceil(5/3)=2, ceil(3/2)=2, ceil(1/1)=1
    parts = partition(list("abcde"), 3)
    assert [p.paths for p in parts] == [("a", "b"), ("c", "d"), ("e",)]


def test_partition_is_deterministic():
    change_set = [f"f{i}.h" for i in range(11)]
    assert partition(change_set, 4) == partition(change_set, 4)


def test_zero_workers_is_config_error():
    with pytest.raises(ConfigError) as exc:
        partition(["a.cpp"], 0)
    assert exc.value.code == "E_CONFIG_PARALLEL"
