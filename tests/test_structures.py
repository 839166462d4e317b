import numpy as np
import pandas as pd
import pytest
from pyctrees.structures import (
    DestinationMap,
    DestinationRegistry,
    NumericType,
    RequestedColumn,
    ResolvedColumn,
    grow_registry,
)
from pyctrees.util.errors import AllocationError, ConfigurationError

halo_dtype = np.dtype([("id", "i8"), ("mvir", "f4"), ("x", "f8")])


@pytest.mark.parametrize(
    "value, expected",
    [
        ("I32", NumericType.I32),
        ("f64", NumericType.F64),
        ("float", NumericType.F32),
        ("double", NumericType.F64),
        ("uint64", NumericType.U64),
        (np.int64, NumericType.I64),
        (np.dtype("u4"), NumericType.U32),
        (NumericType.F32, NumericType.F32),
    ],
)
def test_numeric_type_lookup(value, expected):
    assert NumericType.lookup(value) is expected


def test_numeric_type_sizes():
    assert [t.size for t in NumericType] == [4, 8, 4, 8, 4, 8]
    for t in NumericType:
        assert t.dtype.itemsize == t.size


@pytest.mark.parametrize("value", ["int16", "complex", np.int16, object])
def test_numeric_type_unknown(value):
    with pytest.raises(ConfigurationError):
        NumericType.lookup(value)


def test_requested_column_validation():
    with pytest.raises(ConfigurationError):
        RequestedColumn("", "f64")
    with pytest.raises(ConfigurationError):
        RequestedColumn("a" * 64, "f64")
    with pytest.raises(ConfigurationError):
        RequestedColumn("x", "f64", slot=-1)
    with pytest.raises(ConfigurationError):
        RequestedColumn("x", "f64", offset=-4)


def test_map_sorted_and_stable():
    cols = [
        ResolvedColumn("x", "f64", 1, 0, 2),
        ResolvedColumn("mvir", "f32", 0, 0, 1),
        ResolvedColumn("X", "f32", 2, 0, 2),
        ResolvedColumn("id", "i64", 3, 0, 0),
    ]
    dmap = DestinationMap(cols, 3)
    assert dmap.column_numbers == [0, 1, 2, 2]
    assert dmap.names == ["id", "mvir", "x", "X"]
    assert dmap.max_column_number == 2
    # re-sorting an ordered map changes nothing
    assert DestinationMap(dmap.columns, 3) == dmap


def test_map_column_out_of_header_range():
    with pytest.raises(ConfigurationError):
        DestinationMap([ResolvedColumn("x", "f64", 0, 0, 5)], 3)


def test_map_validate():
    registry = DestinationRegistry([np.zeros(4, dtype="f8"), np.zeros(4, dtype=halo_dtype)])
    DestinationMap([ResolvedColumn("x", "f64", 1, 12, 0), ResolvedColumn("m", "f32", 1, 8, 1)], 2).validate(registry)
    with pytest.raises(ConfigurationError):
        DestinationMap([ResolvedColumn("x", "f64", 2, 0, 0)], 1).validate(registry)
    with pytest.raises(ConfigurationError):
        DestinationMap([ResolvedColumn("x", "f64", 1, 16, 0)], 1).validate(registry)
    with pytest.raises(ConfigurationError):
        DestinationMap([ResolvedColumn("x", "f64", 0, 4, 0)], 1).validate(registry)


def test_registry_validation():
    with pytest.raises(ConfigurationError):
        DestinationRegistry([np.zeros(4, dtype="i2")])
    with pytest.raises(ConfigurationError):
        DestinationRegistry([np.zeros(4, dtype="f8"), np.zeros(5, dtype="f8")])
    with pytest.raises(ConfigurationError):
        DestinationRegistry([np.zeros((2, 2), dtype="f8")])
    with pytest.raises(ConfigurationError):
        DestinationRegistry([np.zeros(4, dtype="f8")], n_rows=5)
    with pytest.raises(ConfigurationError):
        DestinationRegistry([[1.0, 2.0]])
    with pytest.raises(ConfigurationError):
        DestinationRegistry([np.zeros(1, dtype="f8")] * 3, max_columns=2)


def test_field_view_strided():
    buf = np.zeros(3, dtype=halo_dtype)
    registry = DestinationRegistry([buf])
    view = registry.slots[0].field_view(NumericType.F32, halo_dtype.fields["mvir"][1])
    view[1] = 2.5
    assert buf["mvir"][1] == np.float32(2.5)
    assert buf["id"][1] == 0
    assert registry.slots[0].field_view(NumericType.F32, 8) is view


def test_grow_preserves_rows():
    a = np.arange(4, dtype="f8")
    b = np.arange(4, dtype="i4") * 10
    registry = DestinationRegistry([a, b], n_rows=4)
    grow_registry(registry, 8)
    assert registry.capacity == 8
    assert registry.n_rows == 4
    for slot in registry.slots:
        assert len(slot.buffer) == 8
    assert np.array_equal(registry[0], np.arange(4, dtype="f8"))
    assert np.array_equal(registry[1], np.arange(4, dtype="i4") * 10)
    assert np.all(registry.slots[0].buffer[4:] == 0)


def test_grow_never_shrinks():
    registry = DestinationRegistry([np.zeros(8, dtype="f8")])
    original = registry.slots[0].buffer
    grow_registry(registry, 4)
    grow_registry(registry, 8)
    assert registry.capacity == 8
    assert registry.slots[0].buffer is original


def test_ensure_capacity():
    registry = DestinationRegistry([np.zeros(2, dtype="f4")])
    assert not registry.ensure_capacity()
    registry.n_rows = 2
    assert registry.ensure_capacity()
    assert registry.capacity == 4
    registry.n_rows = 4
    registry.ensure_capacity()
    assert registry.capacity == 8


def test_ensure_capacity_from_zero():
    registry = DestinationRegistry([np.zeros(0, dtype="f8")])
    registry.ensure_capacity()
    assert registry.capacity == 1


def test_grow_failure_leaves_registry(monkeypatch):
    registry = DestinationRegistry([np.zeros(2, dtype="f8"), np.zeros(2, dtype="f8")])
    buffers = [s.buffer for s in registry.slots]
    real_zeros = np.zeros
    calls = []

    def failing_zeros(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise MemoryError("out of memory")
        return real_zeros(*args, **kwargs)

    monkeypatch.setattr(np, "zeros", failing_zeros)
    with pytest.raises(AllocationError):
        grow_registry(registry, 1024)
    monkeypatch.undo()

    assert registry.capacity == 2
    assert all(s.buffer is b for s, b in zip(registry.slots, buffers))


def test_to_df():
    registry = DestinationRegistry([np.zeros(4, dtype="f8"), np.zeros(4, dtype=halo_dtype)], n_rows=2)
    registry.slots[0].buffer[:2] = [1.5, 2.5]
    registry.slots[1].buffer["id"][:2] = [7, 8]
    df = registry.to_df(names=["scale", "unused"])
    assert list(df.columns) == ["scale", "id", "mvir", "x"]
    assert len(df) == 2
    pd.testing.assert_series_equal(df["id"], pd.Series([7, 8], name="id", dtype="i8"))
    assert list(DestinationRegistry([np.zeros(1, dtype="f8")]).to_df().columns) == ["slot_0"]


def test_clear():
    registry = DestinationRegistry([np.zeros(4, dtype="f8")], n_rows=3)
    registry.clear()
    assert registry.n_rows == 0
    assert len(registry[0]) == 0
