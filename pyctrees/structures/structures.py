__all__ = ['NumericType', 'RequestedColumn', 'ResolvedColumn', 'DestinationMap', 'DestinationSlot',
           'DestinationRegistry', 'grow_registry']

import logging
from enum import Enum
from operator import attrgetter
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..util import constants
from ..util.errors import AllocationError, ConfigurationError

logger = logging.getLogger(__name__)


class NumericType(Enum):
    """
    Destination scalar types

    Values are the canonical short names. Lookup also accepts common aliases ('float', 'double', 'int64', ...)
    and numpy dtypes, see lookup().
    """
    I32 = 'I32'
    I64 = 'I64'
    U32 = 'U32'
    U64 = 'U64'
    F32 = 'F32'
    F64 = 'F64'

    @property
    def dtype(self) -> np.dtype:
        return constants._NUMPY_DTYPES[self.value]

    @property
    def size(self) -> int:
        """ Size in bytes """
        return constants._NUMPY_DTYPE_SIZES[self.value]

    @classmethod
    def lookup(cls, value) -> 'NumericType':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip()
            if key.upper() in cls.__members__:
                return cls[key.upper()]
            if key.lower() in constants._TYPE_ALIASES:
                return cls[constants._TYPE_ALIASES[key.lower()]]
            raise ConfigurationError(f'Numeric type ({value}) is not recognized')
        try:
            dt = np.dtype(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f'Numeric type ({value!r}) is not recognized')
        for member in cls:
            if member.dtype == dt:
                return member
        raise ConfigurationError(f'Numpy dtype ({dt}) has no matching numeric type')


class RequestedColumn:
    """
    One column wanted by the caller

    Parameters
    ----------
    name : str
        Column name as it appears in the header, matched case-insensitively
    type : NumericType or str or dtype
        Destination type
    slot : int
        Index of the destination slot in the registry
    offset : int
        Byte offset of this field within one row of the slot. 0 for structure-of-arrays layouts,
        the field offset (dtype.fields[name][1]) for array-of-structures layouts.
    """
    __slots__ = ('name', 'type', 'slot', 'offset')

    def __init__(self, name: str, type, slot: int = 0, offset: int = 0):
        if not isinstance(name, str) or len(name) == 0:
            raise ConfigurationError(f'Column name ({name!r}) must be a non-empty string')
        if len(name) >= constants.MAX_COLNAME_LEN:
            raise ConfigurationError(f'Column name ({name}) is longer than {constants.MAX_COLNAME_LEN - 1} characters')
        if int(slot) < 0:
            raise ConfigurationError(f'Slot index ({slot}) for column {name} must be >= 0')
        if int(offset) < 0:
            raise ConfigurationError(f'Byte offset ({offset}) for column {name} must be >= 0')
        self.name = name
        self.type = NumericType.lookup(type)
        self.slot = int(slot)
        self.offset = int(offset)

    def _key(self):
        return self.name, self.type, self.slot, self.offset

    def __eq__(self, other):
        if type(self) != type(other):
            return False
        return self._key() == other._key()

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.name} {self.type.value} slot={self.slot} offset={self.offset}>'


class ResolvedColumn(RequestedColumn):
    """ Requested column after it has been found in the header """
    __slots__ = ('column_number',)

    def __init__(self, name: str, type, slot: int, offset: int, column_number: int):
        super().__init__(name, type, slot, offset)
        self.column_number = int(column_number)

    @classmethod
    def from_request(cls, request: RequestedColumn, column_number: int) -> 'ResolvedColumn':
        return cls(request.name, request.type, request.slot, request.offset, column_number)

    def _key(self):
        return self.name, self.type, self.slot, self.offset, self.column_number

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.name}({self.column_number}) {self.type.value} ' \
               f'slot={self.slot} offset={self.offset}>'


class DestinationMap:
    """
    Finalized, column-ordered list of resolved columns used at parse time

    Entries are kept in ascending file column order. Several entries may share a column number, in which case the
    same token is written to several destinations. The map is immutable once built.
    """
    __slots__ = ('_columns', '_n_file_columns')

    def __init__(self, columns: Iterable[ResolvedColumn], n_file_columns: int):
        # sorted() is stable, so an already ordered map is unchanged
        self._columns: Tuple[ResolvedColumn, ...] = tuple(sorted(columns, key=attrgetter('column_number')))
        self._n_file_columns = int(n_file_columns)
        for c in self._columns:
            if not 0 <= c.column_number < self._n_file_columns:
                raise ConfigurationError(f'Column {c.name} number {c.column_number} is outside of header range '
                                         f'[0, {self._n_file_columns})')

    def __len__(self):
        return len(self._columns)

    def __iter__(self):
        return iter(self._columns)

    def __getitem__(self, item) -> ResolvedColumn:
        return self._columns[item]

    def __eq__(self, other):
        if not isinstance(other, DestinationMap):
            return False
        return self._n_file_columns == other._n_file_columns and self._columns == other._columns

    def __repr__(self):
        return f'<DestinationMap {len(self)} of {self._n_file_columns} columns: ' \
               f'{", ".join(f"{c.name}({c.column_number})" for c in self._columns)}>'

    @property
    def columns(self) -> Tuple[ResolvedColumn, ...]:
        return self._columns

    @property
    def n_file_columns(self) -> int:
        """ Number of columns declared by the header """
        return self._n_file_columns

    @property
    def column_numbers(self) -> List[int]:
        return [c.column_number for c in self._columns]

    @property
    def names(self) -> List[str]:
        return [c.name for c in self._columns]

    @property
    def max_column_number(self) -> int:
        return self._columns[-1].column_number if self._columns else -1

    def validate(self, registry: 'DestinationRegistry') -> None:
        """ Check every entry against the registry slots, raising ConfigurationError on first problem """
        n_slots = len(registry)
        for c in self._columns:
            if c.slot >= n_slots:
                raise ConfigurationError(f'Column {c.name} targets slot {c.slot}, valid range is [0, {n_slots})')
            stride = registry.slots[c.slot].stride
            if c.offset + c.type.size > stride:
                raise ConfigurationError(f'Column {c.name} of type {c.type.value} at offset {c.offset} does not fit '
                                         f'in stride of {stride} bytes for slot {c.slot}')


class DestinationSlot:
    """
    Stable handle to one destination buffer

    The buffer itself is replaced whenever the registry grows, so always go through the slot (or the registry)
    to get the current array.
    """

    def __init__(self, buffer: np.ndarray):
        if not isinstance(buffer, np.ndarray):
            raise ConfigurationError(f'Destination buffer must be a numpy array, got {type(buffer)}')
        if buffer.ndim != 1 or not buffer.flags['C_CONTIGUOUS']:
            raise ConfigurationError('Destination buffer must be 1-dimensional and C-contiguous')
        if not buffer.flags['WRITEABLE']:
            raise ConfigurationError('Destination buffer is read-only')
        if buffer.dtype.itemsize < constants.MIN_STRIDE:
            raise ConfigurationError(f'Stride={buffer.dtype.itemsize} must be at least {constants.MIN_STRIDE} bytes, '
                                     f'the size of the smallest supported type')
        self.buffer = buffer
        self._views: Dict[Tuple[NumericType, int], np.ndarray] = {}

    @property
    def stride(self) -> int:
        return self.buffer.dtype.itemsize

    def field_view(self, ntype: NumericType, offset: int) -> np.ndarray:
        """ Typed, strided view of one field across all rows of the buffer """
        key = (ntype, offset)
        view = self._views.get(key)
        if view is None:
            view = np.ndarray(shape=(len(self.buffer),), dtype=ntype.dtype, buffer=self.buffer,
                              offset=offset, strides=(self.stride,))
            self._views[key] = view
        return view

    def _swap(self, buffer: np.ndarray):
        self.buffer = buffer
        self._views.clear()

    def __repr__(self):
        return f'<DestinationSlot {self.buffer.dtype} x {len(self.buffer)}>'


class DestinationRegistry:
    """
    Caller-owned set of destination buffers that advance in lock-step

    All slots share one row counter (n_rows) and one capacity. Each slot is a 1-D numpy array whose element
    size is the stride: a plain dtype gives a structure-of-arrays layout, a structured dtype gives an
    array-of-structures layout.

    Parameters
    ----------
    buffers : iterable of np.ndarray
        Pre-allocated buffers, all of the same length (the initial capacity)
    n_rows : int
        Number of rows already filled
    max_columns : int
        Upper bound on the number of slots
    """

    def __init__(self, buffers: Iterable[np.ndarray], n_rows: int = 0, max_columns: int = constants.MAX_COLUMNS):
        self.slots: List[DestinationSlot] = [DestinationSlot(b) for b in buffers]
        if len(self.slots) > max_columns:
            raise ConfigurationError(f'Registry has {len(self.slots)} slots but only {max_columns} are allowed')
        capacities = {len(s.buffer) for s in self.slots}
        if len(capacities) > 1:
            raise ConfigurationError(f'All destination buffers must have the same length, got {sorted(capacities)}')
        self.capacity: int = capacities.pop() if capacities else 0
        if not 0 <= n_rows <= self.capacity:
            raise ConfigurationError(f'Row count ({n_rows}) must be within [0, {self.capacity}]')
        self.n_rows: int = n_rows

    @classmethod
    def allocate(cls, dtypes: Iterable, capacity: int = constants.DEFAULT_CAPACITY, **kwargs):
        """ Create a registry with one zeroed buffer per dtype """
        return cls([np.zeros(capacity, dtype=dt) for dt in dtypes], **kwargs)

    def __len__(self):
        return len(self.slots)

    def __getitem__(self, item: int) -> np.ndarray:
        """ Filled part of a slot buffer """
        return self.slots[item].buffer[:self.n_rows]

    def __repr__(self):
        return f'<DestinationRegistry {len(self.slots)} slots, {self.n_rows}/{self.capacity} rows>'

    def ensure_capacity(self) -> bool:
        """ Double capacity if the next row would not fit. Returns True if growth happened. """
        if self.n_rows < self.capacity:
            return False
        grow_registry(self, max(1, 2 * self.capacity))
        return True

    def grow(self, new_capacity: int) -> None:
        grow_registry(self, new_capacity)

    def clear(self) -> None:
        """ Reset row counter, keeping the allocated buffers """
        self.n_rows = 0

    def to_df(self, names: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Copy the filled rows into a DataFrame

        Structured slots contribute one column per field, other slots one column each, named from `names`
        (or slot_<i> when not given).
        """
        if names is not None and len(names) != len(self.slots):
            raise ValueError(f'Got {len(names)} names for {len(self.slots)} slots')
        frames = []
        for i in range(len(self.slots)):
            data = self[i]
            if data.dtype.names is not None:
                frames.append(pd.DataFrame(data.copy()))
            else:
                name = names[i] if names is not None else f'slot_{i}'
                frames.append(pd.DataFrame({name: data.copy()}))
        if len(frames) == 0:
            return pd.DataFrame()
        return pd.concat(frames, axis=1)


def grow_registry(registry: DestinationRegistry, new_capacity: int) -> None:
    """
    Reallocate every slot of the registry to hold new_capacity rows

    Existing contents are preserved and new rows are zeroed. New buffers are allocated for all slots before any
    is swapped in, so a failure leaves the registry exactly as it was. Requests that do not increase capacity
    are ignored.

    Parameters
    ----------
    registry : DestinationRegistry
    new_capacity : int
        Number of rows each slot should hold

    Raises
    ------
    AllocationError
        If any buffer could not be allocated
    """
    old_capacity = registry.capacity
    if new_capacity <= old_capacity:
        return

    new_buffers = []
    for i, slot in enumerate(registry.slots):
        try:
            new_buffer = np.zeros(new_capacity, dtype=slot.buffer.dtype)
        except (MemoryError, ValueError) as ex:
            logger.error(f'Failed to re-allocate slot {i} from {old_capacity} to {new_capacity} elements, '
                         f'each of size = {slot.stride} bytes')
            raise AllocationError(f'Could not grow slot {i} to {new_capacity} rows of {slot.stride} bytes: {ex}') \
                from ex
        new_buffer[:old_capacity] = slot.buffer
        new_buffers.append(new_buffer)

    for slot, new_buffer in zip(registry.slots, new_buffers):
        slot._swap(new_buffer)
    registry.capacity = new_capacity
    logger.debug(f'Registry grown from {old_capacity} to {new_capacity} rows ({len(new_buffers)} slots)')
