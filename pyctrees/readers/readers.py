import io
import logging
import time
from operator import attrgetter
from pathlib import Path
from typing import IO, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .tokenizers import tokenize_header, split_fields
from ..util.conversions import convert
from ..util.errors import ConfigurationError, FormatError
from ..util.io import PositionalReader, open_file
from pyctrees.structures import (
    DestinationMap,
    DestinationRegistry,
    NumericType,
    RequestedColumn,
    ResolvedColumn,
)
from pyctrees.util.constants import (
    DEFAULT_CAPACITY,
    HEADER_WINDOW,
    MAX_COLUMNS,
    READ_CHUNK_SIZE,
    SENTINEL_BYTE,
    TREE_LINE_PREFIX,
)

# The proper way to implement conditional logging is to check current level,
# but this creates too much overhead in hot loops. So, old school global vars it is.
logger = logging.getLogger(__name__)
DEBUG2 = False  # one more level from debug
TRACE = False  # two more levels from debug
if TRACE:
    DEBUG2 = True

FileSource = Union[int, IO[bytes], PositionalReader]


def match_columns(
    requested: Iterable[Union[RequestedColumn, tuple]],
    names: Sequence[str],
    max_columns: int = MAX_COLUMNS,
) -> DestinationMap:
    """
    Resolve requested columns against the header column names

    Each request is matched case-insensitively against the header, first match wins. Requests that are not found
    are logged and dropped. Survivors are sorted by file column number (stable, so requests for the same column
    keep their declaration order) and returned as a DestinationMap.

    Parameters
    ----------
    requested : iterable of RequestedColumn or (name, type, slot, offset) tuples
        Columns in the caller's declaration order
    names : sequence of str
        Header column names, as returned by tokenize_header
    max_columns : int
        Maximum number of requests accepted

    Returns
    -------
    dmap : DestinationMap
        May be shorter than the request if some columns were not found
    """
    requested = [r if isinstance(r, RequestedColumn) else RequestedColumn(*r) for r in requested]
    if len(requested) > max_columns:
        raise ConfigurationError(
            f"You have requested {len(requested)} columns but there is only space to store {max_columns}. "
            f"Pass a larger max_columns to allow more"
        )

    file_names = [n.lower() for n in names]
    found = []
    for req in requested:
        try:
            column_number = file_names.index(req.name.lower())
        except ValueError:
            logger.warning(f"Did not find requested column `{req.name}`")
            continue
        if TRACE:
            logger.debug(f"Found `{req.name}` in column # {column_number} as `{names[column_number]}`")
        found.append(ResolvedColumn.from_request(req, column_number))

    found.sort(key=attrgetter("column_number"))
    dmap = DestinationMap(found, len(names))
    logger.debug(f"Found {len(dmap)} columns out of the requested {len(requested)}: {dmap}")
    return dmap


def resolve_columns(
    names: Sequence[str],
    types: Sequence,
    slots: Sequence[int],
    offsets: Sequence[int],
    header_line: Union[str, bytes],
    max_columns: int = MAX_COLUMNS,
    registry: Optional[DestinationRegistry] = None,
) -> DestinationMap:
    """
    Build a DestinationMap from parallel request arrays and the column header line

    Parameters
    ----------
    names : sequence of str
        Wanted column names
    types : sequence
        Destination type for each name, anything NumericType.lookup accepts
    slots : sequence of int
        Registry slot index for each name
    offsets : sequence of int
        Byte offset within one row of the slot for each name
    header_line : str or bytes
        First line of the file
    max_columns : int
        Maximum number of requests accepted
    registry : DestinationRegistry, optional
        If given, slots and offsets are checked against it right away

    Returns
    -------
    dmap : DestinationMap
    """
    lengths = {len(names), len(types), len(slots), len(offsets)}
    if len(lengths) != 1:
        raise ConfigurationError(
            f"Request arrays differ in length: names={len(names)} types={len(types)} "
            f"slots={len(slots)} offsets={len(offsets)}"
        )
    if len(names) > max_columns:
        raise ConfigurationError(
            f"You have requested {len(names)} columns but there is only space to store {max_columns}"
        )
    requested = [RequestedColumn(*el) for el in zip(names, types, slots, offsets)]
    file_names = tokenize_header(header_line)
    dmap = match_columns(requested, file_names, max_columns=max_columns)
    if registry is not None:
        dmap.validate(registry)
    return dmap


def parse_line(
    line: str,
    dmap: DestinationMap,
    registry: DestinationRegistry,
    strict: bool = False,
) -> None:
    """
    Parse one data row into the registry at row index registry.n_rows

    Fields are split on whitespace only up to the highest wanted column. Each wanted field is converted to its
    destination type and written at that row of its slot, then the shared row counter is advanced by one.
    Buffers are doubled beforehand if the row would not fit. The map is checked against the registry when the
    first row is written.
    """
    if registry.n_rows == 0:
        dmap.validate(registry)
    registry.ensure_capacity()
    row = registry.n_rows

    tokens = split_fields(line, dmap.max_column_number)
    n_tokens = len(tokens)
    slots = registry.slots
    for c in dmap:
        column_number = c.column_number
        if column_number >= n_tokens:
            raise FormatError(
                f"Column {c.name} is number {column_number} but the line only has {n_tokens} fields: {line!r}"
            )
        token = tokens[column_number]
        try:
            value = convert(token, c.type.value, strict)
        except FormatError as ex:
            raise FormatError(f"Column {c.name}: {ex}. Line: {line!r}") from ex
        if TRACE:
            logger.debug(f">>ROW {row} | {c.name}({column_number}) | {token!r} -> {value}")
        slots[c.slot].field_view(c.type, c.offset)[row] = value
    registry.n_rows = row + 1


def _skip_header_line(reader: PositionalReader, offset: int, window: int = HEADER_WINDOW) -> int:
    """Return the offset just past the tree header line that starts at `offset`"""
    while True:
        data = reader.pread(window, offset)
        if len(data) == 0:
            raise FormatError(f"No data at offset {offset}, expected the header line of a tree")
        nl = data.find(b"\n")
        if nl != -1:
            return offset + nl + 1
        if len(data) < window:
            # header is the last line of the file
            return offset + len(data)
        window *= 2
        if DEBUG2:
            logger.debug(f"Tree header at {offset} longer than window, retrying with {window} bytes")


def _parse_raw_line(raw: bytes, offset: int, dmap: DestinationMap, registry: DestinationRegistry, strict: bool):
    if len(raw.strip()) == 0:
        return
    try:
        line = raw.decode("ascii")
    except UnicodeDecodeError as ex:
        raise FormatError(f"Line at offset {offset} is not valid ASCII: {raw!r}") from ex
    parse_line(line, dmap, registry, strict=strict)


def read_block(
    file: FileSource,
    offset: int,
    dmap: DestinationMap,
    registry: DestinationRegistry,
    chunk_size: int = READ_CHUNK_SIZE,
    strict: bool = False,
    max_columns: int = MAX_COLUMNS,
) -> Tuple[int, int]:
    """
    Read all rows of the tree whose header line starts at `offset`

    The header line is skipped, then the file is consumed in positional reads of `chunk_size` bytes and split
    into lines. Reading stops at end of file or at the first line containing the '#' sentinel, which starts the
    next tree. A line cut by the end of a chunk is re-read from its start with the next chunk.

    Parameters
    ----------
    file : int or binary file object or PositionalReader
        Open file. Descriptors and files from open() are read with os.pread and their position is not moved,
        other streams (BytesIO, gzip.GzipFile, ...) are read with seek + read.
    offset : int
        Byte offset of the '#tree' line of the wanted tree
    dmap : DestinationMap
        Resolved columns, see match_columns()
    registry : DestinationRegistry
        Destination buffers, rows are appended after registry.n_rows
    chunk_size : int
        Bytes per positional read, must exceed the longest data line
    strict : bool
        If True, fields that are not entirely numeric raise FormatError instead of converting leniently
    max_columns : int
        Maximum number of resolved columns accepted

    Returns
    -------
    rows_read : int
        Number of rows appended to the registry
    next_offset : int
        Offset of the next tree header line, or the file size at end of file
    """
    if len(dmap) > max_columns:
        raise ConfigurationError(
            f"Destination map has {len(dmap)} columns but there is only space to store {max_columns}"
        )
    if chunk_size < 2:
        raise ConfigurationError(f"Chunk size ({chunk_size}) is too small")
    if offset < 0:
        raise ConfigurationError(f"Offset ({offset}) must be >= 0")
    dmap.validate(registry)

    reader = file if isinstance(file, PositionalReader) else PositionalReader(file)
    t_start = time.perf_counter()
    start_rows = registry.n_rows
    tree_offset = offset

    offset = _skip_header_line(reader, offset)

    done = False
    while not done:
        data = reader.pread(chunk_size, offset)
        nbytes_read = len(data)
        if nbytes_read == 0:
            break
        at_eof = nbytes_read < chunk_size

        pos = 0
        while pos < nbytes_read:
            nl = data.find(b"\n", pos)
            end = nl if nl != -1 else nbytes_read
            if data.find(SENTINEL_BYTE, pos, end) != -1:
                # beginning of the next tree, leave it unread
                done = True
                break
            if nl == -1:
                if not at_eof:
                    if pos == 0:
                        raise FormatError(
                            f"Line at offset {offset} is longer than the read chunk of {chunk_size} bytes"
                        )
                    break
                # last line of the file has no terminator
                _parse_raw_line(data[pos:], offset + pos, dmap, registry, strict)
                pos = nbytes_read
                break
            _parse_raw_line(data[pos:nl], offset + pos, dmap, registry, strict)
            pos = nl + 1

        assert pos <= nbytes_read, f"Bytes processed = {pos} should be at most num bytes read = {nbytes_read}"
        if TRACE:
            logger.debug(f">>BLK | chunk at {offset} | read {nbytes_read} | processed {pos} | done {done}")
        offset += pos

    rows_read = registry.n_rows - start_rows
    if DEBUG2:
        logger.debug(
            f"Tree at {tree_offset}: {rows_read} rows in {(time.perf_counter() - t_start) * 1e3:.3f} ms, "
            f"next offset {offset}"
        )
    return rows_read, offset


def _as_path(filepath):
    if isinstance(filepath, str):
        return Path(filepath)
    elif isinstance(filepath, (Path, io.IOBase)):
        return filepath
    else:
        raise TypeError(f"Filepath ({filepath!r}) is not a string, Path or binary stream")


def _read_header_line(file: IO[bytes]) -> bytes:
    file.seek(0)
    line = file.readline()
    if len(line) == 0:
        raise FormatError("Could not read the first line (the header), file is empty")
    return line


def parse_header(filepath: Union[Path, str, IO[bytes]]) -> List[str]:
    """
    Read the first line of a Consistent-Trees file and return its column names

    Parameters
    ----------
    filepath : str or Path or binary stream
        Streams are rewound to the start before reading

    Returns
    -------
    names : list of str
    """
    filepath = _as_path(filepath)
    if isinstance(filepath, Path):
        with open_file(filepath) as f:
            line = _read_header_line(f)
    else:
        line = _read_header_line(filepath)
    return tokenize_header(line)


def _scan_tree_offsets(file: IO[bytes]) -> List[Tuple[int, int]]:
    file.seek(0)
    trees = []
    pos = 0
    for line in file:
        if line.startswith(TREE_LINE_PREFIX):
            parts = line.split()
            if parts[0] == TREE_LINE_PREFIX:
                tree_id = -1
                if len(parts) > 1:
                    try:
                        tree_id = int(parts[1])
                    except ValueError:
                        logger.debug(f"Tree header at {pos} has non-integer id {parts[1]!r}")
                trees.append((tree_id, pos))
        pos += len(line)
    return trees


def find_tree_offsets(filepath: Union[Path, str, IO[bytes]]) -> List[Tuple[int, int]]:
    """
    Locate every '#tree <id>' line in a file

    Returns
    -------
    trees : list of (tree_id, offset)
        In file order. tree_id is -1 when the header carries no integer id.
    """
    filepath = _as_path(filepath)
    t_start = time.perf_counter()
    if isinstance(filepath, Path):
        with open_file(filepath) as f:
            trees = _scan_tree_offsets(f)
    else:
        trees = _scan_tree_offsets(filepath)
    logger.debug(f"Located {len(trees)} trees in {(time.perf_counter() - t_start) * 1e3:.3f} ms")
    return trees


def read(
    filepath: Union[Path, str, IO[bytes]],
    columns: Union[Mapping[str, object], Iterable[str]],
    trees: Optional[Iterable[int]] = None,
    initial_capacity: int = DEFAULT_CAPACITY,
    chunk_size: int = READ_CHUNK_SIZE,
    strict: bool = False,
    tree_id_column: Optional[str] = "tree_id",
) -> pd.DataFrame:
    """
    Read selected columns of a Consistent-Trees file into a DataFrame

    Parameters
    ----------
    filepath : str or Path or binary stream
        A valid file path or a seekable binary stream
    columns : mapping or iterable of str
        Either {name: type} (type is anything NumericType.lookup accepts) or column names, read as double
    trees : iterable of int, optional
        If given, ids of the trees to read, in the order they should appear. Defaults to all trees in file order.
    initial_capacity : int
        Initial number of rows allocated per column, doubled as needed
    chunk_size : int
        Bytes per positional read
    strict : bool
        If True, fields that are not entirely numeric raise FormatError
    tree_id_column : str, optional
        Name of the column holding the id of the tree each row came from, None to omit it

    Returns
    -------
    df : DataFrame
        One column per requested column that exists in the file, in request order
    """
    filepath = _as_path(filepath)

    if isinstance(columns, Mapping):
        items = list(columns.items())
    else:
        items = [(c, NumericType.F64) for c in columns]
    if len(items) == 0:
        raise ValueError("At least one column must be requested")

    max_columns = max(MAX_COLUMNS, len(items))
    requested = [RequestedColumn(name, t, slot=i, offset=0) for i, (name, t) in enumerate(items)]
    registry = DestinationRegistry.allocate(
        [r.type.dtype for r in requested], capacity=max(1, initial_capacity), max_columns=max_columns
    )

    t_start = time.perf_counter()
    logger.debug('Opening file "%s"', str(filepath))
    file = open_file(filepath) if isinstance(filepath, Path) else filepath
    try:
        names = tokenize_header(_read_header_line(file))
        dmap = match_columns(requested, names, max_columns=max_columns)
        tree_offsets = _scan_tree_offsets(file)

        if trees is not None:
            offsets_by_id = {tree_id: off for tree_id, off in tree_offsets}
            missing = [t for t in trees if t not in offsets_by_id]
            if len(missing) > 0:
                raise ValueError(f"Requested trees ({missing}) are not present in the file")
            tree_offsets = [(t, offsets_by_id[t]) for t in trees]

        reader = PositionalReader(file)
        tree_ids = []
        tree_rows = []
        for tree_id, off in tree_offsets:
            rows_read, _ = read_block(
                reader, off, dmap, registry, chunk_size=chunk_size, strict=strict, max_columns=max_columns
            )
            tree_ids.append(tree_id)
            tree_rows.append(rows_read)
    finally:
        if isinstance(filepath, Path):
            file.close()

    df = registry.to_df(names=[r.name for r in requested])
    matched_slots = {c.slot for c in dmap}
    df = df.iloc[:, [r.slot for r in requested if r.slot in matched_slots]]
    if tree_id_column is not None:
        df.insert(0, tree_id_column, np.repeat(np.array(tree_ids, dtype=np.int64), tree_rows))

    logger.debug(
        f"Read in {(time.perf_counter() - t_start) * 1e3:.3f} ms, {len(tree_ids)} trees, {registry.n_rows} rows, "
        f"{len(dmap)}/{len(requested)} columns"
    )
    return df
