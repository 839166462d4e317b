from pyctrees.readers import (  # noqa: F401
    read,
    read_block,
    resolve_columns,
    match_columns,
    parse_header,
    parse_line,
    find_tree_offsets,
    tokenize_header,
)
from pyctrees.structures import (  # noqa: F401
    NumericType,
    RequestedColumn,
    ResolvedColumn,
    DestinationMap,
    DestinationSlot,
    DestinationRegistry,
    grow_registry,
)
from pyctrees.util.errors import (  # noqa: F401
    CTreesError,
    ConfigurationError,
    CTreesIOError,
    FormatError,
    AllocationError,
)

__author__ = "pyctrees developers"
__version__ = "0.1.0"
