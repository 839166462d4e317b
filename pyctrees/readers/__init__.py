from .readers import (  # noqa: F401
    find_tree_offsets,
    match_columns,
    parse_header,
    parse_line,
    read,
    read_block,
    resolve_columns,
)
from .tokenizers import tokenize_header  # noqa: F401
