import logging
import re
from typing import List, Union

from ..util.constants import SENTINEL, MAX_COLNAME_LEN, HEADER_COUNT_DELIMITERS, HEADER_NAME_DELIMITERS
from ..util.errors import FormatError

logger = logging.getLogger(__name__)

_COUNT_SPLIT = re.compile(f"[{re.escape(HEADER_COUNT_DELIMITERS)}]")
_NAME_SPLIT = re.compile(f"[{re.escape(HEADER_NAME_DELIMITERS)}]")


def tokenize_header(line: Union[str, bytes], max_name_len: int = MAX_COLNAME_LEN) -> List[str]:
    """
    Split the column header line into column names

    The line is walked twice. The first pass splits on space and comma only and counts every token, empty ones
    included. The second pass also splits on newline and '#', drops empty tokens, and strips the '(N)' index
    annotation from each name. N must equal the zero-based position of the name. Both passes must agree on the
    number of columns.

    Parameters
    ----------
    line : str or bytes
        First line of the file, e.g. '#scale(0) id(1) desc_scale(2)'
    max_name_len : int
        Tokens (including the annotation) must be shorter than this

    Returns
    -------
    names : list of str
        Column names in file order
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("ascii")
        except UnicodeDecodeError as ex:
            raise FormatError(f"Header line is not valid ASCII: {line!r}") from ex
    if len(line) == 0 or line[0] != SENTINEL:
        raise FormatError(f"Consistent-Trees output always contains '{SENTINEL}' as the comment character, "
                          f"but the header starts with {line[:1]!r}. Entire line is {line!r}")
    line = line.rstrip("\r\n")

    n_tokens = len(_COUNT_SPLIT.split(line))

    names = []
    for token in _NAME_SPLIT.split(line):
        if len(token) == 0:
            continue
        if len(token) >= max_name_len:
            raise FormatError(f"Column token {token!r} has length {len(token)}, should be below {max_name_len}")
        col = len(names)
        paren = token.find("(")
        if paren == -1:
            name = token
        else:
            name = token[:paren]
            close = token.find(")", paren + 1)
            if close != -1:
                annotation = token[paren + 1:close]
                try:
                    file_col = int(annotation, 10)
                except ValueError:
                    raise FormatError(f"Column {name} index annotation ({annotation}) is not an integer")
                if file_col != col:
                    raise FormatError(f"Column {name} is annotated as column {file_col} but is at position {col}")
        names.append(name)

    if len(names) != n_tokens:
        raise FormatError(f"Counting pass found {n_tokens} columns in the header but only {len(names)} actual "
                          f"column names were parsed. Entire line is {line!r}")
    logger.debug(f"Header has {len(names)} columns")
    return names


def split_fields(line: str, max_column: int) -> List[str]:
    """
    Whitespace split that stops after column `max_column`

    Runs of whitespace count as one separator. Entries 0..max_column are individual fields if the line has that
    many, any remaining text is left unsplit in a trailing entry.
    """
    return line.split(None, max_column + 1)
