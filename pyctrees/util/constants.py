import numpy as np

# Consistent-trees output always uses '#' for the column header, tree headers and comments
SENTINEL = "#"
SENTINEL_BYTE = b"#"

# Maximum number of columns that can be requested (files themselves may contain more)
MAX_COLUMNS = 128

# Maximum number of characters in a column name, including any '(N)' annotation
# Some of the Consistent-Trees column names are long, so do not go below 64
MAX_COLNAME_LEN = 64

# Maximum number of expected characters in a single line
MAX_LINE_LEN = 1024

# Positional reads fetch this many bytes at a time
READ_CHUNK_SIZE = 4 * MAX_LINE_LEN

# Initial window used to skip past the '#tree <id>' line, grown as needed
HEADER_WINDOW = 30

# Smallest supported scalar is 4 bytes (float or int32)
MIN_STRIDE = 4

DEFAULT_CAPACITY = 1024

# Delimiters used by the two header passes
HEADER_COUNT_DELIMITERS = " ,"
HEADER_NAME_DELIMITERS = " ,\n#"

TREE_LINE_PREFIX = b"#tree"

# Aliases accepted when looking up a numeric type by name
_TYPE_ALIASES = {'i32': 'I32', 'int32': 'I32', 'int': 'I32', 'long': 'I32',
                 'i64': 'I64', 'int64': 'I64', 'long64': 'I64',
                 'u32': 'U32', 'uint32': 'U32', 'ulong': 'U32',
                 'u64': 'U64', 'uint64': 'U64', 'ulong64': 'U64',
                 'f32': 'F32', 'float32': 'F32', 'float': 'F32',
                 'f64': 'F64', 'float64': 'F64', 'double': 'F64'}

# Native byte order, destination buffers are plain in-memory arrays
_NUMPY_DTYPES = {'I32': np.dtype(np.int32), 'I64': np.dtype(np.int64),
                 'U32': np.dtype(np.uint32), 'U64': np.dtype(np.uint64),
                 'F32': np.dtype(np.float32), 'F64': np.dtype(np.float64)}

_NUMPY_DTYPE_SIZES = {'I32': 4, 'I64': 8,
                      'U32': 4, 'U64': 8,
                      'F32': 4, 'F64': 8}

# Integer limits used to emulate strtol/strtoul saturation on LP64 platforms
_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1
_UINT64_MAX = 2 ** 64 - 1
