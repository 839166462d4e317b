"""
Text to number conversions with C library semantics

Consistent-trees readers traditionally convert fields with strtol/strtod and never check the end pointer. These
helpers reproduce that behaviour: the longest valid numeric prefix is converted, text without a numeric prefix
becomes 0, and out-of-range integers saturate at the 64-bit limits before being truncated to the destination width.
Passing strict=True instead rejects anything that is not entirely a number.
"""
import re

from .constants import _INT64_MIN, _INT64_MAX, _UINT64_MAX
from .errors import FormatError

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan))",
                           re.IGNORECASE)


def _reject(token: str, kind: str):
    raise FormatError(f"Token {token!r} is not a valid {kind} value")


def strtol(token: str, strict: bool = False) -> int:
    if "_" not in token:
        try:
            value = int(token)
        except ValueError:
            pass
        else:
            if strict and not _INT64_MIN <= value <= _INT64_MAX:
                _reject(token, "int64")
            return min(max(value, _INT64_MIN), _INT64_MAX)
    if strict:
        _reject(token, "integer")
    m = _INT_PREFIX.match(token)
    if m is None:
        return 0
    return min(max(int(m.group(1)), _INT64_MIN), _INT64_MAX)


def strtoul(token: str, strict: bool = False) -> int:
    # strtoul negates in unsigned arithmetic, so "-1" becomes ULONG_MAX
    value = None
    if "_" not in token:
        try:
            value = int(token)
        except ValueError:
            pass
    if value is None:
        if strict:
            _reject(token, "unsigned integer")
        m = _INT_PREFIX.match(token)
        if m is None:
            return 0
        value = int(m.group(1))
    if strict and value > _UINT64_MAX:
        _reject(token, "uint64")
    if abs(value) > _UINT64_MAX:
        return _UINT64_MAX
    if value < 0:
        return (-abs(value)) & _UINT64_MAX
    return value


def strtod(token: str, strict: bool = False) -> float:
    if "_" not in token:
        try:
            return float(token)
        except ValueError:
            pass
    if strict:
        _reject(token, "floating point")
    m = _FLOAT_PREFIX.match(token)
    if m is None:
        return 0.0
    return float(m.group(1))


def to_int32(token: str, strict: bool = False) -> int:
    value = strtol(token, strict)
    if strict and not -2 ** 31 <= value < 2 ** 31:
        _reject(token, "int32")
    # (int32_t) cast keeps the low 32 bits
    return ((value + 2 ** 31) & 0xFFFFFFFF) - 2 ** 31


def to_int64(token: str, strict: bool = False) -> int:
    return strtol(token, strict)


def to_uint32(token: str, strict: bool = False) -> int:
    value = strtoul(token, strict)
    if strict and (value > 0xFFFFFFFF or token.lstrip().startswith("-")):
        _reject(token, "uint32")
    return value & 0xFFFFFFFF


def to_uint64(token: str, strict: bool = False) -> int:
    value = strtoul(token, strict)
    if strict and token.lstrip().startswith("-"):
        _reject(token, "uint64")
    return value


_CONVERTERS = {'I32': to_int32, 'I64': to_int64,
               'U32': to_uint32, 'U64': to_uint64,
               'F32': strtod, 'F64': strtod}


def convert(token: str, type_name: str, strict: bool = False):
    """
    Convert one token to a Python number suitable for the destination type

    Parameters
    ----------
    token : str
        Single whitespace-free field
    type_name : str
        NumericType value, one of 'I32', 'I64', 'U32', 'U64', 'F32', 'F64'
    strict : bool
        If True, raise FormatError unless the whole token is a valid number in range

    Returns
    -------
    value : int or float
    """
    return _CONVERTERS[type_name](token, strict)
