class CTreesError(Exception):
    """Base class for all errors raised by pyctrees"""
    pass


class ConfigurationError(CTreesError, ValueError):
    """Requested columns, slots, offsets or strides are inconsistent. Raised before any data is written."""
    pass


class CTreesIOError(CTreesError, OSError):
    """Underlying file could not be opened or read"""
    pass


class FormatError(CTreesError, ValueError):
    """File content does not match the expected Consistent-Trees layout"""
    pass


class AllocationError(CTreesError, MemoryError):
    """Destination buffers could not be grown. Registry is left at its last committed capacity."""
    pass
