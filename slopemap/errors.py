"""Exception hierarchy for slope map runs."""


class SlopeMapError(Exception):
    """Base class for every error raised by slopemap."""


class MalformedInputError(SlopeMapError, ValueError):
    """Input grid metadata or samples cannot describe a valid elevation grid."""


class AcceleratorUnavailableError(SlopeMapError, RuntimeError):
    """Accelerator mode was requested but no CUDA device is usable."""


class AcceleratorAllocationError(SlopeMapError, MemoryError):
    """A device buffer for a grid partition could not be allocated."""


class ExportRangeError(SlopeMapError, IndexError):
    """Part of a color grid falls outside the target raster."""


__all__ = ['SlopeMapError', 'MalformedInputError', 'AcceleratorUnavailableError',
           'AcceleratorAllocationError', 'ExportRangeError']
