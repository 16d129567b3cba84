"""Memory pressure signal used to trigger bulk eviction."""

import psutil

_BYTES_PER_MB = 1024 * 1024


def process_memory_mb() -> float:
    """Return the resident set size of the current process in megabytes.

    This is a global, approximate signal. It does not measure cached values
    individually, so it only indicates whether the process as a whole is
    under pressure.
    """
    return psutil.Process().memory_info().rss / _BYTES_PER_MB
