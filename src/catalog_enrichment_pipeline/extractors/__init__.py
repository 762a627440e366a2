"""Per-field optimizers used when turning external records into candidates."""

from .registry import ARRAY_CAPS, OPTIMIZERS, STRING_CAPS, optimize, optimize_record

__all__ = [
    "ARRAY_CAPS",
    "OPTIMIZERS",
    "STRING_CAPS",
    "optimize",
    "optimize_record",
]
