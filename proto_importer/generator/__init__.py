"""External stub generator boundary."""

from .protoc import (
    GeneratorInvoker,
    InvocationError,
    InvocationRequest,
    InvocationResult,
    group_by_source_root,
)

__all__ = [
    "GeneratorInvoker",
    "InvocationError",
    "InvocationRequest",
    "InvocationResult",
    "group_by_source_root",
]
