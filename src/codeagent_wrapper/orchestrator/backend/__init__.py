"""Backend descriptors for external agent CLIs."""

from codeagent_wrapper.orchestrator.backend.base import (
    AUTO_DETECT_ORDER,
    BACKENDS,
    SUPPORTED_BACKENDS,
    BackendDescriptor,
    BackendKind,
    select_backend,
)

__all__ = [
    "AUTO_DETECT_ORDER",
    "BACKENDS",
    "SUPPORTED_BACKENDS",
    "BackendDescriptor",
    "BackendKind",
    "select_backend",
]
