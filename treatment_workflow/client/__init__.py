"""Record sources for the clinic backend."""

from .base_client import (
    ClinicRecordSource,
    RecordNotFound,
    RecordSourceError,
    TransientFetchFailure,
)
from .memory_source import InMemoryRecordSource
from .rest_client import RestRecordSource

__all__ = [
    "ClinicRecordSource",
    "RecordNotFound",
    "RecordSourceError",
    "TransientFetchFailure",
    "InMemoryRecordSource",
    "RestRecordSource",
]
