"""I/O utilities: filesystem checks and record-id loading."""

from infrastructure.io.datasets import load_record_ids, read_table
from infrastructure.io.fs import ensure_exists

__all__ = [
    "ensure_exists",
    "read_table",
    "load_record_ids",
]
