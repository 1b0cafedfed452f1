"""Data source implementations."""

from club_data.datasources.memory import InMemoryDataSource
from club_data.datasources.scan import ScanDataSource

__all__ = ["InMemoryDataSource", "ScanDataSource"]
