"""API components - read-only data aggregator."""

from anomaly_ledger.api.data_api import LedgerDataAPI

__all__ = ["LedgerDataAPI"]
