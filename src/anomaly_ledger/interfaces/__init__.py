"""Protocol interfaces for the anomaly ledger's collaborators."""

from anomaly_ledger.interfaces.clock import Clock
from anomaly_ledger.interfaces.roles import RoleRegistry
from anomaly_ledger.interfaces.store import LedgerStore
from anomaly_ledger.interfaces.transfer import TransferGateway

__all__ = ["Clock", "RoleRegistry", "LedgerStore", "TransferGateway"]
