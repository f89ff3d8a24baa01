"""Stellar integration components."""

from anomaly_ledger.stellar.clock import LedgerClock
from anomaly_ledger.stellar.payments import StellarPaymentGateway, STROOPS_PER_XLM

__all__ = ["LedgerClock", "StellarPaymentGateway", "STROOPS_PER_XLM"]
