"""Flag lifecycle engine - submission, voting, finalization, governance."""

from anomaly_ledger.engine.admin import ParameterAdmin
from anomaly_ledger.engine.finalizer import ConsensusFinalizer
from anomaly_ledger.engine.governance import GovernanceProposals
from anomaly_ledger.engine.submission import FlagSubmission
from anomaly_ledger.engine.voting import StakeVoting

__all__ = [
    "ConsensusFinalizer",
    "FlagSubmission",
    "GovernanceProposals",
    "ParameterAdmin",
    "StakeVoting",
]
