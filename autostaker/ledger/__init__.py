from autostaker.ledger.base import OperatorLedger, PendingTransaction, TxReceipt
from autostaker.ledger.simulated import SimulatedChain, SimulatedLedger, SimulatedQueryProvider

__all__ = [
    "OperatorLedger",
    "PendingTransaction",
    "SimulatedChain",
    "SimulatedLedger",
    "SimulatedQueryProvider",
    "TxReceipt",
]
