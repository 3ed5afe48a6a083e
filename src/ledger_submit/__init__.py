from ledger_submit.config import ChainOption
from ledger_submit.rpc import NodeRpc, RpcError
from ledger_submit.sequence import InMemorySequenceCache, SequenceResolver
from ledger_submit.signer import ChainWallet, SignResult, SigningError
from ledger_submit.submission import (
    RetryBudgetExhausted,
    SubmissionError,
    SubmissionLoop,
    SubmissionLoopOverrun,
    TransactionRejected,
)
from ledger_submit.transaction import Transaction

__all__ = [
    "ChainOption",
    "ChainWallet",
    "InMemorySequenceCache",
    "NodeRpc",
    "RetryBudgetExhausted",
    "RpcError",
    "SequenceResolver",
    "SignResult",
    "SigningError",
    "SubmissionError",
    "SubmissionLoop",
    "SubmissionLoopOverrun",
    "TransactionRejected",
    "Transaction",
]
