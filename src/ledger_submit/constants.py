from typing import Final
from enum import IntFlag, StrEnum


class TxType(StrEnum):
    ACCOUNT_SET       = "AccountSet"
    BROKERAGE         = "Brokerage"
    ISSUE_SET         = "IssueSet"
    MANAGE_ISSUER     = "ManageIssuer"
    OFFER_CREATE      = "OfferCreate"
    OFFER_CANCEL      = "OfferCancel"
    PAYMENT           = "Payment"
    REMOVE_BLACKLIST  = "RemoveBlackList"
    SET_BLACKLIST     = "SetBlackList"
    SIGNER_LIST_SET   = "SignerListSet"
    TOKEN_DEL         = "TokenDel"
    TOKEN_ISSUE       = "TokenIssue"
    TRANSFER_TOKEN    = "TransferToken"


class EngineResult(StrEnum):
    TES_SUCCESS = "tesSUCCESS"
    TER_PRE_SEQ = "terPRE_SEQ"
    TEF_PAST_SEQ = "tefPAST_SEQ"


# Sequence too high / sequence already consumed. Nothing else is worth a retry.
RETRYABLE_RESULTS: Final = frozenset({EngineResult.TER_PRE_SEQ, EngineResult.TEF_PAST_SEQ})


class SubmitState(StrEnum):
    RESOLVING  = "RESOLVING"
    SIGNING    = "SIGNING"
    SUBMITTING = "SUBMITTING"
    ACCEPTED   = "ACCEPTED"
    RETRY      = "RETRY"
    FATAL      = "FATAL"


class ExchangeType(StrEnum):
    BUY  = "buy"
    SELL = "sell"


class TokenFlag(IntFlag):
    """Flags carried by a TokenIssue permission."""
    CONSUME    = 0x0
    NONCONSUME = 0x1


class OfferFlag(IntFlag):
    TF_SELL = 0x00080000


class AccountSetAsf(IntFlag):
    ASF_DISABLE_MASTER = 4


DROPS_PER_UNIT = 1_000_000
MEMO_TYPE_STRING = "string"
RPC_TIMEOUT = 2.0
VALIDATION_TIMEOUT = 15.0
VALIDATION_POLL_INTERVAL = 0.5
PROBE_RETRIES = 30
PROBE_DELAY = 2.0

__all__ = [
    "DROPS_PER_UNIT",
    "MEMO_TYPE_STRING",
    "PROBE_DELAY",
    "PROBE_RETRIES",
    "RETRYABLE_RESULTS",
    "RPC_TIMEOUT",
    "VALIDATION_POLL_INTERVAL",
    "VALIDATION_TIMEOUT",

    ######
    "AccountSetAsf",
    "EngineResult",
    "ExchangeType",
    "OfferFlag",
    "SubmitState",
    "TokenFlag",
    "TxType",
]
