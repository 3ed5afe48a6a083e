"""Builders for the transaction JSON each facade operation submits.

Every builder is pure: it takes business fields and returns a dict in binary
codec form (``TransactionType``, ``Account``, ``Fee`` in drops, ...). Sequence
and signature fields are left to the submission loop.
"""
import logging
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from typing import Any, TypedDict

import ledger_submit.constants as C

log = logging.getLogger("ledger_submit.txn")


class MemoInput(TypedDict, total=False):
    MemoType: str
    MemoData: str
    MemoFormat: str


class SignerEntryInput(TypedDict):
    account: str
    weight: int


class TokenInfoInput(TypedDict):
    type: str
    data: str


Memo = str | Sequence[MemoInput] | None


def _hex(s: str) -> str:
    return s.encode("utf-8").hex().upper()


def _decimal(value: str | int | float, what: str = "amount") -> Decimal:
    try:
        d = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{what} is not a number: {value!r}") from None
    if not d.is_finite() or d <= 0:
        raise ValueError(f"{what} must be positive, got {value!r}")
    return d


def _plain(d: Decimal) -> str:
    return format(d.normalize(), "f")


def to_amount(value: str | int | float, token: str, issuer: str, native: str) -> str | dict:
    """Native currency -> drops string, anything else -> issued amount dict."""
    d = _decimal(value)
    if token.upper() == native.upper():
        drops = d * C.DROPS_PER_UNIT
        if drops != drops.to_integral_value():
            raise ValueError(f"{value} {native} is not a whole number of drops")
        return str(int(drops))
    if not issuer:
        raise ValueError(f"issued amount of {token} needs an issuer")
    return {"currency": token.upper(), "issuer": issuer, "value": _plain(d)}


def format_memos(memo: Memo) -> list[dict] | None:
    if not memo:
        return None
    if isinstance(memo, str):
        return [{"Memo": {"MemoType": _hex(C.MEMO_TYPE_STRING), "MemoData": _hex(memo)}}]
    return [{"Memo": {k: _hex(v) for k, v in m.items() if v}} for m in memo]


def _base(tx_type: C.TxType, account: str, fee: int, **fields: Any) -> dict:
    tx = {
        "TransactionType": str(tx_type),
        "Account": account,
        "Fee": str(fee),
        "Flags": 0,
    }
    tx.update({k: v for k, v in fields.items() if v is not None})
    log.debug("Built %s for %s: %s", tx_type, account, tx)
    return tx


# =============================================================================
# One builder per facade operation
# =============================================================================


def build_create_order(
    account: str,
    amount: str,
    base: str,
    counter: str,
    sum_: str,
    exchange_type: C.ExchangeType | str,
    platform: str | None,
    native: str,
    fee: int,
    issuer: str,
) -> dict:
    """Offer for the ``base``/``counter`` pair: ``amount`` of base against ``sum_`` of counter.

    Buying base means the taker pays us base and we give counter; selling swaps
    the two legs and sets tfSell. ``platform`` is the Jingtum order platform
    account; leave it None on chains without that field.
    """
    try:
        side = C.ExchangeType(str(exchange_type).lower())
    except ValueError:
        raise ValueError(f"exchange type must be buy or sell, got {exchange_type!r}") from None

    base_amount = to_amount(amount, base, issuer, native)
    counter_amount = to_amount(sum_, counter, issuer, native)
    if side is C.ExchangeType.BUY:
        pays, gets, flags = base_amount, counter_amount, 0
    else:
        pays, gets, flags = counter_amount, base_amount, int(C.OfferFlag.TF_SELL)

    tx = _base(C.TxType.OFFER_CREATE, account, fee, TakerPays=pays, TakerGets=gets, Platform=platform)
    tx["Flags"] = flags
    return tx


def build_cancel_order(account: str, offer_sequence: int, fee: int) -> dict:
    if offer_sequence < 0:
        raise ValueError(f"offer sequence must be non-negative, got {offer_sequence}")
    return _base(C.TxType.OFFER_CANCEL, account, fee, OfferSequence=int(offer_sequence))


def build_payment(
    account: str,
    amount: str,
    to: str,
    token: str,
    memo: Memo,
    fee: int,
    native: str,
    issuer: str,
) -> dict:
    return _base(
        C.TxType.PAYMENT,
        account,
        fee,
        Amount=to_amount(amount, token, issuer, native),
        Destination=to,
        Memos=format_memos(memo),
    )


def build_brokerage(
    platform_account: str,
    fee_account: str,
    rate_num: int,
    rate_den: int,
    token: str,
    issuer: str,
    fee: int,
) -> dict:
    if rate_den <= 0 or rate_num < 0 or rate_num > rate_den:
        raise ValueError(f"fee rate must satisfy 0 <= num <= den and den > 0, got {rate_num}/{rate_den}")
    return _base(
        C.TxType.BROKERAGE,
        platform_account,
        fee,
        OfferFeeRateNum=int(rate_num),
        OfferFeeRateDen=int(rate_den),
        Amount={"currency": token.upper(), "issuer": issuer, "value": "0"},
        FeeAccountID=fee_account,
    )


def build_set_blacklist(account: str, target: str, memo: Memo, fee: int) -> dict:
    return _base(C.TxType.SET_BLACKLIST, account, fee, BlackListAccountID=target, Memos=format_memos(memo))


def build_remove_blacklist(account: str, target: str, memo: Memo, fee: int) -> dict:
    return _base(C.TxType.REMOVE_BLACKLIST, account, fee, BlackListAccountID=target, Memos=format_memos(memo))


def build_manage_issuer(account: str, new_issuer: str, memo: Memo, fee: int) -> dict:
    return _base(C.TxType.MANAGE_ISSUER, account, fee, IssuerAccountID=new_issuer, Memos=format_memos(memo))


def build_issue_set(account: str, amount: str, token: str, memo: Memo, issuer: str, fee: int) -> dict:
    total = _decimal(amount)
    return _base(
        C.TxType.ISSUE_SET,
        account,
        fee,
        TotalAmount={"currency": token.upper(), "issuer": issuer, "value": _plain(total)},
        Memos=format_memos(memo),
    )


def build_signer_list(
    account: str,
    signer_quorum: int,
    fee: int,
    signer_entries: Sequence[SignerEntryInput] | None = None,
) -> dict:
    """SignerListSet; a quorum of zero with no entries removes the list."""
    if signer_quorum < 0:
        raise ValueError(f"signer quorum must be non-negative, got {signer_quorum}")
    if signer_quorum == 0:
        return _base(C.TxType.SIGNER_LIST_SET, account, fee, SignerQuorum=0)

    if not signer_entries:
        raise ValueError("a non-zero signer quorum needs signer entries")
    total_weight = sum(int(e["weight"]) for e in signer_entries)
    if total_weight < signer_quorum:
        raise ValueError(f"signer weights ({total_weight}) can never reach quorum {signer_quorum}")
    entries = [
        {"SignerEntry": {"Account": e["account"], "SignerWeight": int(e["weight"])}}
        for e in signer_entries
    ]
    return _base(C.TxType.SIGNER_LIST_SET, account, fee, SignerQuorum=int(signer_quorum), SignerEntries=entries)


def build_set_account(account: str, disable: bool, fee: int) -> dict:
    """Disable (or re-enable) the master key."""
    flag = int(C.AccountSetAsf.ASF_DISABLE_MASTER)
    if disable:
        return _base(C.TxType.ACCOUNT_SET, account, fee, SetFlag=flag)
    return _base(C.TxType.ACCOUNT_SET, account, fee, ClearFlag=flag)


def build_transfer_721(account: str, receiver: str, token_id: str, fee: int, memo: Memo = None) -> dict:
    return _base(
        C.TxType.TRANSFER_TOKEN,
        account,
        fee,
        Destination=receiver,
        TokenID=token_id,
        Memos=format_memos(memo),
    )


def build_delete_721(account: str, token_id: str, fee: int) -> dict:
    return _base(C.TxType.TOKEN_DEL, account, fee, TokenID=token_id)


def build_token_issue(
    account: str,
    publisher: str,
    amount: int,
    token: str,
    flag: C.TokenFlag | int,
    fee: int,
) -> dict:
    if int(amount) <= 0:
        raise ValueError(f"token issue size must be positive, got {amount}")
    tx = _base(C.TxType.TOKEN_ISSUE, account, fee, Issuer=publisher, FundCode=_hex(token), TokenSize=int(amount))
    tx["Flags"] = int(C.TokenFlag(flag))
    return tx


def build_publish_721(
    account: str,
    receiver: str,
    token: str,
    token_id: str,
    fee: int,
    token_infos: Sequence[TokenInfoInput] | None = None,
) -> dict:
    infos = None
    if token_infos:
        infos = [{"TokenInfo": {"InfoType": _hex(i["type"]), "InfoData": _hex(i["data"])}} for i in token_infos]
    return _base(
        C.TxType.TRANSFER_TOKEN,
        account,
        fee,
        Publisher=account,
        Destination=receiver,
        FundCode=_hex(token),
        TokenID=token_id,
        TokenInfos=infos,
    )
