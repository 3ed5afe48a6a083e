import asyncio
import logging
from collections.abc import Awaitable
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field, PositiveInt

from ledger_submit.config import cfg
from ledger_submit.logging_config import setup_logging
from ledger_submit.rpc import RpcError
from ledger_submit.submission import RetryBudgetExhausted, SubmissionLoopOverrun, TransactionRejected
from ledger_submit.transaction import Transaction
import ledger_submit.constants as C

setup_logging()
log = logging.getLogger("ledger_submit.app")

TIMEOUT = 3.0


async def _probe_node(url: str, max_retries: int = C.PROBE_RETRIES, retry_delay: float = C.PROBE_DELAY) -> None:
    """Probe the node's JSON-RPC endpoint with retries until it answers server_info."""
    payload = {"method": "server_info", "params": [{}]}

    for attempt in range(1, max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as http:
                r = await http.post(url, json=payload)
                r.raise_for_status()
                log.info(f"RPC endpoint {url} responding (attempt {attempt}/{max_retries})")
                return
        except httpx.HTTPError as e:
            if attempt < max_retries:
                log.info(f"RPC not ready yet (attempt {attempt}/{max_retries}): {e.__class__.__name__} - retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                log.error(f"RPC {url} failed after {max_retries} attempts")
                raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "txn", None) is None:
        for url in cfg["node"]["urls"]:
            await _probe_node(url)
        app.state.txn = Transaction.from_config(cfg)
        log.info("Submitting to %s (retry=%s)", app.state.txn.nodes, app.state.txn.retry)
    yield
    log.info("Shutdown complete")


# =============================================================================
# Request models
# =============================================================================

Memo = str | list[dict[str, str]] | None


class Signed(BaseModel):
    address: str
    secret: str


class RawTxnReq(BaseModel):
    blob: str
    url: str | None = None


class CreateOrderReq(Signed):
    amount: str
    base: str
    counter: str
    sum: str
    type: C.ExchangeType
    platform: str | None = None
    issuer: str | None = None


class CancelOrderReq(Signed):
    offer_sequence: int = Field(ge=0)


class PaymentReq(Signed):
    amount: str
    to: str
    token: str
    memo: Memo = None
    issuer: str | None = None


class BrokerageReq(Signed):
    fee_account: str
    rate_num: int = Field(ge=0)
    rate_den: PositiveInt
    token: str
    issuer: str | None = None


class AccountMemoReq(Signed):
    account: str
    memo: Memo = None


class IssueSetReq(Signed):
    amount: str
    token: str
    issuer: str
    memo: Memo = None


class SignerEntry(BaseModel):
    account: str
    weight: PositiveInt


class SignerListReq(Signed):
    signer_quorum: int = Field(ge=0)
    signer_entries: list[SignerEntry] | None = None


class AccountSettingsReq(Signed):
    disable: bool


class Transfer721Req(Signed):
    receiver: str
    token_id: str
    memo: Memo = None


class Delete721Req(Signed):
    token_id: str


class TokenIssueReq(Signed):
    publisher: str
    amount: PositiveInt
    token: str
    flag: C.TokenFlag = C.TokenFlag.CONSUME


class TokenInfo(BaseModel):
    type: str
    data: str


class Publish721Req(Signed):
    receiver: str
    token: str
    token_id: str
    token_infos: list[TokenInfo] | None = None


class TxnResp(BaseModel):
    tx_hash: str


# =============================================================================
# Routes
# =============================================================================

r_accounts = APIRouter(prefix="/accounts", tags=["Accounts"])
r_transaction = APIRouter(prefix="/transactions", tags=["Transactions"])
r_ops = APIRouter(tags=["Operations"])
r_state = APIRouter(prefix="/state", tags=["State"])


def _txn(request: Request) -> Transaction:
    return request.app.state.txn


async def _submitted(call: Awaitable[str]) -> TxnResp:
    try:
        return TxnResp(tx_hash=await call)
    except TransactionRejected as e:
        raise HTTPException(status_code=400, detail=e.response)
    except (RetryBudgetExhausted, SubmissionLoopOverrun) as e:
        raise HTTPException(status_code=409, detail={"attempts": e.attempts, "response": e.response})
    except RpcError as e:
        raise HTTPException(status_code=502, detail=e.result)
    except ValueError as e:  # bad input, SigningError included
        raise HTTPException(status_code=422, detail=str(e))


@r_accounts.get("/{address}/sequence")
async def account_sequence(address: str, request: Request, refresh: bool = False):
    """Cached sequence belief for ``address``; ``refresh`` asks the node instead."""
    w = _txn(request)
    if refresh:
        try:
            seq = await w.fetch_sequence(w.get_node(), address)
        except RpcError as e:
            status = 404 if e.error == "actNotFound" else 502
            raise HTTPException(status_code=status, detail=e.result)
        return {"address": address, "sequence": seq, "source": "node"}
    return {"address": address, "sequence": w.resolver.cache.read(address), "source": "cache"}


@r_state.get("/sequences")
async def state_sequences(request: Request):
    seqs = _txn(request).resolver.cache.snapshot()
    return {"count": len(seqs), "sequences": seqs}


@r_transaction.get("/{tx_hash}")
async def get_transaction(tx_hash: str, request: Request):
    w = _txn(request)
    try:
        result = await w.fetch_transaction(w.get_node(), tx_hash)
    except RpcError as e:
        raise HTTPException(status_code=502, detail=e.result)
    if result is None:
        raise HTTPException(status_code=404, detail=f"transaction not found: {tx_hash}")
    return result


@r_transaction.post("/raw", response_model=TxnResp)
async def send_raw(req: RawTxnReq, request: Request):
    return await _submitted(_txn(request).send_raw_transaction(req.blob, req.url))


@r_ops.post("/orders", response_model=TxnResp)
async def create_order(req: CreateOrderReq, request: Request):
    return await _submitted(_txn(request).create_order(
        req.address, req.secret, req.amount, req.base, req.counter, req.sum, req.type, req.platform, req.issuer,
    ))


@r_ops.post("/orders/cancel", response_model=TxnResp)
async def cancel_order(req: CancelOrderReq, request: Request):
    return await _submitted(_txn(request).cancel_order(req.address, req.secret, req.offer_sequence))


@r_ops.post("/payments", response_model=TxnResp)
async def transfer(req: PaymentReq, request: Request):
    return await _submitted(_txn(request).transfer(
        req.address, req.secret, req.amount, req.memo, req.to, req.token, req.issuer,
    ))


@r_ops.post("/brokerage", response_model=TxnResp)
async def set_brokerage(req: BrokerageReq, request: Request):
    """``address``/``secret`` are the platform account's."""
    return await _submitted(_txn(request).set_brokerage(
        req.address, req.secret, req.fee_account, req.rate_num, req.rate_den, req.token, req.issuer,
    ))


@r_ops.post("/blacklist", response_model=TxnResp)
async def add_black_list(req: AccountMemoReq, request: Request):
    return await _submitted(_txn(request).add_black_list(req.address, req.secret, req.account, req.memo))


@r_ops.post("/blacklist/remove", response_model=TxnResp)
async def remove_black_list(req: AccountMemoReq, request: Request):
    return await _submitted(_txn(request).remove_black_list(req.address, req.secret, req.account, req.memo))


@r_ops.post("/issuers", response_model=TxnResp)
async def set_manage_issuer(req: AccountMemoReq, request: Request):
    return await _submitted(_txn(request).set_manage_issuer(req.address, req.secret, req.account, req.memo))


@r_ops.post("/issue-set", response_model=TxnResp)
async def issue_set(req: IssueSetReq, request: Request):
    return await _submitted(_txn(request).issue_set(
        req.address, req.secret, req.amount, req.memo, req.token, req.issuer,
    ))


@r_ops.post("/signer-list", response_model=TxnResp)
async def set_signer_list(req: SignerListReq, request: Request):
    entries = [e.model_dump() for e in req.signer_entries] if req.signer_entries else None
    return await _submitted(_txn(request).set_signer_list(req.address, req.secret, req.signer_quorum, entries))


@r_ops.post("/account-settings", response_model=TxnResp)
async def set_account(req: AccountSettingsReq, request: Request):
    return await _submitted(_txn(request).set_account(req.address, req.secret, req.disable))


@r_ops.post("/tokens/transfer", response_model=TxnResp)
async def transfer721(req: Transfer721Req, request: Request):
    return await _submitted(_txn(request).transfer721(req.address, req.secret, req.receiver, req.token_id, req.memo))


@r_ops.post("/tokens/delete", response_model=TxnResp)
async def delete721(req: Delete721Req, request: Request):
    return await _submitted(_txn(request).delete721(req.address, req.secret, req.token_id))


@r_ops.post("/tokens/issue-permission", response_model=TxnResp)
async def set_token_issue(req: TokenIssueReq, request: Request):
    return await _submitted(_txn(request).set_token_issue(
        req.address, req.secret, req.publisher, req.amount, req.token, req.flag,
    ))


@r_ops.post("/tokens/publish", response_model=TxnResp)
async def publish721(req: Publish721Req, request: Request):
    infos = [i.model_dump() for i in req.token_infos] if req.token_infos else None
    return await _submitted(_txn(request).publish721(
        req.address, req.secret, req.receiver, req.token, req.token_id, infos,
    ))


def create_app(txn: Transaction | None = None) -> FastAPI:
    app = FastAPI(
        title="Ledger Submit",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Accounts", "description": "Sequence state per account"},
            {"name": "Transactions", "description": "Look up and relay transactions"},
            {"name": "Operations", "description": "Build, sign and submit"},
            {"name": "State", "description": "Submitter state"},
        ],
    )
    app.state.txn = txn

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(r_accounts)
    app.include_router(r_transaction)
    app.include_router(r_ops)
    app.include_router(r_state)
    return app


app = create_app()
