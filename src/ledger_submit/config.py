import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from xrpl import CryptoAlgorithm

pkg_root = Path(__file__).parent
config_file = Path(os.getenv("LEDGER_SUBMIT_CONFIG", pkg_root / "config.toml"))


def load_config(path: str | Path | None = None) -> dict:
    cfg = tomllib.loads(Path(path or config_file).read_text())
    node = cfg.setdefault("node", {})
    if urls := os.getenv("NODE_URLS"):
        node["urls"] = [u.strip() for u in urls.split(",") if u.strip()]
    if not node.get("urls"):
        raise ValueError("config needs at least one node url ([node].urls or NODE_URLS)")
    cfg.setdefault("submission", {})
    cfg.setdefault("chain", {"name": "xrpl"})
    cfg.setdefault("chains", {})
    return cfg


cfg = load_config()


@dataclass(frozen=True, slots=True)
class ChainOption:
    name: str
    currency: str
    fee: int  # drops
    issuer: str = ""
    algorithm: CryptoAlgorithm = CryptoAlgorithm.SECP256K1
    signer: str = ""  # "module:attr" factory; empty means the built-in ChainWallet

    @classmethod
    def from_table(cls, name: str, table: dict) -> "ChainOption":
        return cls(
            name=name,
            currency=table["currency"],
            fee=int(table["fee"]),
            issuer=table.get("issuer", ""),
            algorithm=CryptoAlgorithm(table.get("algorithm", "secp256k1")),
            signer=table.get("signer", ""),
        )


def resolve_chain(chain: "str | ChainOption", config: dict | None = None) -> ChainOption:
    """Turn a preset name from ``[chains.<name>]`` into a ChainOption."""
    if isinstance(chain, ChainOption):
        return chain
    presets = (config or cfg).get("chains", {})
    if chain not in presets:
        raise ValueError(f"Unknown chain {chain!r}, configured: {sorted(presets)}")
    return ChainOption.from_table(chain, presets[chain])
