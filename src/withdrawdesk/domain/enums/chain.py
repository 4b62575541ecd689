from enum import Enum


class Chain(str, Enum):
    """Supported blockchain networks. Values lowercase to match RPC/API conventions."""

    ETHEREUM = "ethereum"
    TRON = "tron"
    SOLANA = "solana"

    @property
    def chain_id(self) -> str:
        """Chain ID string used by the wallet tables."""
        return CHAIN_IDS[self]

    @classmethod
    def from_chain_id(cls, chain_id: str) -> "Chain":
        for chain, cid in CHAIN_IDS.items():
            if cid == str(chain_id):
                return chain
        raise ValueError(f"Unsupported chain id: {chain_id}")


CHAIN_IDS: dict[Chain, str] = {
    Chain.ETHEREUM: "1",
    Chain.TRON: "728126428",
    Chain.SOLANA: "507454",
}
