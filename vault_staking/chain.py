"""Chain specific configuration.

- Human-readable chain names

- Block explorer links for transactions and addresses

- JSON-RPC URL lookup from environment variables
"""

import os


#: Manually maintained shorthand names for different EVM chains
CHAIN_NAMES = {
    1: "Ethereum",
    10: "Optimism",
    56: "Binance",
    137: "Polygon",
    8453: "Base",
    42161: "Arbitrum",
    84532: "Base Sepolia",
}

#: Block explorers, no trailing slash
CHAIN_EXPLORERS = {
    1: "https://etherscan.io",
    10: "https://optimistic.etherscan.io",
    56: "https://bscscan.com",
    137: "https://polygonscan.com",
    8453: "https://basescan.org",
    42161: "https://arbiscan.io",
    84532: "https://sepolia.basescan.org",
}


def get_chain_name(chain_id: int) -> str:
    """Get chain name.

    If we do not know the chain, return a placeholder with the id.
    """
    return CHAIN_NAMES.get(chain_id, f"<Unknown chain {chain_id}>")


def get_explorer_tx_url(chain_id: int, tx_hash: str) -> str | None:
    """Get the block explorer link for a transaction.

    :return:
        ``None`` if we do not know an explorer for this chain
    """
    explorer = CHAIN_EXPLORERS.get(chain_id)
    if not explorer:
        return None
    return f"{explorer}/tx/{tx_hash}"


def get_explorer_address_url(chain_id: int, address: str) -> str | None:
    """Get the block explorer link for a wallet or a contract."""
    explorer = CHAIN_EXPLORERS.get(chain_id)
    if not explorer:
        return None
    return f"{explorer}/address/{address}"


def shorten_hex(value: str) -> str:
    """Shorten a transaction hash or an address for display like ``0x1234...5678``."""
    if len(value) <= 10:
        return value
    return f"{value[0:6]}...{value[-4:]}"


def get_json_rpc_env(chain_id: int) -> str:
    """Name of the environment variable holding the node URL for a chain.

    ``JSON_RPC_`` followed by the chain name in upper snake case,
    e.g. ``JSON_RPC_BASE`` or ``JSON_RPC_BASE_SEPOLIA``.
    """
    assert chain_id in CHAIN_NAMES, f"No environment variable naming for chain {chain_id}, add it to CHAIN_NAMES"
    suffix = "_".join(CHAIN_NAMES[chain_id].upper().split())
    return f"JSON_RPC_{suffix}"


def read_json_rpc_url(chain_id: int) -> str:
    """Node URL for a chain, from its ``JSON_RPC_*`` environment variable.

    :raises ValueError:
        The variable is missing or empty
    """
    assert type(chain_id) is int, f"Expected int chain id, got {type(chain_id)}"
    name = get_json_rpc_env(chain_id)
    url = os.environ.get(name, "").strip()
    if not url:
        raise ValueError(f"Set {name} to a JSON-RPC URL for {get_chain_name(chain_id)}")
    return url
