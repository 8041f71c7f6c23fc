"""Contract ABI fragments we need.

Only the functions the staking flow calls are included.
"""


def _function(name: str, inputs: list[tuple[str, str]], outputs: list[str], mutability: str = "view") -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs],
    }


#: ERC-20 functions
ERC20_ABI = [
    _function("name", [], ["string"]),
    _function("symbol", [], ["string"]),
    _function("decimals", [], ["uint8"]),
    _function("totalSupply", [], ["uint256"]),
    _function("balanceOf", [("account", "address")], ["uint256"]),
    _function("allowance", [("owner", "address"), ("spender", "address")], ["uint256"]),
    _function("approve", [("spender", "address"), ("amount", "uint256")], ["bool"], "nonpayable"),
]

#: ERC-4626 functions, vault shares are ERC-20 as well
ERC4626_ABI = [
    fragment for fragment in ERC20_ABI if fragment["name"] not in ("allowance", "approve")
] + [
    _function("asset", [], ["address"]),
    _function("totalAssets", [], ["uint256"]),
    _function("convertToAssets", [("shares", "uint256")], ["uint256"]),
    _function("convertToShares", [("assets", "uint256")], ["uint256"]),
    _function("previewDeposit", [("assets", "uint256")], ["uint256"]),
    _function("previewRedeem", [("shares", "uint256")], ["uint256"]),
    _function("maxDeposit", [("receiver", "address")], ["uint256"]),
    _function("maxRedeem", [("owner", "address")], ["uint256"]),
    _function("deposit", [("assets", "uint256"), ("receiver", "address")], ["uint256"], "nonpayable"),
    _function("redeem", [("shares", "uint256"), ("receiver", "address"), ("owner", "address")], ["uint256"], "nonpayable"),
]
