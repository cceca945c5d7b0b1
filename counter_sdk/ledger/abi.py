"""
ABI for the deployed Counter contract.
"""
from web3 import Web3


def _fn(name, inputs=(), outputs=(), mutability="nonpayable"):
    return {
        "inputs": [{"internalType": t, "name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"internalType": t, "name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
        "type": "function",
    }


def _event(name, inputs):
    return {
        "anonymous": False,
        "inputs": [
            {"indexed": indexed, "internalType": t, "name": n, "type": t}
            for n, t, indexed in inputs
        ],
        "name": name,
        "type": "event",
    }


def _error(name):
    return {"inputs": [], "name": name, "type": "error"}


COUNTER_ABI = [
    # Mutating functions
    _fn("increment"),
    _fn("decrement"),
    _fn("incrementBy", inputs=[("amount", "uint256")]),
    _fn("decrementBy", inputs=[("amount", "uint256")]),
    _fn("reset"),
    _fn("pause"),
    _fn("unpause"),
    _fn("transferOwnership", inputs=[("newOwner", "address")]),
    # Views
    _fn("getCount", outputs=[("", "uint256")], mutability="view"),
    _fn("getOwner", outputs=[("", "address")], mutability="view"),
    _fn("isPaused", outputs=[("", "bool")], mutability="view"),
    _fn(
        "getContractInfo",
        outputs=[
            ("currentCount", "uint256"),
            ("contractOwner", "address"),
            ("isPaused", "bool"),
            ("maxCount", "uint256"),
            ("minCount", "uint256"),
        ],
        mutability="view",
    ),
    _fn("MAX_COUNT", outputs=[("", "uint256")], mutability="view"),
    _fn("MIN_COUNT", outputs=[("", "uint256")], mutability="view"),
    # Events
    _event("CountIncremented", [("newCount", "uint256", False), ("caller", "address", True)]),
    _event("CountDecremented", [("newCount", "uint256", False), ("caller", "address", True)]),
    _event("CountReset", [("caller", "address", True)]),
    _event(
        "OwnershipTransferred",
        [("previousOwner", "address", True), ("newOwner", "address", True)],
    ),
    _event("ContractPaused", [("caller", "address", True)]),
    _event("ContractUnpaused", [("caller", "address", True)]),
    # Custom errors
    _error("OnlyOwner"),
    _error("CounterPaused"),
    _error("MaxCountExceeded"),
    _error("MinCountExceeded"),
    _error("InvalidAddress"),
]

CUSTOM_ERRORS = ("OnlyOwner", "CounterPaused", "MaxCountExceeded", "MinCountExceeded", "InvalidAddress")


def error_selector(name: str) -> str:
    """4-byte selector of a no-argument custom error, lowercase hex without 0x"""
    digest = Web3.keccak(text=f"{name}()")
    return bytes(digest[:4]).hex()


ERROR_SELECTORS = {error_selector(name): name for name in CUSTOM_ERRORS}
