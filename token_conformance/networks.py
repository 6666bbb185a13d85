"""
networks.py - Deployment Target Address Book

Resolves a deployment target name to the canonical addresses of external
tokens a ledger might wrap or be compared against, and to its chain id.
Only used for environment setup.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional

from .core import UnknownNetwork, normalize_address


@dataclass(frozen=True)
class Addresses:
    """
    External token addresses on one network.

    weth is None where the network has no canonical wrapped-ether deployment.
    """
    weth: Optional[str]

    def __post_init__(self):
        if self.weth is not None:
            object.__setattr__(self, 'weth', normalize_address(self.weth))


MAINNET_WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"

# The local development node forks mainnet, so it shares mainnet's WETH.
_ADDRESS_BOOK: Dict[str, Addresses] = {
    "hardhat": Addresses(weth=MAINNET_WETH),
    "mainnet": Addresses(weth=MAINNET_WETH),
    "polygon": Addresses(weth="0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619"),
    "optimism": Addresses(weth="0x4200000000000000000000000000000000000006"),
    "goerli": Addresses(weth=None),
}

_CHAIN_IDS: Dict[str, int] = {
    "hardhat": 31337,
    "mainnet": 1,
    "polygon": 137,
    "optimism": 10,
    "goerli": 5,
}


def get_addresses(network: str) -> Addresses:
    """
    Look up the address book for a deployment target.

    Raises:
        UnknownNetwork: If network is not a known target
    """
    if network not in _ADDRESS_BOOK:
        raise UnknownNetwork(f"Unknown network: {network!r}")
    return _ADDRESS_BOOK[network]


def chain_id_for(network: str) -> int:
    """
    Raises:
        UnknownNetwork: If network is not a known target
    """
    if network not in _CHAIN_IDS:
        raise UnknownNetwork(f"Unknown network: {network!r}")
    return _CHAIN_IDS[network]


def known_networks() -> List[str]:
    return sorted(_ADDRESS_BOOK)
