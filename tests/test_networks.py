"""
test_networks.py - Tests for the deployment target address book
"""

import pytest

from token_conformance import Addresses, UnknownNetwork, ErrorKind, get_addresses, chain_id_for, known_networks
from token_conformance.networks import MAINNET_WETH


class TestAddressBook:

    def test_known_networks(self):
        assert known_networks() == ["goerli", "hardhat", "mainnet", "optimism", "polygon"]

    def test_mainnet_weth(self):
        assert get_addresses("mainnet").weth == "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"

    def test_local_node_shares_mainnet_weth(self):
        assert get_addresses("hardhat").weth == MAINNET_WETH

    def test_network_without_weth(self):
        assert get_addresses("goerli").weth is None

    def test_addresses_are_checksummed(self):
        assert Addresses(weth=MAINNET_WETH.lower()).weth == MAINNET_WETH

    def test_unknown_network(self):
        with pytest.raises(UnknownNetwork) as info:
            get_addresses("atlantis")
        assert info.value.kind == ErrorKind.UNKNOWN_NETWORK


class TestChainIds:

    @pytest.mark.parametrize("network,chain_id", [
        ("hardhat", 31337), ("mainnet", 1), ("polygon", 137), ("optimism", 10), ("goerli", 5),
    ])
    def test_chain_id(self, network, chain_id):
        assert chain_id_for(network) == chain_id

    def test_unknown_network(self):
        with pytest.raises(UnknownNetwork):
            chain_id_for("atlantis")

    def test_every_network_has_a_chain_id(self):
        for network in known_networks():
            assert chain_id_for(network) > 0
