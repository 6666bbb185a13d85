"""
candidates - Token implementations under test

Each module is a self-contained token written against chain.Contract, with
its own invocation shape, error style and event layout:

    reference   inheritance-based, typed custom errors, named event args
    minimal     flat, public storage getters, string revert reasons
    lowlevel    raw storage words, selector dispatch, topic/data logs
"""

from .reference import ReferenceERC20
from .minimal import MinimalERC20
from .lowlevel import LowLevelERC20

__all__ = ["ReferenceERC20", "MinimalERC20", "LowLevelERC20"]
