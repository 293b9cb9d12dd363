"""
CTP Chain Collaborators
"""

from ctp.chain.interface import ChainInterface, MockChain

__all__ = ["ChainInterface", "MockChain"]
