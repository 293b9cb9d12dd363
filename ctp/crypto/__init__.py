"""
CTP Cryptographic Primitives
"""

from ctp.crypto.hash import hash160, hash256, sha256
from ctp.crypto.pedersen import PedersenGenerators, pedersen_commit
from ctp.crypto.schnorr import schnorr_sign, schnorr_verify

__all__ = [
    "hash160",
    "hash256",
    "sha256",
    "PedersenGenerators",
    "pedersen_commit",
    "schnorr_sign",
    "schnorr_verify",
]
