"""
CTP Zero-Knowledge Layer
Sigma64 range proofs and amount envelopes
"""

from ctp.zk.sigma import RangeProof, BitProof, generate_proof, verify_proof
from ctp.zk.envelope import (
    AmountEnvelope,
    AmountProofEnvelope,
    EnvelopeHeader,
    build_amount_proof_envelope,
    build_envelope,
    parse_envelope,
    verify_amount_proof_envelope,
)

__all__ = [
    "RangeProof",
    "BitProof",
    "generate_proof",
    "verify_proof",
    "AmountEnvelope",
    "AmountProofEnvelope",
    "EnvelopeHeader",
    "build_amount_proof_envelope",
    "build_envelope",
    "parse_envelope",
    "verify_amount_proof_envelope",
]
