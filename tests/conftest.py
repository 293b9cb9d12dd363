"""
CTP Test Fixtures
"""

import pytest

from ctp.chain.interface import MockChain
from ctp.core.types import KeyPair, Outpoint, PaycodeSecret
from ctp.flow.transfer import Party
from ctp.protocol.covenant import CovenantTemplate
from ctp.zk.sigma import generate_proof


@pytest.fixture(scope="session")
def sender() -> Party:
    """Deterministic sender."""
    return Party.from_seed("alice", b"alice")


@pytest.fixture(scope="session")
def receiver() -> Party:
    """Deterministic receiver."""
    return Party.from_seed("bob", b"bob")


@pytest.fixture
def sender_key() -> KeyPair:
    """Sender input key (private key 0x11..11)."""
    return KeyPair(bytes([0x11] * 32))


@pytest.fixture
def receiver_secret() -> PaycodeSecret:
    """Receiver paycode secret with distinct scan and spend keys."""
    return PaycodeSecret(bytes([0x22] * 32), bytes([0x33] * 32))


@pytest.fixture
def outpoint_a() -> Outpoint:
    """Funding outpoint (txidA, 0)."""
    return Outpoint("a1" * 32, 0)


@pytest.fixture
def outpoint_b() -> Outpoint:
    """A second, unrelated outpoint."""
    return Outpoint("b2" * 32, 1)


@pytest.fixture
def ephemeral_pub() -> bytes:
    """A valid compressed public key used as envelope ephemeral key."""
    return KeyPair(bytes([0x44] * 32)).public_key


@pytest.fixture(scope="session")
def proof_100k():
    """Sigma64 proof of 100000 with a fixed seed, generated once."""
    return generate_proof(100_000, bytes(range(32)))


@pytest.fixture
def template() -> CovenantTemplate:
    """Bundled covenant template."""
    return CovenantTemplate.default()


@pytest.fixture
def mock_chain() -> MockChain:
    """Empty in-memory chain at 1 sat/byte."""
    return MockChain(fee_rate=1.0)
