import sys
import os
import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from py_ecc import bn128
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from mixer.hashing import HashOracle
from mixer.merkle import MerkleAccumulator
from mixer.notes import NoteManager, NoteStore


# ── 테스트 상수 ──
SMALL_DEPTH = 2
MEDIUM_DEPTH = 4

RECIPIENT = bytes(range(32))
RELAYER = bytes(32)


@pytest.fixture(scope="session")
def oracle():
    """sha256 백엔드 해시 오라클 (setup 완료)."""
    return HashOracle("sha256").setup()


@pytest.fixture(scope="session")
def poseidon_oracle():
    """circomlib Poseidon 해시 오라클. 상수 유도가 느리므로 세션당 한 번만 만든다."""
    return HashOracle("poseidon").setup()


@pytest.fixture
def tree(oracle):
    """depth=2 누산기."""
    return MerkleAccumulator(oracle, depth=SMALL_DEPTH).initialize()


@pytest.fixture
def medium_tree(oracle):
    return MerkleAccumulator(oracle, depth=MEDIUM_DEPTH).initialize()


@pytest.fixture
def memory_db():
    return TinyDB(storage=MemoryStorage)


@pytest.fixture
def store(memory_db):
    return NoteStore(memory_db)


@pytest.fixture
def notes(oracle, store):
    return NoteManager(oracle, store)


class FakeProver:
    """snarkjs 대신 쓰는 증명 백엔드.

    고정된 곡선 위의 점들로 증명을 만들고, 증인의 공개 입력을 그대로 돌려준다.
    """

    SIGNALS = ["root", "nullifierHash", "recipient_1", "recipient_2",
               "relayer_1", "relayer_2", "fee"]

    def __init__(self, tamper=None):
        self.witnesses = []
        self.tamper = tamper

    def prove(self, witness):
        self.witnesses.append(witness)
        g1 = bn128.G1
        g2 = bn128.G2
        g1_2 = bn128.multiply(g1, 2)
        proof = {
            "pi_a": [str(int(g1[0])), str(int(g1[1])), "1"],
            "pi_b": [
                [str(int(c)) for c in g2[0].coeffs],
                [str(int(c)) for c in g2[1].coeffs],
                ["1", "0"],
            ],
            "pi_c": [str(int(g1_2[0])), str(int(g1_2[1])), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }
        signals = [witness[name] for name in self.SIGNALS]
        if self.tamper is not None:
            signals = self.tamper(signals)
        return proof, signals


@pytest.fixture
def fake_prover():
    return FakeProver()
