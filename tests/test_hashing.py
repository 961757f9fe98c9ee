"""
Hash oracle tests: hashing.py
"""
import pytest
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from mixer.errors import HashConfigurationError, NotInitializedError, DecodeError
from mixer.field import FIELD_MODULUS
from mixer.hashing import HashOracle
from mixer.merkle import MerkleAccumulator
from mixer.notes import NoteManager, NoteStore
from mixer.poseidon import CircomPoseidon


def counting_backend(calls):
    def factory(arity):
        calls.append(arity)
        return lambda inputs: sum(inputs) % FIELD_MODULUS
    return factory


class TestSetup:
    def test_hash_before_setup(self):
        oracle = HashOracle("sha256")
        assert not oracle.ready
        with pytest.raises(NotInitializedError):
            oracle.hash1(1)

    def test_unknown_backend(self):
        with pytest.raises(HashConfigurationError):
            HashOracle("md5")

    def test_setup_builds_once(self):
        calls = []
        oracle = HashOracle(counting_backend(calls))
        oracle.setup()
        oracle.setup()
        assert calls == [1, 2]
        assert oracle.ready

    def test_setup_failure_is_configuration_error(self):
        def broken(arity):
            raise RuntimeError("no constants")
        with pytest.raises(HashConfigurationError):
            HashOracle(broken).setup()

    def test_create(self):
        assert HashOracle.create("sha256").ready


class TestHashing:
    def test_deterministic(self, oracle):
        assert oracle.hash2(1, 2) == oracle.hash2(1, 2)

    def test_order_matters(self, oracle):
        assert oracle.hash2(1, 2) != oracle.hash2(2, 1)

    def test_arity_domain_separation(self, oracle):
        assert oracle.hash1(0) != oracle.hash2(0, 0)

    def test_output_in_field(self, oracle):
        for i in range(10):
            assert 0 <= oracle.hash2(i, FIELD_MODULUS - 1 - i) < FIELD_MODULUS

    def test_rejects_out_of_range_input(self, oracle):
        with pytest.raises(DecodeError):
            oracle.hash1(FIELD_MODULUS)

    def test_unsupported_arity(self, oracle):
        with pytest.raises(HashConfigurationError):
            oracle.hash([1, 2, 3])

    def test_injected_backend(self):
        oracle = HashOracle(counting_backend([])).setup()
        assert oracle.hash2(3, 4) == 7


# ── circomlib Poseidon 기준값 ──
POSEIDON_1 = 18586133768512220936620570745912940619677854269274689475585506675881198879027
POSEIDON_1_2 = 7853200120776062878684798364095072458815029376092732009249414926327459813530
POSEIDON_0_0 = 14744269619966411208579211824598458697587494354926760081771325075741142829156
POSEIDON_ZERO_LEVEL_2 = 7423237065226347324353380772367382631490014989348495481811164164159255474657


class TestPoseidonBackend:
    def test_hash1_matches_circomlib(self, poseidon_oracle):
        assert poseidon_oracle.hash1(1) == POSEIDON_1

    def test_hash2_matches_circomlib(self, poseidon_oracle):
        assert poseidon_oracle.hash2(1, 2) == POSEIDON_1_2

    def test_hash2_zeros(self, poseidon_oracle):
        assert poseidon_oracle.hash2(0, 0) == POSEIDON_0_0

    def test_permutation_constants(self):
        poseidon = CircomPoseidon(3)
        assert len(poseidon.round_constants) == (8 + 57) * 3
        assert all(0 <= c < FIELD_MODULUS for c in poseidon.round_constants)
        assert len(poseidon.mds) == 3 and all(len(row) == 3 for row in poseidon.mds)

    def test_rejects_wrong_input_count(self):
        with pytest.raises(ValueError):
            CircomPoseidon(2).hash([1, 2])

    def test_unsupported_width(self):
        with pytest.raises(ValueError):
            CircomPoseidon(4)


class TestPoseidonScenarios:
    def test_empty_tree_defaults(self, poseidon_oracle):
        tree = MerkleAccumulator(poseidon_oracle, depth=2).initialize()
        assert tree.defaults == (0, POSEIDON_0_0, POSEIDON_ZERO_LEVEL_2)
        assert tree.root == POSEIDON_ZERO_LEVEL_2

    def test_single_leaf_root(self, poseidon_oracle):
        tree = MerkleAccumulator(poseidon_oracle, depth=2).initialize()
        tree.insert_leaf(0, 1)
        expected = poseidon_oracle.hash2(poseidon_oracle.hash2(1, 0), POSEIDON_0_0)
        assert tree.root == expected
        proof = tree.generate_membership_proof(0)
        assert tree.verify_membership_proof(1, 0, proof)

    def test_note_commitment(self, poseidon_oracle):
        notes = NoteManager(poseidon_oracle, NoteStore(TinyDB(storage=MemoryStorage)))
        note = notes.parse("1-2-1000")
        assert note.commitment == POSEIDON_1_2
        assert notes.nullifier_hash(note) == POSEIDON_1
        assert notes.validate(note)
