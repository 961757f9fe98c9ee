"""
Local Groth16 verifier tests: groth16/verifying.py
"""
import json

import pytest
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from app import create_app
from mixer.config import MixerConfig, CircuitConfig
from mixer.errors import ProtocolMismatchError, DecodeError
from mixer.field import G1, ec_add
from mixer.groth16.formatting import Groth16Proof
from mixer.groth16.verifying import VerifyingKey, verify, prepare_inputs


class TestVerifyingKey:
    def test_snarkjs_roundtrip(self, toy_groth16):
        vk = toy_groth16["vk"]
        data = vk.to_snarkjs()
        assert data["nPublic"] == 7
        assert VerifyingKey.from_snarkjs(data) == vk

    def test_n_public_mismatch(self, toy_groth16):
        data = toy_groth16["vk"].to_snarkjs()
        data["nPublic"] = 6
        with pytest.raises(ProtocolMismatchError):
            VerifyingKey.from_snarkjs(data)

    def test_missing_key(self):
        with pytest.raises(DecodeError):
            VerifyingKey.from_snarkjs({"vk_alpha_1": ["1", "2", "1"]})


class TestPrepareInputs:
    def test_count_mismatch(self, toy_groth16):
        with pytest.raises(ProtocolMismatchError):
            prepare_inputs(toy_groth16["vk"], [1, 2, 3])

    def test_zero_inputs_give_ic0(self, toy_groth16):
        vk = toy_groth16["vk"]
        assert prepare_inputs(vk, [0] * 7) == vk.ic[0]


class TestVerify:
    def test_valid_proof(self, toy_groth16):
        assert verify(toy_groth16["vk"], toy_groth16["proof"], toy_groth16["public_inputs"])

    def test_accepts_snarkjs_proof(self, toy_groth16):
        proof = toy_groth16["proof"].to_snarkjs()
        values = list(toy_groth16["public_inputs"].values)
        assert verify(toy_groth16["vk"], proof, values)

    def test_wrong_public_input(self, toy_groth16):
        values = list(toy_groth16["public_inputs"].values)
        values[6] += 1
        assert not verify(toy_groth16["vk"], toy_groth16["proof"], values)

    def test_tampered_proof(self, toy_groth16):
        proof = toy_groth16["proof"]
        tampered = Groth16Proof(a=proof.a, b=proof.b, c=ec_add(proof.c, G1))
        assert not verify(toy_groth16["vk"], tampered, toy_groth16["public_inputs"])


class TestVerifyingKeyFile:
    def test_load(self, tmp_path, toy_groth16):
        path = tmp_path / "verification_key.json"
        path.write_text(json.dumps(toy_groth16["vk"].to_snarkjs()))
        assert VerifyingKey.load(path) == toy_groth16["vk"]

    def test_load_missing(self, tmp_path):
        with pytest.raises(DecodeError):
            VerifyingKey.load(tmp_path / "nope.json")

    def test_load_bad_json(self, tmp_path):
        path = tmp_path / "verification_key.json"
        path.write_text("{")
        with pytest.raises(DecodeError):
            VerifyingKey.load(path)


class TestConfiguredVerifyingKey:
    @pytest.fixture
    def client(self, tmp_path, oracle, fake_prover, toy_groth16):
        path = tmp_path / "verification_key.json"
        path.write_text(json.dumps(toy_groth16["vk"].to_snarkjs()))
        config = MixerConfig(hash_backend="sha256", tree_depth=4, note_store_path=None,
                             circuit=CircuitConfig(verification_key_path=path))
        app = create_app(config, db=TinyDB(storage=MemoryStorage), hasher=oracle,
                         prover=fake_prover)
        app.config["TESTING"] = True
        return app.test_client()

    def test_verify_without_key_in_body(self, client, toy_groth16):
        data = client.post("/mixer/proof/verify", json={
            "proof": toy_groth16["proof"].to_snarkjs(),
            "public_signals": toy_groth16["public_inputs"].to_list(),
        }).get_json()
        assert data["valid"] is True

    def test_format_configured_key(self, client):
        data = client.post("/mixer/proof/verifying-key").get_json()
        assert len(data["verifying_key"]["ic"]) == 8

    def test_no_key_configured(self, oracle, fake_prover, toy_groth16):
        config = MixerConfig(hash_backend="sha256", tree_depth=4, note_store_path=None)
        app = create_app(config, db=TinyDB(storage=MemoryStorage), hasher=oracle,
                         prover=fake_prover)
        resp = app.test_client().post("/mixer/proof/verify", json={
            "proof": toy_groth16["proof"].to_snarkjs(),
            "public_signals": toy_groth16["public_inputs"].to_list(),
        })
        assert resp.status_code == 400
