"""
Local JSON API tests: app.py, mixer_routes.py
"""
import json

import pytest
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from app import create_app
from mixer.config import MixerConfig
from mixer.errors import ProofGenerationError


RECIPIENT_HEX = bytes(range(32)).hex()


class FailingProver:
    def prove(self, witness):
        raise ProofGenerationError("backend unavailable")


def make_client(oracle, prover, db=None):
    config = MixerConfig(hash_backend="sha256", tree_depth=4, note_store_path=None)
    app = create_app(config, db=db if db is not None else TinyDB(storage=MemoryStorage), hasher=oracle, prover=prover)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def client(oracle, fake_prover):
    return make_client(oracle, fake_prover)


class TestIndex:
    def test_index(self, client):
        data = client.get("/").get_json()
        assert data == {"tree_depth": 4, "hash_backend": "sha256", "g2_limb_order": "swapped"}


class TestNotesApi:
    def test_generate(self, client):
        data = client.post("/mixer/notes/generate", json={"amount": 5}).get_json()
        note = data["note"]
        assert note["amount"] == 5
        assert note["note"] == f"{note['nullifier']}-{note['secret']}-5"
        assert len(note["commitment_hex"]) == 64

    def test_parse(self, oracle, client):
        data = client.post("/mixer/notes/parse", json={"note": "5-9-1000"}).get_json()
        assert data["valid"] is True
        assert data["note"]["commitment"] == str(oracle.hash2(5, 9))
        assert data["nullifier_hash"] == str(oracle.hash1(5))

    def test_parse_error(self, client):
        resp = client.post("/mixer/notes/parse", json={"note": "5-9"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "parse_error"

    def test_missing_field(self, client):
        assert client.post("/mixer/notes/parse", json={}).status_code == 400

    def test_persist_list_delete(self, oracle, client):
        resp = client.post("/mixer/notes", json={"note": "5-9-1000"})
        assert resp.status_code == 201
        listed = client.get("/mixer/notes").get_json()["notes"]
        assert [n["commitment"] for n in listed] == [str(oracle.hash2(5, 9))]
        assert "secret" not in listed[0]

        commitment = listed[0]["commitment"]
        assert client.delete(f"/mixer/notes/{commitment}").status_code == 200
        assert client.delete(f"/mixer/notes/{commitment}").status_code == 404

    def test_export_import(self, client):
        client.post("/mixer/notes", json={"note": "5-9-1000"})
        exported = client.get("/mixer/notes/export").get_json()["notes"]
        assert len(exported) == 1

        bad = dict(exported[0], secret="10")
        data = client.post("/mixer/notes/import", json={"notes": exported + [bad]}).get_json()
        assert data == {"imported": 1, "dropped": 1}

    def test_import_json_text_counts_records(self, client):
        client.post("/mixer/notes", json={"note": "5-9-1000"})
        exported = client.get("/mixer/notes/export").get_json()["notes"]
        text = json.dumps(exported + exported)
        data = client.post("/mixer/notes/import", json={"notes": text}).get_json()
        assert data == {"imported": 1, "dropped": 1}

    def test_import_non_list(self, client):
        resp = client.post("/mixer/notes/import", json={"notes": {"a": 1}})
        assert resp.get_json()["error"] == "parse_error"


class TestTreeApi:
    def test_insert_and_proof(self, client):
        state = client.get("/mixer/tree").get_json()
        assert state["next_index"] == 0

        resp = client.post("/mixer/tree/insert", json={"commitment": "123"})
        assert resp.status_code == 201
        inserted = resp.get_json()
        assert inserted["leaf_index"] == 0

        proof = client.get("/mixer/tree/proof/0").get_json()["proof"]
        assert proof["root"] == inserted["root"]
        assert len(proof["path_elements"]) == 4
        assert proof["path_indices"] == [False] * 4

    def test_verify_membership(self, client):
        client.post("/mixer/tree/insert", json={"commitment": "11"})
        client.post("/mixer/tree/insert", json={"commitment": "22"})
        proof = client.get("/mixer/tree/proof/1").get_json()["proof"]

        ok = client.post("/mixer/tree/verify", json={"leaf": "22", "proof": proof}).get_json()
        assert ok == {"valid": True}
        wrong = client.post("/mixer/tree/verify", json={"leaf": "11", "proof": proof}).get_json()
        assert wrong == {"valid": False}

    def test_verify_malformed_proof(self, client):
        resp = client.post("/mixer/tree/verify", json={"leaf": "1", "proof": {"root": "0"}})
        assert resp.get_json()["error"] == "decode_error"

    def test_proof_for_empty_leaf(self, client):
        resp = client.get("/mixer/tree/proof/3")
        assert resp.get_json()["error"] == "leaf_index"

    def test_leaves_survive_restart(self, oracle, fake_prover):
        db = TinyDB(storage=MemoryStorage)
        first = make_client(oracle, fake_prover, db)
        root = first.post("/mixer/tree/insert", json={"commitment": "7"}).get_json()["root"]

        second = make_client(oracle, fake_prover, db)
        state = second.get("/mixer/tree").get_json()
        assert state["root"] == root
        assert state["next_index"] == 1

    def test_sync_mismatch(self, client):
        resp = client.post("/mixer/tree/sync", json={"leaves": ["1", "2"], "root": "5"})
        assert resp.get_json()["error"] == "stale_proof"

    def test_failed_sync_leaves_tree_and_log(self, oracle, fake_prover):
        db = TinyDB(storage=MemoryStorage)
        client = make_client(oracle, fake_prover, db)
        client.post("/mixer/tree/insert", json={"commitment": "11"})
        before = client.get("/mixer/tree").get_json()

        resp = client.post("/mixer/tree/sync", json={"leaves": ["1", "2", "3"], "root": "5"})
        assert resp.get_json()["error"] == "stale_proof"
        resp = client.post("/mixer/tree/sync", json={"leaves": ["1", "2", "-1"]})
        assert resp.get_json()["error"] == "decode_error"
        assert client.get("/mixer/tree").get_json() == before

        inserted = client.post("/mixer/tree/insert", json={"commitment": "22"}).get_json()
        assert inserted["leaf_index"] == 1
        restarted = make_client(oracle, fake_prover, db)
        assert restarted.get("/mixer/tree").get_json()["root"] == inserted["root"]

    def test_decode_error(self, client):
        resp = client.post("/mixer/tree/insert", json={"commitment": "-1"})
        assert resp.get_json()["error"] == "decode_error"


class TestWithdrawApi:
    def _deposit(self, client, note="5-9-1000"):
        commitment = client.post("/mixer/notes/parse", json={"note": note}).get_json()["note"]["commitment"]
        client.post("/mixer/tree/insert", json={"commitment": commitment})
        return commitment

    def test_withdraw(self, client, fake_prover):
        self._deposit(client)
        resp = client.post("/mixer/withdraw", json={"note": "5-9-1000", "recipient": RECIPIENT_HEX})
        assert resp.status_code == 200
        data = resp.get_json()["withdraw"]
        assert len(bytes.fromhex(data["proof"]["proof_a"])) == 64
        assert len(bytes.fromhex(data["proof"]["proof_b"])) == 128
        assert len(data["public_inputs"]["values"]) == 7
        assert len(data["path_elements"]) == 4
        assert fake_prover.witnesses[0]["nullifier"] == "5"

    def test_withdraw_unknown_note(self, client):
        resp = client.post("/mixer/withdraw", json={"note": "5-9-1000", "recipient": RECIPIENT_HEX})
        assert resp.get_json()["error"] == "leaf_index"

    def test_withdraw_backend_failure(self, oracle):
        client = make_client(oracle, FailingProver())
        self._deposit(client)
        resp = client.post("/mixer/withdraw", json={"note": "5-9-1000", "recipient": RECIPIENT_HEX})
        assert resp.get_json()["error"] == "proof_generation"

    def test_withdraw_bad_recipient(self, client):
        self._deposit(client)
        resp = client.post("/mixer/withdraw", json={"note": "5-9-1000", "recipient": "abcd"})
        assert resp.get_json()["error"] == "decode_error"


class TestProofApi:
    def test_format(self, client, fake_prover):
        proof, _ = fake_prover.prove({name: "0" for name in fake_prover.SIGNALS})
        data = client.post("/mixer/proof/format", json={
            "proof": proof,
            "public_signals": ["1", "2", "3", "4", "5", "6", "7"],
        }).get_json()
        assert len(data["proof"]["proof_c"]) == 128
        assert data["public_inputs"][6] == "00" * 31 + "07"

    def test_format_wrong_signal_count(self, client, fake_prover):
        proof, _ = fake_prover.prove({name: "0" for name in fake_prover.SIGNALS})
        resp = client.post("/mixer/proof/format", json={"proof": proof, "public_signals": ["1"]})
        assert resp.get_json()["error"] == "protocol_mismatch"

    def test_format_off_curve(self, client):
        proof = {"pi_a": ["1", "3", "1"], "pi_b": [["0", "0"], ["0", "0"], ["0", "0"]],
                 "pi_c": ["0", "1", "0"]}
        resp = client.post("/mixer/proof/format", json={"proof": proof})
        assert resp.get_json()["error"] == "decode_error"
