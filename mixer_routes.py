"""
믹서 Flask Blueprint: 로컬 JSON API
=====================================

노트, 머클 트리, 증명 포맷을 로컬 HTTP로 노출한다.

  Notes:  generate / parse / persist / list / delete / export / import
  Tree:   state / insert / proof / verify / sync
  Proof:  format / verifying-key / verify / withdraw

MixerError는 {"error": <kind>, "message": ...} 로 응답한다.
상태 코드는 400, ValidationError만 422.
"""

import logging

from flask import Blueprint, request, jsonify, abort
from tinydb import Query

from mixer.errors import MixerError, ValidationError, LeafIndexError
from mixer.groth16.formatting import Groth16Proof
from mixer.groth16.proving import DEFAULT_RELAYER
from mixer.groth16.schema import WITHDRAW_SCHEMA, decode_public_signals
from mixer.groth16.verifying import VerifyingKey, verify

from mixer_serializers import (
    serialize_fe, deserialize_fe,
    serialize_fe_list, deserialize_fe_list,
    serialize_bytes, deserialize_bytes,
    serialize_note, serialize_note_summary,
    serialize_membership_proof, deserialize_membership_proof,
    serialize_formatted_proof,
    serialize_formatted_vk,
    serialize_withdraw_payload,
)

logger = logging.getLogger(__name__)

mixer_bp = Blueprint('mixer', __name__, url_prefix='/mixer')

DATA = Query()

# app.py에서 주입
DB = None
NOTES = None
TREE = None
FORMATTER = None
GENERATOR = None
VERIFYING_KEY = None

TREE_LEAVES_KEY = "mixer.tree.leaves"


def init_mixer_bp(db, notes, tree, formatter, generator=None, verifying_key=None):
    """app.py에서 DB와 믹서 컴포넌트를 주입받는다.

    DB에 저장된 리프 목록이 있으면 트리를 재생한다.
    """
    global DB, NOTES, TREE, FORMATTER, GENERATOR, VERIFYING_KEY
    DB = db
    NOTES = notes
    TREE = tree
    FORMATTER = formatter
    GENERATOR = generator
    VERIFYING_KEY = verifying_key

    leaves = db_get(TREE_LEAVES_KEY)
    if leaves:
        TREE.sync(deserialize_fe_list(leaves))


# ─── DB 헬퍼 ───

def db_get(key):
    """DB에서 키로 데이터를 조회한다."""
    result = DB.search(DATA.type == key)
    if not result:
        return None
    return result[0].get("data")


def db_set(key, data):
    """DB에 키로 데이터를 저장한다."""
    DB.upsert({"type": key, "data": data}, DATA.type == key)


# ─── 요청 헬퍼 ───

def _body():
    data = request.get_json(silent=True)
    if data is None:
        abort(400, description="JSON 본문이 필요합니다")
    return data


def _field(data, name):
    if not isinstance(data, dict) or name not in data:
        abort(400, description=f"'{name}' 항목이 필요합니다")
    return data[name]


def _pubkey(value):
    return deserialize_bytes(value) if isinstance(value, str) else bytes(value)


def _verifying_key(data):
    """본문의 verifying_key, 없으면 설정 파일에서 읽은 키"""
    if isinstance(data, dict) and "verifying_key" in data:
        return VerifyingKey.from_snarkjs(data["verifying_key"])
    if VERIFYING_KEY is None:
        abort(400, description="'verifying_key' 항목이 필요합니다")
    return VERIFYING_KEY


@mixer_bp.errorhandler(MixerError)
def handle_mixer_error(error):
    status = 422 if isinstance(error, ValidationError) else 400
    logger.warning(f"{error.kind}: {error}")
    return jsonify({"error": error.kind, "message": str(error)}), status


# ──────────────────────────────────────────────────────────────
# Notes
# ──────────────────────────────────────────────────────────────

@mixer_bp.route("/notes/generate", methods=["POST"])
def notes_generate():
    """새 노트를 만든다. 저장하지는 않는다."""
    data = request.get_json(silent=True) or {}
    note = NOTES.generate(data.get("amount"))
    return jsonify({"note": serialize_note(note, NOTES.serialize(note))})


@mixer_bp.route("/notes/parse", methods=["POST"])
def notes_parse():
    """노트 문자열을 파싱하고 커밋먼트를 확인한다."""
    note = NOTES.parse(_field(_body(), "note"))
    return jsonify({
        "note": serialize_note(note),
        "valid": NOTES.validate(note),
        "nullifier_hash": serialize_fe(NOTES.nullifier_hash(note)),
    })


@mixer_bp.route("/notes", methods=["POST"])
def notes_persist():
    """입금이 확인된 노트를 저장한다."""
    note = NOTES.parse(_field(_body(), "note"))
    NOTES.persist(note)
    return jsonify({"note": serialize_note_summary(note)}), 201


@mixer_bp.route("/notes", methods=["GET"])
def notes_list():
    return jsonify({"notes": [serialize_note_summary(n) for n in NOTES.list_notes()]})


@mixer_bp.route("/notes/<commitment>", methods=["DELETE"])
def notes_delete(commitment):
    if not NOTES.remove(deserialize_fe(commitment)):
        abort(404, description="노트를 찾을 수 없습니다")
    return jsonify({"removed": commitment})


@mixer_bp.route("/notes/export", methods=["GET"])
def notes_export():
    return jsonify({"notes": NOTES.export_notes()})


@mixer_bp.route("/notes/import", methods=["POST"])
def notes_import():
    """저장된 노트 집합을 교체한다. 검증에 실패한 레코드는 버려진다."""
    records = _body()
    if isinstance(records, dict):
        records = _field(records, "notes")
    records = NOTES.load_records(records)
    imported = NOTES.import_notes(records)
    return jsonify({"imported": len(imported), "dropped": len(records) - len(imported)})


# ──────────────────────────────────────────────────────────────
# Tree
# ──────────────────────────────────────────────────────────────

def _tree_state():
    return {
        "root": serialize_fe(TREE.root),
        "depth": TREE.depth,
        "next_index": TREE.next_index,
        "version": TREE.version,
    }


@mixer_bp.route("/tree", methods=["GET"])
def tree_state():
    return jsonify(_tree_state())


@mixer_bp.route("/tree/insert", methods=["POST"])
def tree_insert():
    """온체인 입금 카운터 순서대로 커밋먼트를 추가한다."""
    commitment = deserialize_fe(_field(_body(), "commitment"))
    leaf_index, root = TREE.append(commitment)

    leaves = db_get(TREE_LEAVES_KEY) or []
    leaves.append(serialize_fe(commitment))
    db_set(TREE_LEAVES_KEY, leaves)

    return jsonify({"leaf_index": leaf_index, "root": serialize_fe(root)}), 201


@mixer_bp.route("/tree/proof/<int:leaf_index>", methods=["GET"])
def tree_proof(leaf_index):
    proof = TREE.generate_membership_proof(leaf_index)
    return jsonify({"proof": serialize_membership_proof(proof)})


@mixer_bp.route("/tree/verify", methods=["POST"])
def tree_verify():
    """리프와 멤버십 증명으로 현재 루트를 다시 계산해 본다."""
    data = _body()
    leaf = deserialize_fe(_field(data, "leaf"))
    proof = deserialize_membership_proof(_field(data, "proof"))
    return jsonify({"valid": TREE.verify_membership_proof(leaf, proof.leaf_index, proof)})


@mixer_bp.route("/tree/sync", methods=["POST"])
def tree_sync():
    """온체인 리프 목록으로 트리를 재생한다. root가 주어지면 비교한다."""
    data = _body()
    leaves = deserialize_fe_list(_field(data, "leaves"))
    TREE.sync(leaves, data.get("root"))
    db_set(TREE_LEAVES_KEY, serialize_fe_list(leaves))
    return jsonify(_tree_state())


# ──────────────────────────────────────────────────────────────
# Proof
# ──────────────────────────────────────────────────────────────

@mixer_bp.route("/proof/format", methods=["POST"])
def proof_format():
    """snarkjs proof.json → 검증기 바이트 배치"""
    data = _body()
    proof = FORMATTER.format_proof(_field(data, "proof"))
    response = {"proof": serialize_formatted_proof(proof)}
    if "public_signals" in data:
        vector = decode_public_signals(data["public_signals"])
        response["public_inputs"] = [serialize_bytes(b) for b in vector.to_bytes()]
    return jsonify(response)


@mixer_bp.route("/proof/verifying-key", methods=["POST"])
def proof_verifying_key():
    """snarkjs verification_key.json → 검증기 바이트 배치"""
    vk = _verifying_key(request.get_json(silent=True))
    formatted = FORMATTER.format_verifying_key(vk, n_public=len(WITHDRAW_SCHEMA))
    return jsonify({"verifying_key": serialize_formatted_vk(formatted)})


@mixer_bp.route("/proof/verify", methods=["POST"])
def proof_verify():
    data = _body()
    vk = _verifying_key(data)
    proof = Groth16Proof.from_snarkjs(_field(data, "proof"))
    signals = decode_public_signals(_field(data, "public_signals"))
    return jsonify({"valid": verify(vk, proof, signals)})


@mixer_bp.route("/withdraw", methods=["POST"])
def withdraw():
    """노트 문자열로 출금 증명과 온체인 명령 인자를 만든다."""
    if GENERATOR is None:
        abort(503, description="증명 백엔드가 설정되지 않았습니다")
    data = _body()
    note = NOTES.parse(_field(data, "note"))
    NOTES.require_valid(note)

    leaves = db_get(TREE_LEAVES_KEY) or []
    try:
        leaf_index = leaves.index(serialize_fe(note.commitment))
    except ValueError:
        raise LeafIndexError("노트의 커밋먼트가 트리에 없습니다") from None

    membership_proof = TREE.generate_membership_proof(leaf_index)
    payload = GENERATOR.generate(
        note,
        membership_proof,
        recipient=_pubkey(_field(data, "recipient")),
        relayer=_pubkey(data["relayer"]) if "relayer" in data else DEFAULT_RELAYER,
        fee=data.get("fee", 0),
        accumulator=TREE,
    )
    return jsonify({"withdraw": serialize_withdraw_payload(payload)})
