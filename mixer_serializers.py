"""
믹서 데이터 직렬화/역직렬화 헬퍼
=================================

HTTP 응답과 TinyDB에 넣을 수 있는 형태로 믹서 객체를 변환한다.
필드 원소는 10진 문자열, 바이트열은 16진 문자열로 둔다.
"""

from mixer.errors import DecodeError
from mixer.field import field_element
from mixer.merkle import MembershipProof


# ─── 필드 원소 ───

def serialize_fe(val):
    """int → str(int)"""
    return str(int(val))


def deserialize_fe(s):
    """str(int) → int (범위 검사 포함)"""
    return field_element(s)


def serialize_fe_list(vals):
    return [serialize_fe(v) for v in vals]


def deserialize_fe_list(data):
    return [deserialize_fe(s) for s in data]


def fe_short(val):
    """긴 필드 원소를 화면 표시용으로 줄인다."""
    s = str(int(val))
    if len(s) <= 16:
        return s
    return s[:8] + "..." + s[-6:]


# ─── 바이트열 ───

def serialize_bytes(data):
    return bytes(data).hex()


def deserialize_bytes(s):
    if s.startswith("0x"):
        s = s[2:]
    try:
        return bytes.fromhex(s)
    except ValueError:
        raise DecodeError(f"16진수 문자열이 아닙니다: {s!r}") from None


# ─── 노트 ───

def serialize_note(note, note_string=None):
    """Note → dict. 비밀값이 포함되므로 요청한 호출자에게만 돌려준다."""
    data = note.to_record()
    data["commitment_hex"] = note.commitment_bytes().hex()
    if note_string is not None:
        data["note"] = note_string
    return data


def serialize_note_summary(note):
    """비밀값 없이 커밋먼트와 금액만"""
    return {
        "commitment": serialize_fe(note.commitment),
        "commitment_short": fe_short(note.commitment),
        "amount": note.amount,
        "timestamp": note.created_at,
    }


# ─── 멤버십 증명 ───

def serialize_membership_proof(proof):
    return {
        "path_elements": serialize_fe_list(proof.path_elements),
        "path_indices": list(proof.path_indices),
        "leaf_index": proof.leaf_index,
        "root": serialize_fe(proof.root),
        "version": proof.version,
    }


def deserialize_membership_proof(data):
    try:
        return MembershipProof(
            path_elements=tuple(deserialize_fe_list(data["path_elements"])),
            path_indices=tuple(bool(b) for b in data["path_indices"]),
            leaf_index=int(data["leaf_index"]),
            root=deserialize_fe(data["root"]),
            version=int(data["version"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(f"멤버십 증명 형식이 아닙니다: {e}") from e


# ─── 증명 / 공개 입력 ───

def serialize_formatted_proof(proof):
    return proof.to_hex()


def serialize_public_inputs(vector):
    return {
        "schema_version": vector.schema.version,
        "fields": list(vector.schema.fields),
        "values": vector.to_list(),
        "bytes": [b.hex() for b in vector.to_bytes()],
    }


def serialize_formatted_vk(vk):
    data = vk.to_hex()
    data["n_public"] = vk.n_public
    return data


def serialize_withdraw_payload(payload):
    args = payload.instruction_args()
    return {
        "proof": serialize_formatted_proof(payload.proof),
        "public_inputs": serialize_public_inputs(payload.public_inputs),
        "path_elements": [serialize_bytes(e) for e in args["path_elements"]],
        "path_indices": args["path_indices"],
        "raw_proof": payload.raw_proof.to_snarkjs(),
    }
