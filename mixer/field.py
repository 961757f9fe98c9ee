"""
필드 코덱 (Field Codec): 유한체 원소 ↔ 고정폭 바이트열
======================================================

믹서 코어에서 쓰이는 모든 값은 bn128 스칼라 필드의 원소이다.
이 모듈은 그 원소를 시스템 경계(온체인 프로그램, 노트 저장소, HTTP)에서
쓰이는 32바이트 빅엔디안 바이트열로 바꾸고, 다시 되돌린다.

**두 개의 필드**:
  - 스칼라 필드 P (bn128.curve_order): 해시 입력/출력, 커밋먼트, 공개 입력
  - 기저 필드 Q (bn128.field_modulus): 타원곡선 점의 좌표 (proof_a, proof_b, proof_c)

  두 필드 모두 약 2^254 크기이지만 서로 다르다. 코덱 함수는 modulus 인자로
  어느 필드에서 검증할지 받는다.

**공개키 분할**:
  32바이트 공개키는 P보다 클 수 있으므로 하나의 필드 원소에 손실 없이
  담을 수 없다. 앞 16바이트와 뒤 16바이트로 나누어 각각 필드 원소로 만든다.
  이 분할은 회로의 공개 입력 배치와 정확히 같아야 한다.

사용 예시:
    >>> from mixer.field import to_bytes32, from_bytes32, FIELD_MODULUS
    >>> b = to_bytes32(FIELD_MODULUS - 1)
    >>> from_bytes32(b) == FIELD_MODULUS - 1   # True
    >>> to_bytes32(FIELD_MODULUS)              # DecodeError
"""

from py_ecc.fields import bn128_FQ as FQ
from py_ecc import bn128

from mixer.errors import DecodeError


# ─────────────────────────────────────────────────────────────────────
# 유한체 상수
# ─────────────────────────────────────────────────────────────────────

class FR(FQ):
    """bn128 스칼라 필드 위의 유한체 원소.

    py_ecc의 FQ를 상속하여 +, -, *, /, ** 연산을 제공한다.
    생성 시 자동으로 mod P 축소가 일어나므로, 외부 입력을 검증할 때는
    FR 대신 field_element()를 사용해야 한다.
    """
    field_modulus = bn128.curve_order


# 스칼라 필드 위수 P (해시/증명 시스템의 기본 필드)
FIELD_MODULUS = bn128.curve_order
CURVE_ORDER = bn128.curve_order

# 기저 필드 위수 Q (곡선 좌표)
BASE_FIELD_MODULUS = bn128.field_modulus

FIELD_BYTES = 32
PUBKEY_BYTES = 32
PUBKEY_HALF_BYTES = 16


# ─────────────────────────────────────────────────────────────────────
# 타원곡선 상수 및 연산
# ─────────────────────────────────────────────────────────────────────

# 무한원점은 None으로 표현한다
G1 = bn128.G1
G2 = bn128.G2


def ec_mul(point, scalar):
    """타원곡선 스칼라 곱셈: scalar · point."""
    if isinstance(scalar, FR):
        scalar = int(scalar)
    return bn128.multiply(point, scalar % CURVE_ORDER)


def ec_add(p1, p2):
    """타원곡선 점 덧셈: p1 + p2."""
    return bn128.add(p1, p2)


def ec_neg(point):
    """타원곡선 점의 역원: -point (y좌표 반전)."""
    return bn128.neg(point)


def ec_pairing(g2_point, g1_point):
    """쌍선형 페어링 e(G1, G2).

    주의:
        py_ecc.bn128.pairing의 인자 순서는 (G2, G1)이다.
    """
    return bn128.pairing(g2_point, g1_point)


# ─────────────────────────────────────────────────────────────────────
# 필드 원소 검증
# ─────────────────────────────────────────────────────────────────────

def _as_int(value):
    if isinstance(value, bool):
        raise DecodeError(f"필드 원소는 bool일 수 없습니다: {value!r}")
    if isinstance(value, FQ):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                return int(text, 16)
            if not (text.isascii() and text.isdigit()):
                raise ValueError(text)
            return int(text, 10)
        except ValueError:
            raise DecodeError(f"정수로 해석할 수 없는 값입니다: {value!r}") from None
    raise DecodeError(f"지원하지 않는 필드 원소 타입입니다: {type(value).__name__}")


def field_element(value, modulus=FIELD_MODULUS):
    """값을 검증하여 [0, modulus) 범위의 정수로 돌려준다.

    축소(reduction)는 하지 않는다. 범위를 벗어나면 거부한다.

    Args:
        value: int, FQ 원소, 또는 10진/0x 16진 문자열
        modulus: 검증할 필드 위수 (기본값: 스칼라 필드 P)

    Returns:
        int: 0 ≤ v < modulus

    Raises:
        DecodeError: 음수이거나 modulus 이상이거나 정수가 아닐 때

    예시:
        >>> field_element("5")               # 5
        >>> field_element(FIELD_MODULUS)     # DecodeError
    """
    v = _as_int(value)
    if v < 0 or v >= modulus:
        raise DecodeError(f"값이 필드 범위 [0, {modulus}) 밖에 있습니다: {v}")
    return v


def reduce(value, modulus=FIELD_MODULUS):
    """값을 명시적으로 mod modulus 축소한다."""
    return _as_int(value) % modulus


def is_field_element(value, modulus=FIELD_MODULUS):
    try:
        field_element(value, modulus)
    except DecodeError:
        return False
    return True


# ─────────────────────────────────────────────────────────────────────
# 32바이트 코덱
# ─────────────────────────────────────────────────────────────────────

def to_bytes32(value, modulus=FIELD_MODULUS):
    """필드 원소 → 32바이트 빅엔디안 (앞쪽 0 패딩).

    Args:
        value: 필드 원소
        modulus: 검증할 필드 위수

    Returns:
        bytes: 길이 32

    Raises:
        DecodeError: value가 유효한 필드 원소가 아닐 때 (value == P 포함)
    """
    v = field_element(value, modulus)
    return v.to_bytes(FIELD_BYTES, "big")


def from_bytes32(data, modulus=FIELD_MODULUS):
    """32바이트 빅엔디안 → 필드 원소.

    Raises:
        DecodeError: 길이가 32가 아니거나 값이 modulus 이상일 때
    """
    data = bytes(data)
    if len(data) != FIELD_BYTES:
        raise DecodeError(f"32바이트가 필요합니다: {len(data)}바이트")
    v = int.from_bytes(data, "big")
    if v >= modulus:
        raise DecodeError(f"바이트열이 필드 범위를 벗어납니다: {v}")
    return v


def to_hex32(value, modulus=FIELD_MODULUS):
    """필드 원소 → '0x' + 64자리 16진수"""
    return "0x" + to_bytes32(value, modulus).hex()


def from_hex32(text, modulus=FIELD_MODULUS):
    """'0x' 접두어가 있거나 없는 64자리 16진수 → 필드 원소"""
    if text.startswith("0x") or text.startswith("0X"):
        text = text[2:]
    try:
        data = bytes.fromhex(text)
    except ValueError:
        raise DecodeError(f"16진수 문자열이 아닙니다: {text!r}") from None
    return from_bytes32(data, modulus)


# ─────────────────────────────────────────────────────────────────────
# 공개키 분할
# ─────────────────────────────────────────────────────────────────────

def split_public_key_halves(pubkey):
    """32바이트 공개키를 16바이트 두 조각으로 나누어 필드 원소 두 개로 만든다.

    각 조각은 빅엔디안 정수로 해석되며 항상 2^128 미만이므로 P보다 작다.

    Args:
        pubkey: 32바이트 공개키 (bytes 또는 64자리 16진수 문자열)

    Returns:
        (int, int): (앞 16바이트, 뒤 16바이트)

    Raises:
        DecodeError: 길이가 32바이트가 아닐 때

    예시:
        >>> split_public_key_halves(b"\\xff" * 32)   # (2**128 - 1, 2**128 - 1)
    """
    if isinstance(pubkey, str):
        text = pubkey[2:] if pubkey.startswith("0x") else pubkey
        try:
            pubkey = bytes.fromhex(text)
        except ValueError:
            raise DecodeError(f"공개키 16진수 문자열이 아닙니다: {text!r}") from None
    pubkey = bytes(pubkey)
    if len(pubkey) != PUBKEY_BYTES:
        raise DecodeError(f"공개키는 32바이트여야 합니다: {len(pubkey)}바이트")
    part1 = int.from_bytes(pubkey[:PUBKEY_HALF_BYTES], "big")
    part2 = int.from_bytes(pubkey[PUBKEY_HALF_BYTES:], "big")
    return part1, part2


def join_public_key_halves(part1, part2):
    """split_public_key_halves의 역변환. 온체인 프로그램이 수령인 키를 복원하는 방식과 같다."""
    halves = []
    for part in (part1, part2):
        v = _as_int(part)
        if v < 0 or v >= 1 << (8 * PUBKEY_HALF_BYTES):
            raise DecodeError(f"공개키 조각은 2^128 미만이어야 합니다: {v}")
        halves.append(v.to_bytes(PUBKEY_HALF_BYTES, "big"))
    return halves[0] + halves[1]
