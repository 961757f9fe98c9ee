"""
증명 포맷터 (Proof Formatter)
==============================

증명 백엔드(snarkjs)가 내놓은 Groth16 증명을 온체인 검증기가 받는
고정폭 바이트열로 바꾼다.

  proof_a: G1 → x || y                        (64 바이트)
  proof_b: G2 → x 두 limb || y 두 limb          (128 바이트)
  proof_c: G1 → x || y                        (64 바이트)

모든 좌표는 기저 필드 Q의 원소이며 32바이트 빅엔디안으로 인코딩된다.

**G2 limb 순서**:
  G2 좌표는 FQ2 원소 c0 + c1·u 이다.

  - NATURAL: c0, c1   (snarkjs JSON과 같은 순서)
  - SWAPPED: c1, c0   (EIP-197 프리컴파일, groth16-solana 순서)

  검증기와 정확히 같아야 한다. 기본값은 SWAPPED이며,
  bn128 G2 생성원의 EIP-197 인코딩으로 테스트에 고정되어 있다.

**proof_a 부호**:
  groth16-solana는 받은 proof_a를 그대로 넣어
  e(proof_a, B)·e(vk_x, γ)·e(C, δ)·e(α, β) == 1 을 검사하므로 -A가 필요하다.
  기본값 negate_a=True이며, 이 곱셈 검사로 테스트에 고정되어 있다.
  e(A, B) == ... 형태로 검사하는 검증기에는 negate_a=False를 쓴다.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List

from py_ecc import bn128

from mixer.errors import DecodeError, ProtocolMismatchError
from mixer.field import BASE_FIELD_MODULUS, FIELD_BYTES, field_element, to_bytes32, from_bytes32, ec_neg

G1_BYTES = 2 * FIELD_BYTES
G2_BYTES = 4 * FIELD_BYTES
PROOF_BYTES = G1_BYTES + G2_BYTES + G1_BYTES


class G2LimbOrder(Enum):
    NATURAL = "natural"
    SWAPPED = "swapped"


# ─── G1 ───

def g1_to_bytes(point):
    """G1 점 → 64바이트. 무한원점은 0으로 채운다."""
    if point is None:
        return bytes(G1_BYTES)
    if not bn128.is_on_curve(point, bn128.b):
        raise DecodeError("G1 점이 곡선 위에 있지 않습니다")
    x, y = point
    return to_bytes32(int(x), BASE_FIELD_MODULUS) + to_bytes32(int(y), BASE_FIELD_MODULUS)


def g1_from_bytes(data):
    data = bytes(data)
    if len(data) != G1_BYTES:
        raise DecodeError(f"G1 점은 {G1_BYTES}바이트여야 합니다: {len(data)}바이트")
    x = from_bytes32(data[:FIELD_BYTES], BASE_FIELD_MODULUS)
    y = from_bytes32(data[FIELD_BYTES:], BASE_FIELD_MODULUS)
    return _g1_point(x, y)


def _g1_point(x, y):
    if x == 0 and y == 0:
        return None
    point = (bn128.FQ(x), bn128.FQ(y))
    if not bn128.is_on_curve(point, bn128.b):
        raise DecodeError("G1 점이 곡선 위에 있지 않습니다")
    return point


# ─── G2 ───

def _limbs(fq2, order):
    c0, c1 = (int(c) for c in fq2.coeffs)
    return (c1, c0) if order is G2LimbOrder.SWAPPED else (c0, c1)


def g2_to_bytes(point, order=G2LimbOrder.SWAPPED):
    """G2 점 → 128바이트 (x limb 둘, y limb 둘)"""
    order = G2LimbOrder(order)
    if point is None:
        return bytes(G2_BYTES)
    if not bn128.is_on_curve(point, bn128.b2):
        raise DecodeError("G2 점이 곡선 위에 있지 않습니다")
    x, y = point
    return b"".join(to_bytes32(limb, BASE_FIELD_MODULUS)
                    for limb in _limbs(x, order) + _limbs(y, order))


def g2_from_bytes(data, order=G2LimbOrder.SWAPPED):
    order = G2LimbOrder(order)
    data = bytes(data)
    if len(data) != G2_BYTES:
        raise DecodeError(f"G2 점은 {G2_BYTES}바이트여야 합니다: {len(data)}바이트")
    limbs = [from_bytes32(data[i:i + FIELD_BYTES], BASE_FIELD_MODULUS)
             for i in range(0, G2_BYTES, FIELD_BYTES)]
    if order is G2LimbOrder.SWAPPED:
        limbs = [limbs[1], limbs[0], limbs[3], limbs[2]]
    return _g2_point(*limbs)


def _g2_point(x0, x1, y0, y1):
    if x0 == x1 == y0 == y1 == 0:
        return None
    point = (bn128.FQ2([x0, x1]), bn128.FQ2([y0, y1]))
    if not bn128.is_on_curve(point, bn128.b2):
        raise DecodeError("G2 점이 곡선 위에 있지 않습니다")
    return point


# ─── snarkjs JSON (사영 좌표) ───

def _coord(value):
    return field_element(value, BASE_FIELD_MODULUS)


def g1_from_snarkjs(data):
    """[x, y, z] (10진 문자열) → G1 점. z는 "1"(유한점) 또는 "0"(무한원점)"""
    if not isinstance(data, (list, tuple)) or len(data) != 3:
        raise DecodeError(f"snarkjs G1 점은 [x, y, z] 형식이어야 합니다: {data!r}")
    z = _coord(data[2])
    if z == 0:
        return None
    if z != 1:
        raise DecodeError(f"정규화되지 않은 G1 점입니다 (z={z})")
    return _g1_point(_coord(data[0]), _coord(data[1]))


def g2_from_snarkjs(data):
    """[[x.c0, x.c1], [y.c0, y.c1], [z.c0, z.c1]] → G2 점"""
    if not isinstance(data, (list, tuple)) or len(data) != 3 or \
            any(not isinstance(p, (list, tuple)) or len(p) != 2 for p in data):
        raise DecodeError(f"snarkjs G2 점은 [[x0,x1],[y0,y1],[z0,z1]] 형식이어야 합니다: {data!r}")
    z = (_coord(data[2][0]), _coord(data[2][1]))
    if z == (0, 0):
        return None
    if z != (1, 0):
        raise DecodeError(f"정규화되지 않은 G2 점입니다 (z={z})")
    return _g2_point(_coord(data[0][0]), _coord(data[0][1]), _coord(data[1][0]), _coord(data[1][1]))


def g1_to_snarkjs(point):
    if point is None:
        return ["0", "1", "0"]
    return [str(int(point[0])), str(int(point[1])), "1"]


def g2_to_snarkjs(point):
    if point is None:
        return [["0", "0"], ["1", "0"], ["0", "0"]]
    return [
        [str(int(c)) for c in point[0].coeffs],
        [str(int(c)) for c in point[1].coeffs],
        ["1", "0"],
    ]


@dataclass(frozen=True)
class Groth16Proof:
    """py_ecc 점으로 표현한 Groth16 증명 (A ∈ G1, B ∈ G2, C ∈ G1)"""
    a: tuple
    b: tuple
    c: tuple

    @classmethod
    def from_snarkjs(cls, data):
        """snarkjs proof.json → Groth16Proof

        Raises:
            DecodeError: 키가 없거나 좌표가 Q 이상이거나 점이 곡선 위에 없을 때
        """
        try:
            return cls(
                a=g1_from_snarkjs(data["pi_a"]),
                b=g2_from_snarkjs(data["pi_b"]),
                c=g1_from_snarkjs(data["pi_c"]),
            )
        except (KeyError, TypeError) as e:
            raise DecodeError(f"snarkjs 증명 형식이 아닙니다: {e}") from e

    def to_snarkjs(self):
        return {
            "pi_a": g1_to_snarkjs(self.a),
            "pi_b": g2_to_snarkjs(self.b),
            "pi_c": g1_to_snarkjs(self.c),
            "protocol": "groth16",
            "curve": "bn128",
        }


@dataclass(frozen=True)
class FormattedProof:
    proof_a: bytes
    proof_b: bytes
    proof_c: bytes

    def __post_init__(self):
        for name, size in (("proof_a", G1_BYTES), ("proof_b", G2_BYTES), ("proof_c", G1_BYTES)):
            if len(getattr(self, name)) != size:
                raise DecodeError(f"{name}는 {size}바이트여야 합니다: {len(getattr(self, name))}바이트")

    def to_bytes(self):
        return self.proof_a + self.proof_b + self.proof_c

    def to_hex(self):
        return {
            "proof_a": self.proof_a.hex(),
            "proof_b": self.proof_b.hex(),
            "proof_c": self.proof_c.hex(),
        }


@dataclass(frozen=True)
class FormattedVerifyingKey:
    alpha_g1: bytes
    beta_g2: bytes
    gamma_g2: bytes
    delta_g2: bytes
    ic: List[bytes]

    @property
    def n_public(self):
        return len(self.ic) - 1

    def to_hex(self):
        return {
            "alpha_g1": self.alpha_g1.hex(),
            "beta_g2": self.beta_g2.hex(),
            "gamma_g2": self.gamma_g2.hex(),
            "delta_g2": self.delta_g2.hex(),
            "ic": [p.hex() for p in self.ic],
        }


class ProofFormatter:
    """증명과 검증키를 검증기 바이트 배치로 인코딩한다.

    Args:
        g2_order: G2 limb 순서 ("natural" 또는 "swapped")
        negate_a: proof_a를 -A로 인코딩할지 여부
    """

    def __init__(self, g2_order=G2LimbOrder.SWAPPED, negate_a=True):
        self.g2_order = G2LimbOrder(g2_order)
        self.negate_a = negate_a

    @classmethod
    def from_config(cls, config):
        return cls(config.g2_limb_order, config.negate_proof_a)

    def format_proof(self, raw):
        """Groth16Proof 또는 snarkjs proof.json → FormattedProof

        Raises:
            DecodeError: 좌표가 유효한 기저 필드 원소가 아니거나 점이 곡선 위에 없음
        """
        proof = raw if isinstance(raw, Groth16Proof) else Groth16Proof.from_snarkjs(raw)
        a = ec_neg(proof.a) if self.negate_a else proof.a
        return FormattedProof(
            proof_a=g1_to_bytes(a),
            proof_b=g2_to_bytes(proof.b, self.g2_order),
            proof_c=g1_to_bytes(proof.c),
        )

    def parse_formatted_proof(self, data):
        """format_proof()의 역변환. 256바이트 또는 FormattedProof → Groth16Proof"""
        if not isinstance(data, FormattedProof):
            data = bytes(data)
            if len(data) != PROOF_BYTES:
                raise DecodeError(f"증명은 {PROOF_BYTES}바이트여야 합니다: {len(data)}바이트")
            data = FormattedProof(data[:G1_BYTES], data[G1_BYTES:G1_BYTES + G2_BYTES],
                                  data[G1_BYTES + G2_BYTES:])
        a = g1_from_bytes(data.proof_a)
        if self.negate_a:
            a = ec_neg(a)
        return Groth16Proof(a=a, b=g2_from_bytes(data.proof_b, self.g2_order),
                            c=g1_from_bytes(data.proof_c))

    def format_verifying_key(self, vk, n_public=None):
        """검증키 → FormattedVerifyingKey

        Args:
            vk: VerifyingKey (alpha_g1, beta_g2, gamma_g2, delta_g2, ic 속성)
            n_public: 기대하는 공개 입력 개수. 주어지면 len(ic) == n_public + 1 을 확인한다.

        Raises:
            ProtocolMismatchError: IC 개수가 공개 입력 개수와 맞지 않음
        """
        if n_public is not None and len(vk.ic) != n_public + 1:
            raise ProtocolMismatchError(
                f"검증키의 IC 개수({len(vk.ic)})가 공개 입력 {n_public}개와 맞지 않습니다")
        return FormattedVerifyingKey(
            alpha_g1=g1_to_bytes(vk.alpha_g1),
            beta_g2=g2_to_bytes(vk.beta_g2, self.g2_order),
            gamma_g2=g2_to_bytes(vk.gamma_g2, self.g2_order),
            delta_g2=g2_to_bytes(vk.delta_g2, self.g2_order),
            ic=[g1_to_bytes(p) for p in vk.ic],
        )
