"""
로컬 Groth16 검증 (Local Verifier)
===================================

온체인 제출 전에 증명을 로컬에서 확인한다.

검증 방정식:
  e(B, A) == e(β, α) · e(γ, vk_x) · e(δ, C)

  vk_x = IC[0] + Σ r_i · IC[i+1]   (r_i: 공개 입력)

py_ecc의 pairing 인자 순서는 (G2, G1)이다.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List

from mixer.errors import DecodeError, ProtocolMismatchError
from mixer.field import ec_add, ec_mul, ec_pairing, field_element
from mixer.groth16.formatting import (
    Groth16Proof,
    g1_from_snarkjs,
    g2_from_snarkjs,
    g1_to_snarkjs,
    g2_to_snarkjs,
)
from mixer.groth16.schema import PublicInputVector
from mixer.utils import timed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifyingKey:
    alpha_g1: tuple
    beta_g2: tuple
    gamma_g2: tuple
    delta_g2: tuple
    ic: List[tuple] = field(default_factory=list)

    @property
    def n_public(self):
        return len(self.ic) - 1

    @classmethod
    def from_snarkjs(cls, data):
        """snarkjs verification_key.json → VerifyingKey"""
        try:
            vk = cls(
                alpha_g1=g1_from_snarkjs(data["vk_alpha_1"]),
                beta_g2=g2_from_snarkjs(data["vk_beta_2"]),
                gamma_g2=g2_from_snarkjs(data["vk_gamma_2"]),
                delta_g2=g2_from_snarkjs(data["vk_delta_2"]),
                ic=[g1_from_snarkjs(p) for p in data["IC"]],
            )
        except (KeyError, TypeError) as e:
            raise DecodeError(f"snarkjs 검증키 형식이 아닙니다: {e}") from e

        n_public = data.get("nPublic")
        if n_public is not None and int(n_public) != vk.n_public:
            raise ProtocolMismatchError(
                f"검증키의 nPublic({n_public})과 IC 개수({len(vk.ic)})가 맞지 않습니다")
        return vk

    def to_snarkjs(self):
        return {
            "protocol": "groth16",
            "curve": "bn128",
            "nPublic": self.n_public,
            "vk_alpha_1": g1_to_snarkjs(self.alpha_g1),
            "vk_beta_2": g2_to_snarkjs(self.beta_g2),
            "vk_gamma_2": g2_to_snarkjs(self.gamma_g2),
            "vk_delta_2": g2_to_snarkjs(self.delta_g2),
            "IC": [g1_to_snarkjs(p) for p in self.ic],
        }

    @classmethod
    def load(cls, path):
        """verification_key.json 파일을 읽는다."""
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise DecodeError(f"검증키 파일을 읽을 수 없습니다: {path}: {e}") from e
        return cls.from_snarkjs(data)


def prepare_inputs(vk, public_inputs):
    """vk_x = IC[0] + Σ r_i · IC[i+1]

    Raises:
        ProtocolMismatchError: 공개 입력 개수가 IC와 맞지 않음
        DecodeError: 공개 입력이 스칼라 필드 원소가 아님
    """
    if isinstance(public_inputs, PublicInputVector):
        public_inputs = public_inputs.values
    values = [field_element(v) for v in public_inputs]
    if len(values) != vk.n_public:
        raise ProtocolMismatchError(
            f"공개 입력 개수({len(values)})가 검증키({vk.n_public})와 맞지 않습니다")

    vk_x = vk.ic[0]
    for point, ri in zip(vk.ic[1:], values):
        vk_x = ec_add(vk_x, ec_mul(point, ri))
    return vk_x


def lhs(proof):
    return ec_pairing(proof.b, proof.a)


def rhs(vk, proof, vk_x):
    result = ec_pairing(vk.beta_g2, vk.alpha_g1)
    result = result * ec_pairing(vk.gamma_g2, vk_x)
    result = result * ec_pairing(vk.delta_g2, proof.c)
    return result


def verify(vk, proof, public_inputs):
    """Groth16 증명을 검증한다.

    Args:
        vk: VerifyingKey
        proof: Groth16Proof 또는 snarkjs proof.json
        public_inputs: PublicInputVector 또는 정수 리스트

    Returns:
        bool
    """
    if not isinstance(proof, Groth16Proof):
        proof = Groth16Proof.from_snarkjs(proof)
    vk_x = prepare_inputs(vk, public_inputs)

    with timed(logger, "groth16 pairing check"):
        ok = lhs(proof) == rhs(vk, proof, vk_x)
    logger.info(f"Local proof verification {'passed' if ok else 'failed'}")
    return ok
