import pytest

from mixer.field import FR, G1, G2, ec_mul
from mixer.groth16.formatting import Groth16Proof
from mixer.groth16.schema import build_public_input_vector
from mixer.groth16.verifying import VerifyingKey


# ── 테스트 상수 (toxic waste) ──
TOXIC_ALPHA = 3926
TOXIC_BETA = 3604
TOXIC_GAMMA = 2971
TOXIC_DELTA = 1357
TOXIC_IC = [17, 23, 29, 31, 37, 41, 43, 47]

PROVER_A = 4106
PROVER_B = 4565

PUBLIC_ROOT = 111
PUBLIC_NULLIFIER_HASH = 222
PUBLIC_RECIPIENT = bytes(range(32))
PUBLIC_RELAYER = bytes(32)
PUBLIC_FEE = 3


@pytest.fixture(scope="session")
def toy_groth16():
    """검증 방정식을 만족하는 Groth16 인스턴스.

    e(B, A) == e(β, α) · e(γ, vk_x) · e(δ, C) 이려면
      a·b = α·β + γ·x + δ·c   (x: vk_x의 스칼라)
    이므로 c = (a·b − α·β − γ·x) / δ 로 정한다.
    """
    alpha = FR(TOXIC_ALPHA)
    beta = FR(TOXIC_BETA)
    gamma = FR(TOXIC_GAMMA)
    delta = FR(TOXIC_DELTA)
    a = FR(PROVER_A)
    b = FR(PROVER_B)

    public_inputs = build_public_input_vector(
        PUBLIC_ROOT, PUBLIC_NULLIFIER_HASH, PUBLIC_RECIPIENT, PUBLIC_RELAYER, PUBLIC_FEE)

    x = FR(TOXIC_IC[0])
    for ic, ri in zip(TOXIC_IC[1:], public_inputs.values):
        x = x + FR(ic) * FR(ri)
    c = (a * b - alpha * beta - gamma * x) / delta

    vk = VerifyingKey(
        alpha_g1=ec_mul(G1, alpha),
        beta_g2=ec_mul(G2, beta),
        gamma_g2=ec_mul(G2, gamma),
        delta_g2=ec_mul(G2, delta),
        ic=[ec_mul(G1, FR(s)) for s in TOXIC_IC],
    )
    proof = Groth16Proof(a=ec_mul(G1, a), b=ec_mul(G2, b), c=ec_mul(G1, c))
    return {"vk": vk, "proof": proof, "public_inputs": public_inputs}
