"""
출금 증명 생성 (Withdraw Proof Generation)
===========================================

증명 시스템 자체(회로 컴파일, 증인 계산, Groth16 증명)는 외부 백엔드이다.
이 모듈은 그 백엔드에 넣을 증인을 조립하고, 나온 결과를 검증기 형식으로 되돌린다.

**파이프라인**:
  1. 노트 검증        hash2(nullifier, secret) == commitment   (ValidationError)
  2. 신선도 확인       membership_proof.root == 현재 루트       (StaleProofError)
  3. 공개 입력 벡터    [root, nullifier_hash, recipient_1, recipient_2, relayer_1, relayer_2, fee]
  4. 회로 증인        공개 입력 + nullifier, secret, pathElements, pathIndices
  5. 증명            prover.prove(witness) → (proof.json, public.json)
  6. 공개 신호 해석    요청한 벡터와 한 필드라도 다르면 ProtocolMismatchError
  7. 포맷            proof_a(64) / proof_b(128) / proof_c(64)

증명 생성은 파이프라인에서 유일하게 오래 걸리는(수 초) 블로킹 단계이다.
실패하면 부분 결과를 재사용하지 않고, 재시도도 하지 않는다.
"""

import json
import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

from mixer.errors import DecodeError, ProofGenerationError, StaleProofError, ValidationError
from mixer.field import to_bytes32
from mixer.groth16.formatting import Groth16Proof, ProofFormatter
from mixer.groth16.schema import build_public_input_vector, decode_public_signals
from mixer.merkle import compute_root
from mixer.utils import timed

logger = logging.getLogger(__name__)

DEFAULT_RELAYER = bytes(32)

# 공개 입력 필드 → 회로 신호 이름
CIRCUIT_SIGNAL_NAMES = {
    "root": "root",
    "nullifier_hash": "nullifierHash",
    "recipient_1": "recipient_1",
    "recipient_2": "recipient_2",
    "relayer_1": "relayer_1",
    "relayer_2": "relayer_2",
    "fee": "fee",
}


def require_valid_note(note, hasher):
    try:
        ok = hasher.hash2(note.nullifier, note.secret) == note.commitment
    except DecodeError:
        ok = False
    if not ok:
        raise ValidationError("노트의 nullifier/secret이 커밋먼트와 일치하지 않습니다")
    return note


def build_circuit_witness(note, membership_proof, public_inputs, hasher):
    """증명 백엔드가 받는 증인(snarkjs input.json)을 조립한다.

    Args:
        note: 출금할 Note
        membership_proof: note.commitment의 MembershipProof
        public_inputs: build_public_input_vector()의 결과
        hasher: setup()이 끝난 HashOracle

    Returns:
        dict: 신호 이름 → 10진 문자열 (pathIndices는 0/1 정수)

    Raises:
        ValidationError: 노트가 손상되었거나, nullifier_hash가 노트와 맞지 않거나,
                         멤버십 증명이 이 노트의 것이 아닐 때
        StaleProofError: 멤버십 증명의 루트가 공개 입력의 루트와 다를 때
    """
    require_valid_note(note, hasher)
    if hasher.hash1(note.nullifier) != public_inputs["nullifier_hash"]:
        raise ValidationError("공개 입력의 nullifier_hash가 노트와 일치하지 않습니다")
    if membership_proof.root != public_inputs["root"]:
        raise StaleProofError(
            "멤버십 증명의 루트가 공개 입력의 루트와 다릅니다. 트리를 동기화한 뒤 증명을 다시 생성하세요.")
    if compute_root(hasher, note.commitment, membership_proof) != membership_proof.root:
        raise ValidationError("멤버십 증명이 이 노트의 커밋먼트로 루트를 재현하지 못합니다")

    witness = {CIRCUIT_SIGNAL_NAMES[name]: str(value)
               for name, value in public_inputs.as_dict().items()}
    witness["nullifier"] = str(note.nullifier)
    witness["secret"] = str(note.secret)
    witness["pathElements"] = [str(e) for e in membership_proof.path_elements]
    witness["pathIndices"] = membership_proof.path_indices_as_bits()
    return witness


class SnarkjsProver:
    """snarkjs CLI를 통한 Groth16 증명 백엔드.

    snarkjs groth16 fullprove input.json <wasm> <zkey> proof.json public.json
    """

    def __init__(self, wasm_path, zkey_path, snarkjs_bin="snarkjs", timeout=120):
        self.wasm_path = Path(wasm_path)
        self.zkey_path = Path(zkey_path)
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout

    @classmethod
    def from_config(cls, circuit_config):
        return cls(circuit_config.wasm_path, circuit_config.zkey_path,
                   circuit_config.snarkjs_bin, circuit_config.proof_timeout)

    def prove(self, witness):
        """증인으로 증명을 만든다.

        Returns:
            (dict, list): (proof.json, public.json)

        Raises:
            ProofGenerationError: 회로 파일 없음, snarkjs 실행 실패, 시간 초과
        """
        for path in (self.wasm_path, self.zkey_path):
            if not path.exists():
                raise ProofGenerationError(f"회로 파일을 찾을 수 없습니다: {path}")

        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            input_file = temp_path / "input.json"
            proof_file = temp_path / "proof.json"
            public_file = temp_path / "public.json"
            input_file.write_text(json.dumps(witness))

            cmd = [
                self.snarkjs_bin, "groth16", "fullprove",
                str(input_file),
                str(self.wasm_path),
                str(self.zkey_path),
                str(proof_file),
                str(public_file),
            ]

            try:
                with timed(logger, "snarkjs groth16 fullprove"):
                    result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                raise ProofGenerationError(f"증명 생성이 {self.timeout}초 안에 끝나지 않았습니다") from e
            except OSError as e:
                raise ProofGenerationError(f"snarkjs를 실행할 수 없습니다: {e}") from e

            if result.returncode != 0:
                raise ProofGenerationError(f"Proof generation failed: {result.stderr.strip()}")

            try:
                proof = json.loads(proof_file.read_text())
                public_signals = json.loads(public_file.read_text())
            except (OSError, json.JSONDecodeError) as e:
                raise ProofGenerationError(f"snarkjs 출력을 읽을 수 없습니다: {e}") from e

        return proof, public_signals


@dataclass(frozen=True)
class WithdrawPayload:
    """온체인 출금 명령에 들어갈 모든 값"""
    proof: object           # FormattedProof
    public_inputs: object   # PublicInputVector
    membership_proof: object
    raw_proof: Groth16Proof

    def instruction_args(self):
        """proof_a(64), proof_b(128), proof_c(64), 공개 입력 7×32,
        경로 원소 depth×32, 경로 방향 depth×bool"""
        return {
            "proof_a": self.proof.proof_a,
            "proof_b": self.proof.proof_b,
            "proof_c": self.proof.proof_c,
            "public_inputs": self.public_inputs.to_bytes(),
            "path_elements": self.membership_proof.path_elements_as_bytes(),
            "path_indices": list(self.membership_proof.path_indices),
        }

    def nullifier_hash_bytes(self):
        return to_bytes32(self.public_inputs["nullifier_hash"])


class WithdrawProofGenerator:
    def __init__(self, hasher, prover, formatter=None):
        self.hasher = hasher
        self.prover = prover
        self.formatter = formatter if formatter is not None else ProofFormatter()

    def generate(self, note, membership_proof, recipient, relayer=DEFAULT_RELAYER, fee=0,
                 accumulator=None):
        """출금 증명을 만들고 검증기 형식으로 포맷한다.

        accumulator를 주면 멤버십 증명이 현재 트리 상태에서 나온 것인지 먼저 확인한다.
        """
        require_valid_note(note, self.hasher)
        if accumulator is not None:
            accumulator.ensure_fresh(membership_proof)

        public_inputs = build_public_input_vector(
            root=membership_proof.root,
            nullifier_hash=self.hasher.hash1(note.nullifier),
            recipient_pubkey=recipient,
            relayer_pubkey=relayer,
            fee=fee,
        )
        witness = build_circuit_witness(note, membership_proof, public_inputs, self.hasher)

        logger.info(f"Generating withdraw proof (leaf_index={membership_proof.leaf_index}, "
                    f"depth={membership_proof.depth})")
        raw_proof, raw_signals = self.prover.prove(witness)

        signals = decode_public_signals(raw_signals, expected=public_inputs)
        proof = raw_proof if isinstance(raw_proof, Groth16Proof) else Groth16Proof.from_snarkjs(raw_proof)
        formatted = self.formatter.format_proof(proof)
        logger.info("Withdraw proof generated and formatted")
        return WithdrawPayload(formatted, signals, membership_proof, proof)
