"""
공개 입력 스키마 (Public Input Schema)
=======================================

출금 증명의 공개 입력은 검증기와 맺은 위치 기반 계약이다.
순서가 바뀌면 증명은 온체인에서 조용히 거부된다.

그래서 순서를 배열 인덱스에 암묵적으로 두지 않고, 버전 태그가 붙은
이름 있는 필드의 명시적 시퀀스로 정의한다.

  WITHDRAW_SCHEMA (v1):
    [root, nullifier_hash, recipient_1, recipient_2, relayer_1, relayer_2, fee]

  recipient_1/2, relayer_1/2: 32바이트 공개키를 16바이트씩 나눈 두 조각
"""

from dataclasses import dataclass
from typing import Tuple

from mixer.errors import ProtocolMismatchError, DecodeError
from mixer.field import field_element, to_bytes32, split_public_key_halves


@dataclass(frozen=True)
class PublicInputSchema:
    version: int
    fields: Tuple[str, ...]

    def __len__(self):
        return len(self.fields)

    def index(self, name):
        return self.fields.index(name)


WITHDRAW_SCHEMA = PublicInputSchema(
    version=1,
    fields=(
        "root",
        "nullifier_hash",
        "recipient_1",
        "recipient_2",
        "relayer_1",
        "relayer_2",
        "fee",
    ),
)


@dataclass(frozen=True)
class PublicInputVector:
    """스키마 순서를 따르는 공개 입력 값들"""
    values: Tuple[int, ...]
    schema: PublicInputSchema = WITHDRAW_SCHEMA

    def __post_init__(self):
        if len(self.values) != len(self.schema):
            raise ProtocolMismatchError(
                f"공개 입력 개수가 스키마 v{self.schema.version}와 다릅니다: "
                f"{len(self.values)} != {len(self.schema)}")

    def __getitem__(self, name):
        return self.values[self.schema.index(name)]

    def __len__(self):
        return len(self.values)

    def as_dict(self):
        return dict(zip(self.schema.fields, self.values))

    def to_list(self):
        """snarkjs public.json과 같은 10진 문자열 리스트"""
        return [str(v) for v in self.values]

    def to_bytes(self):
        """온체인 명령용 32바이트 값 리스트"""
        return [to_bytes32(v) for v in self.values]


def build_public_input_vector(root, nullifier_hash, recipient_pubkey, relayer_pubkey, fee=0,
                              schema=WITHDRAW_SCHEMA):
    """출금 공개 입력 벡터를 만든다.

    수령인과 릴레이어 공개키는 각각 16바이트 두 조각으로 나뉜다.

    Raises:
        DecodeError: 값이 필드 원소가 아니거나 공개키가 32바이트가 아님
    """
    recipient_1, recipient_2 = split_public_key_halves(recipient_pubkey)
    relayer_1, relayer_2 = split_public_key_halves(relayer_pubkey)
    named = {
        "root": field_element(root),
        "nullifier_hash": field_element(nullifier_hash),
        "recipient_1": recipient_1,
        "recipient_2": recipient_2,
        "relayer_1": relayer_1,
        "relayer_2": relayer_2,
        "fee": field_element(fee),
    }
    return PublicInputVector(tuple(named[name] for name in schema.fields), schema)


def decode_public_signals(raw, expected=None, schema=WITHDRAW_SCHEMA):
    """증명 백엔드가 돌려준 공개 신호를 스키마에 맞춰 해석한다.

    Args:
        raw: 공개 신호 리스트 (정수 또는 10진 문자열, snarkjs public.json)
        expected: 요청했던 PublicInputVector. 주어지면 필드별로 비교한다.

    Returns:
        PublicInputVector

    Raises:
        ProtocolMismatchError: 개수가 다르거나, 필드 원소가 아니거나,
                               expected와 다른 필드가 있을 때.
                               회로와 클라이언트가 어긋났다는 뜻이므로 치명적이다.
    """
    if expected is not None:
        schema = expected.schema
    raw = list(raw)
    if len(raw) != len(schema):
        raise ProtocolMismatchError(
            f"공개 신호 개수가 맞지 않습니다: {len(raw)}개 (스키마 v{schema.version}: {len(schema)}개)")

    try:
        values = tuple(field_element(v) for v in raw)
    except DecodeError as e:
        raise ProtocolMismatchError(f"공개 신호가 필드 원소가 아닙니다: {e}") from e

    vector = PublicInputVector(values, schema)
    if expected is not None:
        for name, got, want in zip(schema.fields, vector.values, expected.values):
            if got != want:
                raise ProtocolMismatchError(
                    f"공개 신호 '{name}'이(가) 요청한 값과 다릅니다: {got} != {want}")
    return vector
