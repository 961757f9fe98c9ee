"""
믹서 코어 예외 계층
====================

모든 예외는 MixerError를 상속한다. 호출자는 종류별로 구분하여
사용자에게 서로 다른 메시지를 보여줄 수 있어야 한다.

  - "노트 문자열 형식이 잘못됨"   → ParseError
  - "노트의 비밀값이 커밋먼트와 다름" → ValidationError

어떤 예외도 코어 내부에서 복구하지 않는다.
"""


class MixerError(Exception):
    """믹서 코어 예외의 기본 클래스"""
    kind = "mixer_error"


class NotInitializedError(MixerError):
    """initialize() / setup() 이전에 연산을 호출함"""
    kind = "not_initialized"


class DecodeError(MixerError, ValueError):
    """바이트열 또는 정수가 유효한 필드 범위를 벗어남"""
    kind = "decode_error"


class ParseError(MixerError, ValueError):
    """노트 문자열 또는 가져오기 데이터의 형식 오류"""
    kind = "parse_error"


class ValidationError(MixerError):
    """커밋먼트 불일치: 노트가 손상되었거나 다른 노트와 섞임"""
    kind = "validation_error"


class ProtocolMismatchError(MixerError):
    """공개 입력의 순서 또는 개수가 검증자와의 약속과 다름"""
    kind = "protocol_mismatch"


class StaleProofError(MixerError):
    """멤버십 증명이 이미 바뀐 루트를 기준으로 생성됨"""
    kind = "stale_proof"


class HashConfigurationError(MixerError):
    """해시 프리미티브를 초기화할 수 없음 (재시도하지 않음)"""
    kind = "hash_configuration"


class ConfigurationError(MixerError):
    """설정 파일을 읽을 수 없거나 값이 잘못됨"""
    kind = "configuration_error"


class LeafIndexError(MixerError, IndexError):
    """리프 인덱스가 [0, 2^depth) 범위 밖이거나 비어 있음"""
    kind = "leaf_index"


class TreeFullError(MixerError):
    """더 이상 삽입할 리프 자리가 없음"""
    kind = "tree_full"


class ProofGenerationError(MixerError):
    """외부 증명 백엔드가 실패하거나 시간 초과됨"""
    kind = "proof_generation"
