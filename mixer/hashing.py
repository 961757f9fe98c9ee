"""
해시 오라클 어댑터 (Hash Oracle Adapter)
=========================================

외부 Poseidon 프리미티브를 고정된 인자 개수 {1, 2}의 안정적인 인터페이스로 감싼다.

**명시적 소유**:
  해시 프리미티브는 모듈 전역 상태에 숨겨 두지 않는다.
  HashOracle 인스턴스를 직접 만들고 setup()을 호출한 뒤,
  필요한 컴포넌트(MerkleAccumulator, NoteManager 등)에 생성자로 넘겨준다.

  >>> oracle = HashOracle("poseidon").setup()   # 한 번만, 비용이 큰 단계
  >>> tree = MerkleAccumulator(oracle, depth=20)

  setup() 이후의 해시 호출은 상태가 없고 참조 투명(referentially transparent)하다.

**백엔드**:
  - "poseidon": circomlib 호환 Poseidon (mixer/poseidon.py). bn128 스칼라 필드,
                S-box x^5, 전체 라운드 8회, 부분 라운드 56회(t=2) / 57회(t=3).
  - "sha256":   회로 밖(off-circuit) SHA-256 → 필드 축소. 테스트와 도구용이며,
                검증 회로와는 호환되지 않는다.
  - 호출 가능 객체: factory(arity) → (list[int] → int). 다른 프리미티브를 주입할 때 사용.

**실패 처리**:
  프리미티브를 만들 수 없으면 HashConfigurationError. 재시도하지 않는다.
"""

import hashlib
import logging

from mixer.errors import HashConfigurationError, NotInitializedError
from mixer.field import FIELD_MODULUS, field_element
from mixer.poseidon import CircomPoseidon
from mixer.utils import timed

logger = logging.getLogger(__name__)


SHA256_DOMAIN = b"mixer.sha256/"


def poseidon_backend(arity):
    """arity 입력의 circomlib Poseidon. 상태 폭 t = arity + 1

    Grain LFSR로 라운드 상수와 MDS 행렬을 유도하므로 setup 단계에서 한 번만 부른다.
    """
    return CircomPoseidon(arity + 1).hash


def sha256_backend(arity):
    """SHA-256 기반 회로 밖 해시. arity별로 도메인을 분리한다."""
    tag = SHA256_DOMAIN + bytes([arity])

    def run(inputs):
        h = hashlib.sha256(tag)
        for v in inputs:
            # 고정폭 32바이트 인코딩
            h.update(v.to_bytes(32, "big"))
        return int.from_bytes(h.digest(), "big") % FIELD_MODULUS

    return run


BACKENDS = {
    "poseidon": poseidon_backend,
    "sha256": sha256_backend,
}


class HashOracle:
    """외부 해시 프리미티브의 소유자.

    속성:
        backend_name: 백엔드 이름 ("poseidon", "sha256" 또는 주입된 factory 이름)
        ready: setup()이 끝났는지 여부
    """

    ARITIES = (1, 2)

    def __init__(self, backend="poseidon"):
        if callable(backend):
            self._factory = backend
            self.backend_name = getattr(backend, "__name__", "custom")
        elif backend in BACKENDS:
            self._factory = BACKENDS[backend]
            self.backend_name = backend
        else:
            raise HashConfigurationError(
                f"알 수 없는 해시 백엔드입니다: {backend!r} (사용 가능: {sorted(BACKENDS)})")
        self._primitives = None

    @classmethod
    def create(cls, backend="poseidon"):
        """생성과 setup()을 한 번에 수행한다."""
        return cls(backend).setup()

    @property
    def ready(self):
        return self._primitives is not None

    def setup(self):
        """arity 1, 2의 프리미티브를 한 번 만든다. 두 번째 호출부터는 아무것도 하지 않는다.

        Returns:
            HashOracle: self (체이닝용)

        Raises:
            HashConfigurationError: 프리미티브 생성 실패 (치명적, 재시도 없음)
        """
        if self._primitives is not None:
            return self

        primitives = {}
        with timed(logger, f"hash backend '{self.backend_name}' setup"):
            for arity in self.ARITIES:
                try:
                    primitives[arity] = self._factory(arity)
                except HashConfigurationError:
                    raise
                except Exception as e:
                    raise HashConfigurationError(
                        f"해시 백엔드 '{self.backend_name}'(arity={arity})를 초기화할 수 없습니다: {e}"
                    ) from e

        self._primitives = primitives
        logger.info(f"Hash oracle ready (backend={self.backend_name})")
        return self

    def hash(self, inputs):
        """필드 원소 리스트의 해시.

        Args:
            inputs: 길이 1 또는 2의 필드 원소 리스트

        Returns:
            int: 필드 원소

        Raises:
            NotInitializedError: setup() 이전에 호출됨
            HashConfigurationError: 지원하지 않는 arity
            DecodeError: 입력이 필드 원소가 아님
        """
        if self._primitives is None:
            raise NotInitializedError("해시 오라클이 아직 setup()되지 않았습니다")
        values = [field_element(x) for x in inputs]
        primitive = self._primitives.get(len(values))
        if primitive is None:
            raise HashConfigurationError(
                f"지원하지 않는 입력 개수입니다: {len(values)} (지원: {self.ARITIES})")
        return field_element(primitive(values))

    def hash1(self, x):
        return self.hash([x])

    def hash2(self, x, y):
        return self.hash([x, y])

    def __repr__(self):
        state = "ready" if self.ready else "uninitialized"
        return f"HashOracle(backend={self.backend_name!r}, {state})"
