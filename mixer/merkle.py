"""
머클 누산기 (Merkle Accumulator)
=================================

고정 깊이 이진 해시 트리를 회로 밖(off-chain)에서 유지한다.
리프는 노트 커밋먼트이고, 루트는 온체인 프로그램과 회로가 공유하는 상태이다.

**희소(sparse) 노드 저장**:
  노드는 (level, index) → 필드 원소 딕셔너리에 저장한다.
  값이 없는 노드는 해당 레벨의 "빈 서브트리" 기본값으로 간주한다.

      defaults[0]   = zero_leaf
      defaults[i+1] = hash2(defaults[i], defaults[i])

  기본값 체인은 initialize()에서 한 번만 계산한다.

**트리 구조 (depth = 2)**:

                  root = (2, 0)
                 /             \\
            (1, 0)             (1, 1)
           /      \\           /      \\
        (0, 0)  (0, 1)     (0, 2)  (0, 3)

  - 형제 인덱스: index ^ 1 (마지막 비트 반전)
  - 부모 인덱스: index // 2
  - index가 짝수이면 왼쪽 자식: hash2(current, sibling)
    index가 홀수이면 오른쪽 자식: hash2(sibling, current)

**상태 전이**:
  Uninitialized --initialize()--> Ready
  Ready 이전에 다른 연산을 호출하면 NotInitializedError.

**동시성**:
  내부 잠금이 없다. 하나의 누산기에 대한 삽입은 호출자가 직렬화해야 한다.
  뒤섞인 삽입은 감지되지 않고 트리를 조용히 망가뜨린다.

**오래된 증명 (stale proof)**:
  멤버십 증명은 생성 시점의 root와 version(적용된 삽입 수)을 함께 기록한다.
  제출 직전에 sync()로 온체인 리프 목록을 재생하고 ensure_fresh()로 확인해야 한다.

사용 예시:
    >>> oracle = HashOracle("sha256").setup()
    >>> tree = MerkleAccumulator(oracle, depth=20).initialize()
    >>> root = tree.insert_leaf(0, commitment)
    >>> proof = tree.generate_membership_proof(0)
    >>> tree.verify_membership_proof(commitment, 0, proof)   # True
"""

import logging
from collections import deque
from dataclasses import dataclass

from mixer.config import DEFAULT_TREE_DEPTH, MAX_TREE_DEPTH
from mixer.errors import (
    ConfigurationError,
    LeafIndexError,
    NotInitializedError,
    StaleProofError,
    TreeFullError,
)
from mixer.field import field_element, to_bytes32

logger = logging.getLogger(__name__)


def compute_root(hasher, leaf, proof):
    """증명의 (형제, 방향) 쌍으로 루트를 아래에서 위로 다시 계산한다."""
    current = field_element(leaf)
    for sibling, is_right in zip(proof.path_elements, proof.path_indices):
        if is_right:
            current = hasher.hash2(sibling, current)
        else:
            current = hasher.hash2(current, sibling)
    return current


@dataclass(frozen=True)
class MembershipProof:
    """머클 경로 (멤버십 증명).

    속성:
        path_elements: 레벨 0부터 depth-1까지의 형제 해시
        path_indices:  각 레벨에서 현재 노드가 오른쪽 자식이면 True
        leaf_index:    증명 대상 리프 인덱스
        root:          생성 시점의 루트
        version:       생성 시점까지 적용된 삽입 수 (스냅샷 식별자)
    """
    path_elements: tuple
    path_indices: tuple
    leaf_index: int
    root: int
    version: int

    @property
    def depth(self):
        return len(self.path_elements)

    def path_indices_as_bits(self):
        """회로 입력용: bool → 0/1"""
        return [1 if bit else 0 for bit in self.path_indices]

    def path_elements_as_bytes(self):
        """온체인 제출용: 각 형제 해시를 32바이트로"""
        return [to_bytes32(e) for e in self.path_elements]


class MerkleAccumulator:
    """고정 깊이 증분(incremental) 머클 트리.

    속성:
        depth: 트리 깊이 (회로, 온체인 프로그램과 반드시 같아야 함)
        zero_leaf: 빈 리프 값
        version: 지금까지 적용된 insert_leaf 호출 수
    """

    def __init__(self, hasher, depth=DEFAULT_TREE_DEPTH, zero_leaf=0, root_history_size=100):
        """누산기를 만든다. 사용 전에 initialize()를 호출해야 한다.

        Args:
            hasher: setup()이 끝난 HashOracle
            depth: 트리 깊이 (1 ≤ depth ≤ 32)
            zero_leaf: 빈 리프 값 (필드 원소)
            root_history_size: 보관할 최근 루트 개수

        Raises:
            ConfigurationError: depth 또는 root_history_size가 잘못됨
        """
        if not isinstance(depth, int) or not 1 <= depth <= MAX_TREE_DEPTH:
            raise ConfigurationError(f"트리 깊이는 1 이상 {MAX_TREE_DEPTH} 이하여야 합니다: {depth!r}")
        if root_history_size < 1:
            raise ConfigurationError("root_history_size는 양수여야 합니다")
        self.hasher = hasher
        self.depth = depth
        self.zero_leaf = field_element(zero_leaf)
        self.capacity = 1 << depth
        self.version = 0

        self._nodes = {}
        self._defaults = None
        self._next_index = 0
        self._root_history = deque(maxlen=root_history_size)

    # ─── 초기화 ───

    @property
    def ready(self):
        return self._defaults is not None

    def initialize(self):
        """레벨별 빈 서브트리 기본값을 아래에서 위로 계산한다.

        defaults[0] = zero_leaf, defaults[i+1] = hash2(defaults[i], defaults[i])
        결과 리스트의 길이는 depth + 1 이며, defaults[depth]는 빈 트리의 루트이다.
        두 번째 호출부터는 아무것도 하지 않는다.

        Returns:
            MerkleAccumulator: self (체이닝용)
        """
        if self._defaults is not None:
            return self

        defaults = [self.zero_leaf]
        for _ in range(self.depth):
            defaults.append(self.hasher.hash2(defaults[-1], defaults[-1]))
        self._defaults = tuple(defaults)
        self._root_history.append(self._defaults[self.depth])

        logger.info(f"Merkle accumulator initialized (depth={self.depth})")
        return self

    def _require_ready(self):
        if self._defaults is None:
            raise NotInitializedError("머클 누산기가 아직 initialize()되지 않았습니다")

    def _check_index(self, leaf_index):
        if isinstance(leaf_index, bool) or not isinstance(leaf_index, int):
            raise LeafIndexError(f"리프 인덱스는 정수여야 합니다: {leaf_index!r}")
        if leaf_index < 0 or leaf_index >= self.capacity:
            raise LeafIndexError(
                f"리프 인덱스가 범위 [0, {self.capacity}) 밖에 있습니다: {leaf_index}")

    # ─── 조회 ───

    @property
    def defaults(self):
        self._require_ready()
        return self._defaults

    @property
    def root(self):
        """현재 루트: 노드 (depth, 0)"""
        return self.get_node(self.depth, 0)

    @property
    def next_index(self):
        """append()가 다음에 사용할 리프 인덱스 (지금까지 쓰인 최대 인덱스 + 1)"""
        return self._next_index

    def get_node(self, level, index):
        """(level, index) 노드 값. 없으면 해당 레벨의 기본값."""
        self._require_ready()
        if level < 0 or level > self.depth:
            raise LeafIndexError(f"레벨이 범위 [0, {self.depth}] 밖에 있습니다: {level}")
        if index < 0 or index >= 1 << (self.depth - level):
            raise LeafIndexError(f"레벨 {level}의 인덱스가 범위 밖에 있습니다: {index}")
        return self._nodes.get((level, index), self._defaults[level])

    def has_leaf(self, leaf_index):
        return (0, leaf_index) in self._nodes

    def is_known_root(self, root):
        """root가 최근 root_history_size개의 루트 중 하나인지 확인한다."""
        self._require_ready()
        return root in self._root_history

    # ─── 삽입 ───

    def insert_leaf(self, leaf_index, leaf_value):
        """리프를 설정하고 루트까지 경로를 다시 계산한다.

        인덱스 단조 증가는 강제하지 않는다. 보통은 서버 쪽 입금 카운터가
        부여한 인덱스를 그대로 쓴다.

        Args:
            leaf_index: 0 ≤ leaf_index < 2^depth
            leaf_value: 리프 값 (보통 커밋먼트)

        Returns:
            int: 새 루트

        Raises:
            NotInitializedError: initialize() 이전
            LeafIndexError: 인덱스가 범위 밖
            DecodeError: 리프 값이 필드 원소가 아님
        """
        self._require_ready()
        self._check_index(leaf_index)
        current = field_element(leaf_value)

        index = leaf_index
        self._nodes[(0, index)] = current
        for level in range(self.depth):
            sibling = self._nodes.get((level, index ^ 1), self._defaults[level])
            if index % 2 == 0:
                current = self.hasher.hash2(current, sibling)
            else:
                current = self.hasher.hash2(sibling, current)
            index //= 2
            self._nodes[(level + 1, index)] = current

        self.version += 1
        self._next_index = max(self._next_index, leaf_index + 1)
        self._root_history.append(current)
        logger.debug(f"Inserted leaf at index {leaf_index} (version={self.version})")
        return current

    def append(self, leaf_value):
        """다음 빈 인덱스에 리프를 삽입한다. 온체인 입금 카운터와 같은 방식.

        Returns:
            (int, int): (삽입된 인덱스, 새 루트)

        Raises:
            TreeFullError: 2^depth개의 리프가 모두 찼을 때
        """
        self._require_ready()
        if self._next_index >= self.capacity:
            raise TreeFullError(f"트리가 가득 찼습니다 (용량 {self.capacity})")
        leaf_index = self._next_index
        return leaf_index, self.insert_leaf(leaf_index, leaf_value)

    # ─── 멤버십 증명 ───

    def generate_membership_proof(self, leaf_index):
        """삽입 경로를 따라가며 형제 값과 방향만 기록한다. 상태를 바꾸지 않는다.

        결과는 *현재* 루트에 대해서만 유효하다.

        Raises:
            LeafIndexError: 인덱스가 범위 밖이거나 리프가 삽입된 적 없음
        """
        self._require_ready()
        self._check_index(leaf_index)
        if not self.has_leaf(leaf_index):
            raise LeafIndexError(f"인덱스 {leaf_index}에 삽입된 리프가 없습니다")

        path_elements = []
        path_indices = []
        index = leaf_index
        for level in range(self.depth):
            path_elements.append(self._nodes.get((level, index ^ 1), self._defaults[level]))
            path_indices.append(index % 2 == 1)
            index //= 2

        return MembershipProof(
            path_elements=tuple(path_elements),
            path_indices=tuple(path_indices),
            leaf_index=leaf_index,
            root=self.root,
            version=self.version,
        )

    def compute_root(self, leaf, proof):
        return compute_root(self.hasher, leaf, proof)

    def verify_membership_proof(self, leaf, leaf_index, proof):
        """증명으로 다시 계산한 루트가 현재 루트와 같은지 확인한다.

        다음 경우 False:
          - 경로 길이가 depth와 다름
          - leaf_index가 정수가 아니거나 범위 밖
          - 방향 비트가 leaf_index의 비트와 다름
          - 계산된 루트 ≠ 현재 루트
        """
        self._require_ready()
        if len(proof.path_elements) != self.depth or len(proof.path_indices) != self.depth:
            return False
        try:
            self._check_index(leaf_index)
        except LeafIndexError:
            return False
        for level, is_right in enumerate(proof.path_indices):
            if bool(is_right) != bool((leaf_index >> level) & 1):
                return False
        return self.compute_root(leaf, proof) == self.root

    def ensure_fresh(self, proof):
        """증명이 현재 트리 상태에서 생성된 것인지 확인한다.

        Raises:
            StaleProofError: 증명 생성 이후 루트가 바뀜
        """
        self._require_ready()
        if proof.root != self.root or proof.version != self.version:
            raise StaleProofError(
                f"멤버십 증명이 오래되었습니다 (증명 version={proof.version}, "
                f"현재 version={self.version}). 증명을 다시 생성하세요.")
        return proof

    # ─── 동기화 ───

    def reset(self):
        """모든 리프를 지우고 빈 트리로 되돌린다 (기본값은 유지)."""
        self._require_ready()
        self._nodes.clear()
        self._next_index = 0
        self.version = 0
        self._root_history.clear()
        self._root_history.append(self._defaults[self.depth])

    def sync(self, leaves, expected_root=None):
        """권위 있는(온체인) 리프 목록을 처음부터 재생하여 트리를 다시 만든다.

        재생은 별도 누산기에서 하고, 성공했을 때만 상태를 교체한다.
        실패하면 이 트리는 호출 전 그대로 남는다.

        Args:
            leaves: 인덱스 0부터 순서대로의 리프 값
            expected_root: 온체인 루트. 주어지면 재생 결과와 비교한다.

        Returns:
            int: 재생 후 루트

        Raises:
            StaleProofError: 재생 결과가 expected_root와 다름
            DecodeError: 리프 값 또는 expected_root가 필드 원소가 아님
            TreeFullError: 리프가 용량보다 많음
        """
        self._require_ready()
        if expected_root is not None:
            expected_root = field_element(expected_root)

        scratch = MerkleAccumulator(self.hasher, self.depth, self.zero_leaf,
                                    self._root_history.maxlen)
        scratch._defaults = self._defaults
        scratch._root_history.append(self._defaults[self.depth])
        for leaf in leaves:
            scratch.append(leaf)

        root = scratch.root
        if expected_root is not None and root != expected_root:
            raise StaleProofError(
                f"재생한 트리({scratch.next_index}개 리프)의 루트가 온체인 루트와 다릅니다")

        self._nodes = scratch._nodes
        self._next_index = scratch._next_index
        self.version = scratch.version
        self._root_history = scratch._root_history
        logger.info(f"Merkle accumulator synced ({self._next_index} leaves)")
        return root
