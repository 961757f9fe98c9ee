"""
circomlib 호환 Poseidon (Circom Poseidon)
==========================================

검증 회로(circomlib poseidon.circom)와 같은 값을 내는 Poseidon 해시.

파라미터:
  - 필드: bn128 스칼라 필드 p
  - S-box: x^5
  - 전체 라운드 R_F = 8, 부분 라운드 R_P = 56 (t=2) / 57 (t=3)
  - 상태 폭 t = 입력 개수 + 1, 초기 상태 [0, 입력...]
  - 출력: 순열 이후 state[0]

라운드 상수와 MDS 행렬은 circomlib 상수표를 만든 것과 같은 절차로 유도한다.
(Grain LFSR, 인자 "1 0 254 t 8 R_P p")

  Grain 초기 80비트 = field(2) | sbox(4) | n(12) | t(12) | R_F(10) | R_P(10) | 1 × 30
  처음 160비트는 버린다.
  출력은 비트 쌍 (c, b)에서 c = 1일 때의 b만 사용한다.

  라운드 상수: n비트씩 읽어 p 이상이면 다시 읽는다. 총 (R_F + R_P) · t개
  MDS: 2t개의 n비트 값 (mod p) → xs, ys.  M[i][j] = 1 / (xs[i] + ys[j])

라운드 구성 (r = 0 .. R_F + R_P - 1):
  state[i] += C[r·t + i]
  처음 R_F/2, 마지막 R_F/2 라운드: 모든 원소에 x^5 / 나머지: state[0]에만 x^5
  state = M · state
"""

from collections import deque

from mixer.field import FIELD_MODULUS

FULL_ROUNDS = 8
PARTIAL_ROUNDS = {2: 56, 3: 57}
FIELD_BITS = 254

GRAIN_FIELD_PRIME = 1
GRAIN_SBOX_POWER = 0


def _bits(value, width):
    return [int(b) for b in bin(value)[2:].zfill(width)]


class GrainLFSR:
    """Poseidon 파라미터 생성용 80비트 Grain LFSR"""

    def __init__(self, t, full_rounds, partial_rounds, n=FIELD_BITS):
        seed = (
            _bits(GRAIN_FIELD_PRIME, 2)
            + _bits(GRAIN_SBOX_POWER, 4)
            + _bits(n, 12)
            + _bits(t, 12)
            + _bits(full_rounds, 10)
            + _bits(partial_rounds, 10)
            + [1] * 30
        )
        self._state = deque(seed, maxlen=80)
        for _ in range(160):
            self._step()

    def _step(self):
        s = self._state
        bit = s[62] ^ s[51] ^ s[38] ^ s[23] ^ s[13] ^ s[0]
        s.append(bit)
        return bit

    def next_bit(self):
        while True:
            control = self._step()
            bit = self._step()
            if control:
                return bit

    def next_int(self, n):
        value = 0
        for _ in range(n):
            value = (value << 1) | self.next_bit()
        return value


def round_constants(grain, t, rounds, p=FIELD_MODULUS, n=FIELD_BITS):
    constants = []
    for _ in range(rounds * t):
        value = grain.next_int(n)
        while value >= p:
            value = grain.next_int(n)
        constants.append(value)
    return constants


def cauchy_mds(grain, t, p=FIELD_MODULUS, n=FIELD_BITS):
    """M[i][j] = (xs[i] + ys[j])^-1, xs와 ys는 서로 다른 2t개의 값"""
    while True:
        values = [grain.next_int(n) % p for _ in range(2 * t)]
        while len(set(values)) != len(values):
            values = [grain.next_int(n) % p for _ in range(2 * t)]
        xs, ys = values[:t], values[t:]
        if any((x + y) % p == 0 for x in xs for y in ys):
            continue
        return [[pow(x + y, p - 2, p) for y in ys] for x in xs]


class CircomPoseidon:
    """상태 폭 t의 circomlib 호환 Poseidon.

    생성 시 Grain LFSR로 상수를 유도하므로 인스턴스를 만들어 재사용한다.

    >>> CircomPoseidon(3).hash([1, 2])
    7853200120776062878684798364095072458815029376092732009249414926327459813530
    """

    def __init__(self, t, p=FIELD_MODULUS):
        if t not in PARTIAL_ROUNDS:
            raise ValueError(f"지원하지 않는 상태 폭입니다: t={t}")
        self.t = t
        self.p = p
        self.full_rounds = FULL_ROUNDS
        self.partial_rounds = PARTIAL_ROUNDS[t]

        grain = GrainLFSR(t, self.full_rounds, self.partial_rounds)
        self.round_constants = round_constants(
            grain, t, self.full_rounds + self.partial_rounds, p)
        self.mds = cauchy_mds(grain, t, p)

    def permute(self, state):
        p, t = self.p, self.t
        half = self.full_rounds // 2
        state = list(state)
        for r in range(self.full_rounds + self.partial_rounds):
            c = self.round_constants[r * t:(r + 1) * t]
            state = [(s + k) % p for s, k in zip(state, c)]
            if r < half or r >= half + self.partial_rounds:
                state = [pow(s, 5, p) for s in state]
            else:
                state[0] = pow(state[0], 5, p)
            state = [sum(m * s for m, s in zip(row, state)) % p for row in self.mds]
        return state

    def hash(self, inputs):
        if len(inputs) != self.t - 1:
            raise ValueError(f"입력은 {self.t - 1}개여야 합니다 (받은 값: {len(inputs)}개)")
        return self.permute([0] + list(inputs))[0]
