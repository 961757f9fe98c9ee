"""
믹서 설정 (Configuration)
==========================

YAML 파일 ↔ MixerConfig 데이터클래스.

  tree_depth, zero_leaf, hash_backend는 검증 회로, 온체인 프로그램과 같아야 한다.
  g2_limb_order, negate_proof_a는 대상 검증기의 바이트 배치를 따른다.

파일 경로는 인자로 주거나 환경 변수 MIXER_CONFIG로 지정한다.
파일이 없으면 기본값을 쓴다.
"""

from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Optional
import logging
import os

import yaml

from mixer.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TREE_DEPTH = 20
MAX_TREE_DEPTH = 32
CONFIG_ENV_VAR = "MIXER_CONFIG"

HASH_BACKENDS = ("poseidon", "sha256")
G2_LIMB_ORDERS = ("natural", "swapped")


@dataclass
class CircuitConfig:
    wasm_path: Path = field(default_factory=lambda: Path("circuits/withdraw.wasm"))
    zkey_path: Path = field(default_factory=lambda: Path("circuits/withdraw_final.zkey"))
    verification_key_path: Path = field(
        default_factory=lambda: Path("circuits/verification_key.json"))
    snarkjs_bin: str = "snarkjs"
    proof_timeout: int = 120

    def __post_init__(self):
        self.wasm_path = Path(self.wasm_path)
        self.zkey_path = Path(self.zkey_path)
        self.verification_key_path = Path(self.verification_key_path)


@dataclass
class MixerConfig:
    # 회로, 온체인 프로그램과 반드시 같아야 함
    tree_depth: int = DEFAULT_TREE_DEPTH
    zero_leaf: int = 0
    root_history_size: int = 100

    hash_backend: str = "poseidon"
    g2_limb_order: str = "swapped"
    negate_proof_a: bool = True

    note_store_path: Optional[Path] = field(default_factory=lambda: Path("notes.json"))
    note_namespace: str = "mixer_notes"
    default_amount: int = 100_000_000

    circuit: CircuitConfig = field(default_factory=CircuitConfig)

    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self):
        if self.note_store_path is not None:
            self.note_store_path = Path(self.note_store_path)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)
        self.validate()

    def validate(self):
        """회로나 검증기와 맞을 수 없는 값을 거부한다."""
        if not isinstance(self.tree_depth, int) or not 1 <= self.tree_depth <= MAX_TREE_DEPTH:
            raise ConfigurationError(
                f"tree_depth는 1 이상 {MAX_TREE_DEPTH} 이하의 정수여야 합니다: {self.tree_depth!r}")
        if self.hash_backend not in HASH_BACKENDS:
            raise ConfigurationError(
                f"hash_backend는 {HASH_BACKENDS} 중 하나여야 합니다: {self.hash_backend!r}")
        if self.g2_limb_order not in G2_LIMB_ORDERS:
            raise ConfigurationError(
                f"g2_limb_order는 {G2_LIMB_ORDERS} 중 하나여야 합니다: {self.g2_limb_order!r}")
        if self.root_history_size < 1:
            raise ConfigurationError("root_history_size는 양수여야 합니다")
        if self.default_amount < 0:
            raise ConfigurationError("default_amount는 음수일 수 없습니다")
        if not self.note_namespace:
            raise ConfigurationError("note_namespace가 비어 있습니다")


def _config_from_dict(data):
    known = {f.name for f in fields(MixerConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"알 수 없는 설정 키입니다: {sorted(unknown)}")

    data = dict(data)
    circuit_data = data.pop("circuit", None) or {}
    circuit_known = {f.name for f in fields(CircuitConfig)}
    circuit_unknown = set(circuit_data) - circuit_known
    if circuit_unknown:
        raise ConfigurationError(
            f"알 수 없는 circuit 설정 키입니다: {sorted(circuit_unknown)}")

    try:
        return MixerConfig(circuit=CircuitConfig(**circuit_data), **data)
    except TypeError as e:
        raise ConfigurationError(f"설정 값이 올바르지 않습니다: {e}") from e


def load_config(config_path: Optional[Path] = None) -> MixerConfig:
    """YAML 설정 파일을 읽는다. 파일이 없으면 기본값을 돌려준다.

    Args:
        config_path: 설정 파일 경로 (기본값: $MIXER_CONFIG 또는 config.yaml)

    Raises:
        ConfigurationError: 파일을 읽을 수 없거나, 매핑이 아니거나, 알 수 없는 키가 있을 때
    """
    if config_path is None:
        config_path = Path(os.environ.get(CONFIG_ENV_VAR, "config.yaml"))
    config_path = Path(config_path)

    if not config_path.exists():
        logger.info(f"No config file at {config_path}, using defaults")
        return MixerConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"설정 파일을 읽을 수 없습니다 {config_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigurationError(f"설정 파일 {config_path}은(는) 매핑이어야 합니다")

    config = _config_from_dict(config_data)
    logger.info(f"Loaded configuration from {config_path} (tree_depth={config.tree_depth}, "
                f"hash_backend={config.hash_backend})")
    return config


def save_config(config: MixerConfig, config_path: Optional[Path] = None):
    """설정을 YAML 파일로 저장한다."""
    if config_path is None:
        config_path = Path("config.yaml")

    config_data = asdict(config)
    for key in ("note_store_path", "log_file"):
        if config_data[key] is not None:
            config_data[key] = str(config_data[key])
    for key in ("wasm_path", "zkey_path", "verification_key_path"):
        config_data["circuit"][key] = str(config_data["circuit"][key])

    try:
        with open(config_path, 'w') as f:
            yaml.safe_dump(config_data, f, default_flow_style=False)
    except OSError as e:
        raise ConfigurationError(f"설정 파일을 저장할 수 없습니다 {config_path}: {e}") from e
