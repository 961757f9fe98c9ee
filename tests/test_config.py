"""
Configuration tests: config.py, utils.py
"""
import logging
from pathlib import Path

import pytest

from mixer.config import MixerConfig, CircuitConfig, load_config, save_config, CONFIG_ENV_VAR
from mixer.errors import ConfigurationError
from mixer.utils import timed


class TestMixerConfig:
    def test_defaults(self):
        config = MixerConfig()
        assert config.tree_depth == 20
        assert config.zero_leaf == 0
        assert config.root_history_size == 100
        assert config.hash_backend == "poseidon"
        assert config.g2_limb_order == "swapped"
        assert config.negate_proof_a is True
        assert config.note_namespace == "mixer_notes"
        assert config.default_amount == 100_000_000
        assert config.circuit.wasm_path == Path("circuits/withdraw.wasm")
        assert config.circuit.zkey_path == Path("circuits/withdraw_final.zkey")

    @pytest.mark.parametrize("kwargs", [
        {"tree_depth": 0},
        {"tree_depth": 64},
        {"hash_backend": "keccak"},
        {"g2_limb_order": "reversed"},
        {"root_history_size": 0},
        {"default_amount": -1},
        {"note_namespace": ""},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            MixerConfig(**kwargs)

    def test_paths_are_coerced(self):
        config = MixerConfig(note_store_path="x.json", circuit=CircuitConfig(wasm_path="a.wasm"))
        assert config.note_store_path == Path("x.json")
        assert config.circuit.wasm_path == Path("a.wasm")


class TestLoadSave:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "missing.yaml") == MixerConfig()

    def test_roundtrip(self, tmp_path):
        path = tmp_path / "config.yaml"
        config = MixerConfig(tree_depth=16, hash_backend="sha256", log_file=tmp_path / "m.log",
                             circuit=CircuitConfig(proof_timeout=30))
        save_config(config, path)
        assert load_config(path) == config

    def test_partial_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("tree_depth: 10\ncircuit:\n  snarkjs_bin: /usr/bin/snarkjs\n")
        config = load_config(path)
        assert config.tree_depth == 10
        assert config.circuit.snarkjs_bin == "/usr/bin/snarkjs"
        assert config.hash_backend == "poseidon"

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("tree_depth: 12\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config().tree_depth == 12

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == MixerConfig()

    @pytest.mark.parametrize("text", [
        "tree_depth: [1, 2\n",
        "- 1\n- 2\n",
        "unknown_key: 1\n",
        "circuit:\n  bogus: 1\n",
        "tree_depth: 99\n",
    ])
    def test_invalid_file(self, tmp_path, text):
        path = tmp_path / "config.yaml"
        path.write_text(text)
        with pytest.raises(ConfigurationError):
            load_config(path)


class TestTimed:
    def test_logs_duration(self, caplog):
        logger = logging.getLogger("mixer.test")
        with caplog.at_level(logging.DEBUG, logger="mixer.test"):
            with timed(logger, "work"):
                pass
        assert any("work took" in r.getMessage() for r in caplog.records)
