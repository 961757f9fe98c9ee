from flask import Flask, jsonify

from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from mixer.config import load_config
from mixer.hashing import HashOracle
from mixer.merkle import MerkleAccumulator
from mixer.notes import NoteManager, NoteStore
from mixer.groth16.formatting import ProofFormatter
from mixer.groth16.proving import SnarkjsProver, WithdrawProofGenerator
from mixer.groth16.verifying import VerifyingKey
from mixer.utils import setup_logging

from mixer_routes import mixer_bp, init_mixer_bp


def create_app(config=None, db=None, hasher=None, prover=None):
    """믹서 로컬 API 앱을 만든다.

    Args:
        config: MixerConfig (기본값: load_config())
        db: TinyDB (기본값: config.note_store_path, 없으면 메모리)
        hasher: HashOracle (기본값: config.hash_backend로 생성 후 setup)
        prover: 증명 백엔드 (기본값: config.circuit의 SnarkjsProver)
    """
    if config is None:
        config = load_config()
    if db is None:
        if config.note_store_path is not None:
            db = TinyDB(config.note_store_path)
        else:
            db = TinyDB(storage=MemoryStorage)
    if hasher is None:
        hasher = HashOracle(config.hash_backend)
    hasher.setup()
    if prover is None:
        prover = SnarkjsProver.from_config(config.circuit)

    tree = MerkleAccumulator(hasher, config.tree_depth, config.zero_leaf,
                             config.root_history_size).initialize()
    notes = NoteManager(hasher, NoteStore(db, namespace=config.note_namespace),
                        config.default_amount)
    formatter = ProofFormatter.from_config(config)
    generator = WithdrawProofGenerator(hasher, prover, formatter)
    verifying_key = None
    if config.circuit.verification_key_path.exists():
        verifying_key = VerifyingKey.load(config.circuit.verification_key_path)

    app = Flask(__name__)
    app.config["MIXER"] = config

    # 트리 리프 목록은 노트와 분리된 테이블에 둔다
    init_mixer_bp(db.table("mixer_tree"), notes, tree, formatter, generator,
                  verifying_key)
    app.register_blueprint(mixer_bp)

    @app.route("/")
    def main():
        return jsonify({
            "tree_depth": config.tree_depth,
            "hash_backend": hasher.backend_name,
            "g2_limb_order": formatter.g2_order.value,
        })

    return app


if __name__ == "__main__":
    config = load_config()
    setup_logging(config.log_level, config.log_file)
    create_app(config).run(debug=False)
