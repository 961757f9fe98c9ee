"""
노트 관리자 (Note Manager)
===========================

노트는 입금자가 보관해야 하는 비밀 자료이다.

  Note = {nullifier, secret, commitment, amount, created_at}

  - nullifier, secret: [0, P)에서 독립적으로 균등하게 뽑은 비밀값
  - commitment = hash2(nullifier, secret): 머클 트리에 들어가는 리프
  - nullifier_hash = hash1(nullifier): 출금 시 공개하여 이중 출금을 막는 값

**불변식**:
  commitment == hash2(nullifier, secret).
  이 검사를 통과하지 못한 노트는 절대 출금 증명 단계로 넘어가서는 안 된다.

**수명 주기**:
  generate() → (온체인 입금 확인) → persist() → (출금 성공) → remove()
  그 외에는 변경되지 않는다 (frozen dataclass).

**노트 문자열** (사용자가 백업하는 형식):
  "<nullifier>-<secret>-<amount>"   (10진수)

  예: "5-9-1000" → {nullifier: 5, secret: 9, amount: 1000, commitment: hash2(5, 9)}

**저장소**:
  TinyDB 테이블 하나(고정 네임스페이스 "mixer_notes")에 레코드 목록으로 저장한다.
  어떤 스토리지를 쓸지(JSON 파일, 메모리 등)는 호출자가 정한다.
"""

import json
import logging
import secrets
import time
from dataclasses import dataclass, field

from tinydb import TinyDB, Query
from tinydb.storages import MemoryStorage

from mixer.errors import DecodeError, ParseError, ValidationError
from mixer.field import FIELD_MODULUS, to_bytes32

logger = logging.getLogger(__name__)

NOTE_NAMESPACE = "mixer_notes"
NOTE_DELIMITER = "-"
DEFAULT_AMOUNT = 100_000_000

NOTE = Query()


def now_ms():
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Note:
    """한 건의 입금에 대한 비밀 자료.

    created_at은 동등성 비교에서 제외된다. 같은 노트 문자열을 다시 파싱한
    결과는 원래 노트와 같아야 하기 때문이다.
    """
    nullifier: int
    secret: int
    commitment: int
    amount: int
    created_at: int = field(default_factory=now_ms, compare=False)

    def commitment_bytes(self):
        """온체인 입금 명령에 넣을 32바이트 커밋먼트"""
        return to_bytes32(self.commitment)

    def to_record(self):
        """저장/내보내기용 레코드. 필드 원소는 10진 문자열로 둔다."""
        return {
            "nullifier": str(self.nullifier),
            "secret": str(self.secret),
            "commitment": str(self.commitment),
            "amount": self.amount,
            "timestamp": self.created_at,
        }

    @classmethod
    def from_record(cls, record):
        """to_record()의 역변환. 형태만 검사하고 커밋먼트 검증은 하지 않는다.

        Raises:
            ParseError: 키가 없거나 값이 정수가 아님
        """
        if not isinstance(record, dict):
            raise ParseError(f"노트 레코드는 객체여야 합니다: {type(record).__name__}")
        try:
            return cls(
                nullifier=_parse_int(record["nullifier"], "nullifier", FIELD_MODULUS),
                secret=_parse_int(record["secret"], "secret", FIELD_MODULUS),
                commitment=_parse_int(record["commitment"], "commitment", FIELD_MODULUS),
                amount=_parse_int(record["amount"], "amount"),
                created_at=_parse_int(record.get("timestamp", now_ms()), "timestamp"),
            )
        except KeyError as e:
            raise ParseError(f"노트 레코드에 {e.args[0]!r} 항목이 없습니다") from None

    def __repr__(self):
        # 비밀값은 repr에 노출하지 않는다
        return f"Note(commitment={self.commitment}, amount={self.amount}, created_at={self.created_at})"


def _parse_int(value, name, bound=None):
    """음이 아닌 정수 파싱. 10진수 또는 0x 16진수만 허용하고 강제 변환은 하지 않는다."""
    if isinstance(value, bool):
        raise ParseError(f"{name}이(가) 정수가 아닙니다: {value!r}")
    if isinstance(value, int):
        v = value
    elif isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x") and len(text) > 2 and all(
                c in "0123456789abcdefABCDEF" for c in text[2:]):
            v = int(text, 16)
        elif text.isascii() and text.isdigit():
            v = int(text, 10)
        else:
            raise ParseError(f"{name}이(가) 올바른 정수가 아닙니다: {value!r}")
    else:
        raise ParseError(f"{name}이(가) 정수가 아닙니다: {value!r}")

    if v < 0:
        raise ParseError(f"{name}은(는) 음수일 수 없습니다: {v}")
    if bound is not None and v >= bound:
        raise ParseError(f"{name}이(가) 유효한 필드 원소가 아닙니다 (≥ P)")
    return v


class NoteStore:
    """TinyDB 테이블 위의 노트 저장소.

    db를 주지 않으면 path의 JSON 파일을, path도 없으면 메모리 스토리지를 쓴다.
    """

    def __init__(self, db=None, path=None, namespace=NOTE_NAMESPACE):
        if db is None:
            db = TinyDB(path) if path is not None else TinyDB(storage=MemoryStorage)
        self.db = db
        self.namespace = namespace
        self.table = db.table(namespace)

    def put(self, record):
        self.table.upsert(record, NOTE.commitment == record["commitment"])

    def all(self):
        return [dict(doc) for doc in self.table.all()]

    def get(self, commitment):
        docs = self.table.search(NOTE.commitment == str(commitment))
        return dict(docs[0]) if docs else None

    def delete(self, commitment):
        removed = self.table.remove(NOTE.commitment == str(commitment))
        return len(removed) > 0

    def replace_all(self, records):
        self.table.truncate()
        if records:
            self.table.insert_multiple(records)

    def clear(self):
        self.table.truncate()


class NoteManager:
    """노트 생성, 직렬화, 파싱, 검증, 보관.

    속성:
        hasher: setup()이 끝난 HashOracle
        store: NoteStore
        default_amount: generate()의 기본 금액 (원자 단위)
    """

    def __init__(self, hasher, store=None, default_amount=DEFAULT_AMOUNT):
        self.hasher = hasher
        self.store = store if store is not None else NoteStore()
        self.default_amount = default_amount

    # ─── 생성 ───

    def make_note(self, nullifier, secret, amount, created_at=None):
        """주어진 비밀값으로 노트를 만들고 커밋먼트를 계산한다."""
        commitment = self.hasher.hash2(nullifier, secret)
        if created_at is None:
            created_at = now_ms()
        return Note(nullifier, secret, commitment, amount, created_at)

    def generate(self, amount=None):
        """새 노트를 만든다.

        nullifier와 secret은 암호학적으로 안전한 난수원(secrets)에서
        [0, P) 범위로 독립적으로 뽑는다. persist()를 호출하기 전에는 부수 효과가 없다.

        Args:
            amount: 금액 (기본값: default_amount)

        Returns:
            Note
        """
        if amount is None:
            amount = self.default_amount
        amount = _parse_int(amount, "amount")
        nullifier = secrets.randbelow(FIELD_MODULUS)
        secret = secrets.randbelow(FIELD_MODULUS)
        note = self.make_note(nullifier, secret, amount)
        logger.info(f"Generated note (amount={amount})")
        return note

    # ─── 직렬화 ───

    def serialize(self, note):
        """노트 → "<nullifier>-<secret>-<amount>" (10진수)"""
        return NOTE_DELIMITER.join((str(note.nullifier), str(note.secret), str(note.amount)))

    def parse(self, text):
        """노트 문자열을 파싱하고 커밋먼트를 다시 계산한다.

        Args:
            text: "<nullifier>-<secret>-<amount>"

        Returns:
            Note

        Raises:
            ParseError: 부분 개수가 3이 아니거나, 정수가 아닌 부분이 있거나,
                        nullifier/secret이 유효한 필드 원소가 아닐 때

        예시:
            >>> manager.parse("5-9-1000")
            >>> manager.parse("5-9")          # ParseError
        """
        if not isinstance(text, str):
            raise ParseError("노트는 문자열이어야 합니다")
        parts = text.strip().split(NOTE_DELIMITER)
        if len(parts) != 3:
            raise ParseError(
                f"노트 형식이 잘못되었습니다: nullifier-secret-amount 세 부분이 필요하지만 "
                f"{len(parts)}개입니다")

        nullifier = _parse_int(parts[0], "nullifier", FIELD_MODULUS)
        secret = _parse_int(parts[1], "secret", FIELD_MODULUS)
        amount = _parse_int(parts[2], "amount")
        return self.make_note(nullifier, secret, amount)

    # ─── 검증 ───

    def validate(self, note):
        """hash2(nullifier, secret) == commitment 인지 확인한다."""
        try:
            return self.hasher.hash2(note.nullifier, note.secret) == note.commitment
        except DecodeError:
            return False

    def require_valid(self, note):
        """출금 전 관문. 검증에 실패하면 출금 시도 전체를 중단시킨다.

        Raises:
            ValidationError: 노트의 비밀값이 커밋먼트와 일치하지 않음
        """
        if not self.validate(note):
            raise ValidationError(
                "노트의 nullifier/secret이 커밋먼트와 일치하지 않습니다. "
                "노트가 손상되었거나 수정되었습니다.")
        return note

    def nullifier_hash(self, note):
        """출금 시 공개되는 nullifier 해시: hash1(nullifier)"""
        return self.hasher.hash1(note.nullifier)

    # ─── 보관 ───

    def persist(self, note):
        """노트를 저장소에 기록한다. 같은 커밋먼트는 덮어쓴다."""
        self.require_valid(note)
        self.store.put(note.to_record())
        logger.info(f"Persisted note (commitment={note.commitment})")

    def list_notes(self):
        return [Note.from_record(r) for r in self.store.all()]

    def find(self, commitment):
        record = self.store.get(commitment)
        return Note.from_record(record) if record is not None else None

    def remove(self, note_or_commitment):
        commitment = getattr(note_or_commitment, "commitment", note_or_commitment)
        removed = self.store.delete(commitment)
        if removed:
            logger.info(f"Removed note (commitment={commitment})")
        return removed

    def clear(self):
        self.store.clear()

    def export_notes(self):
        """저장된 전체 노트 목록을 레코드 리스트로 돌려준다."""
        return self.store.all()

    @staticmethod
    def load_records(records):
        """가져오기 입력(리스트 또는 리스트의 JSON 문자열)을 리스트로 만든다.

        Raises:
            ParseError: 입력이 리스트(또는 리스트 JSON)가 아닐 때
        """
        if isinstance(records, str):
            try:
                records = json.loads(records)
            except json.JSONDecodeError as e:
                raise ParseError(f"노트 목록 JSON을 해석할 수 없습니다: {e}") from e
        if not isinstance(records, list):
            raise ParseError("노트 목록은 리스트여야 합니다")
        return records

    def import_notes(self, records):
        """레코드 리스트(또는 그 JSON 문자열)로 저장된 노트 집합을 교체한다.

        최선 노력(best-effort) 정책: 형태가 잘못되었거나 validate()를 통과하지 못한
        레코드는 보고 없이 버린다. 엄격한 처리가 필요하면 가져오기 전에 직접 검증해야 한다.
        같은 커밋먼트가 여러 번 나오면 처음 것만 남긴다 (persist()의 upsert와 같은 키).

        Returns:
            list[Note]: 실제로 저장된 노트

        Raises:
            ParseError: 입력이 리스트(또는 리스트 JSON)가 아닐 때
        """
        records = self.load_records(records)

        imported = []
        seen = set()
        for record in records:
            try:
                note = Note.from_record(record)
            except ParseError:
                continue
            if note.commitment in seen or not self.validate(note):
                continue
            seen.add(note.commitment)
            imported.append(note)

        self.store.replace_all([n.to_record() for n in imported])
        dropped = len(records) - len(imported)
        if dropped:
            logger.warning(f"Dropped {dropped} invalid or duplicate note record(s) on import")
        logger.info(f"Imported {len(imported)} note(s)")
        return imported
