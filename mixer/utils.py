"""로깅, 시간 측정 헬퍼"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None):
    """루트 로거를 설정한다. log_file을 주면 파일에도 기록한다.

    Args:
        log_level: "DEBUG", "INFO", ...
        log_file: 로그 파일 경로 (선택)
    """
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    # 기존 핸들러 제거 (중복 출력 방지)
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        handlers=handlers,
    )

    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized at {log_level.upper()}"
                + (f", log file: {log_file}" if log_file else ""))
    return logger


@contextmanager
def timed(logger, operation):
    """작업 소요 시간을 DEBUG 레벨로 남긴다."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.debug(f"{operation} took {time.perf_counter() - start:.3f}s")
