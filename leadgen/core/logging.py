"""로깅 설정

API 프로세스와 Celery 워커가 같은 `leadgen` 로거를 씁니다.
워커는 worker_hijack_root_logger=False 이므로 여기 설정이 그대로 유지됩니다.
"""
import logging
import sys

from leadgen.core.config import settings


IS_PRODUCTION = settings.environment.lower() == "production"

_PRODUCTION_FORMAT = "%(asctime)s - %(levelname)s - %(processName)s - %(message)s"
_DEVELOPMENT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"


def setup_logging() -> logging.Logger:
    """`leadgen` 로거 초기화 (중복 핸들러 방지)"""
    logger = logging.getLogger("leadgen")

    level_name = settings.log_level.upper()
    if IS_PRODUCTION and level_name == "DEBUG":
        level_name = "INFO"
    level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(
            logging.Formatter(
                fmt=_PRODUCTION_FORMAT if IS_PRODUCTION else _DEVELOPMENT_FORMAT,
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(handler)

    # 요청 단위로 INFO 를 남기는 라이브러리는 WARNING 이상만
    for name in settings.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


logger = setup_logging()


def mask_secret(value: str, visible: int = 6) -> str:
    """API 키 등 비밀값은 끝자리만 남기고 마스킹"""
    if not value:
        return "[empty]"
    if len(value) <= visible:
        return "***"
    return f"***{value[-visible:]}"
