import logging
import sys


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(verbosity: int = 0, quiet: bool = False) -> None:
    level = logging.INFO
    if verbosity >= 1:
        level = logging.DEBUG
    elif quiet:
        # --json 출력 등 stdout 을 기계가 읽는 경우 로그를 줄인다.
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stderr if quiet else sys.stdout,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
