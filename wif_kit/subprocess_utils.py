from __future__ import annotations

import subprocess
from dataclasses import dataclass
from textwrap import shorten
from typing import Mapping, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """
    명령이 0 이 아닌 exit code 로 끝났을 때의 예외.

    호출 측에서 stderr 를 해석(gcloud 상태 코드 등)할 수 있도록 원문을 보관한다.
    """

    def __init__(self, cmd: Sequence[str], returncode: int, stdout: str, stderr: str) -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

        detail = ""
        if stderr.strip():
            detail = "\nstderr:\n" + shorten(stderr.strip(), width=2000)
        elif stdout.strip():
            detail = "\nstdout:\n" + shorten(stdout.strip(), width=2000)
        super().__init__(f"명령 실행 실패: {' '.join(self.cmd)} (exit={returncode}){detail}")


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = 300.0,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stdout/stderr 를 캡처하고 DEBUG 로그로 남긴다.
    - 실패 시 CommandError, 명령 미설치/timeout 은 RuntimeError 로 래핑한다.
    """
    logger.info("명령 실행: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            list(cmd),
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise RuntimeError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud CLI 가 설치되어 있는지 확인하세요)"
        ) from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(
            f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}"
        ) from e

    stdout = result.stdout or ""
    stderr = result.stderr or ""
    if stdout:
        logger.debug("명령 stdout: %s", shorten(stdout.strip(), width=2000))
    if stderr:
        logger.debug("명령 stderr: %s", shorten(stderr.strip(), width=2000))

    if result.returncode != 0:
        raise CommandError(cmd, result.returncode, stdout, stderr)

    return RunResult(returncode=result.returncode, stdout=stdout, stderr=stderr)
