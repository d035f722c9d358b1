from __future__ import annotations

import sys

import pytest

from wif_kit.subprocess_utils import CommandError, run_command


def test_successful_command_returns_output() -> None:
    result = run_command([sys.executable, "-c", "print('ok')"], timeout=10)

    assert result.returncode == 0
    assert result.stdout.strip() == "ok"


def test_non_zero_exit_keeps_stderr_verbatim() -> None:
    """
    gcloud 상태 토큰 해석은 stderr 원문에 의존하므로, 실패 시 그대로 보관되어야 한다.
    """
    cmd = [
        sys.executable,
        "-c",
        "import sys; sys.stderr.write('ERROR: ALREADY_EXISTS: Requested entity already exists\\n'); sys.exit(1)",
    ]

    with pytest.raises(CommandError) as excinfo:
        run_command(cmd, timeout=10)

    assert excinfo.value.returncode == 1
    assert excinfo.value.stderr == "ERROR: ALREADY_EXISTS: Requested entity already exists\n"
    assert "ALREADY_EXISTS" in str(excinfo.value)


def test_missing_binary_raises_runtime_error() -> None:
    with pytest.raises(RuntimeError) as excinfo:
        run_command(["wif-kit-definitely-missing-binary"], timeout=10)

    assert not isinstance(excinfo.value, CommandError)
    assert "wif-kit-definitely-missing-binary" in str(excinfo.value)


def test_timeout_raises_runtime_error() -> None:
    cmd = [sys.executable, "-c", "import time; time.sleep(1)"]

    with pytest.raises(RuntimeError) as excinfo:
        run_command(cmd, timeout=0.01)

    assert not isinstance(excinfo.value, CommandError)
    assert "0.01" in str(excinfo.value)
