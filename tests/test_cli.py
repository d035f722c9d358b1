from __future__ import annotations

import json
import os

import pytest
from click.testing import CliRunner

from wif_kit import cli
from wif_kit.models import ProvisioningResult


_ENV = {
    "GCP_PROJECT_ID": "test-project",
    "GCP_PROJECT_NUMBER": "123456789012",
    "WIF_SERVICE_ACCOUNT_EMAIL": "sa@test-project.iam.gserviceaccount.com",
    "GITHUB_REPO": "my-org/my-repo",
}


@pytest.fixture(autouse=True)
def _env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in _ENV.items():
        monkeypatch.setenv(key, value)


def test_plan_command(tmp_path) -> None:
    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "plan"])

    assert result.exit_code == 0, result.output
    assert "# Workload Identity Federation plan" in result.output


def test_plan_fails_on_missing_config(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_REPO")

    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "plan"])

    assert result.exit_code == 1
    assert "GITHUB_REPO" in result.output


def test_apply_json_outputs_only_ci_secrets(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    expected = ProvisioningResult(
        provider_resource_name="projects/123456789012/locations/global/workloadIdentityPools/github-pool/providers/github-provider",
        service_account_email="sa@test-project.iam.gserviceaccount.com",
        project_id="test-project",
    )
    monkeypatch.setattr(cli, "apply_all", lambda cfg: ("summary", expected))

    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "apply", "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == expected.as_ci_secrets()


def test_apply_failure_exits_with_error(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(cfg):  # noqa: ANN001, ANN202
        raise RuntimeError("boom")

    monkeypatch.setattr(cli, "apply_all", boom)

    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "apply"])

    assert result.exit_code == 1
    assert "[ERROR] 설정 실패: boom" in result.output


def test_check_exit_code_follows_issues(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "check_all", lambda cfg, show_all: ("report", True))

    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "check"])

    assert result.exit_code == 1
    assert "report" in result.output


def test_init_copies_template(tmp_path) -> None:
    runner = CliRunner()

    first = runner.invoke(cli.main, ["-C", str(tmp_path), "init"])
    second = runner.invoke(cli.main, ["-C", str(tmp_path), "init"])

    assert first.exit_code == 0, first.output
    assert os.path.exists(tmp_path / "env.wif.example")
    assert "이미 존재" in second.output
