import os

import pytest

from wif_kit.config import WifConfig, load_env_files, parse_attribute_mapping
from wif_kit.models import DEFAULT_GITHUB_ATTRIBUTE_MAPPING, GITHUB_ACTIONS_ISSUER


_ENV_KEYS = [
    "GCP_PROJECT_ID",
    "GCP_PROJECT_NUMBER",
    "WIF_SERVICE_ACCOUNT_EMAIL",
    "GITHUB_REPO",
    "GITHUB_ORG",
    "WIF_POOL_ID",
    "WIF_PROVIDER_ID",
    "WIF_ISSUER_URI",
    "WIF_ATTRIBUTE_MAPPING",
    "WIF_ATTRIBUTE_CONDITION",
    "WIF_LOCATION",
    "GCLOUD_TIMEOUT_SECONDS",
]


def _base_env() -> dict[str, str]:
    return {
        "GCP_PROJECT_ID": "test-project",
        "GCP_PROJECT_NUMBER": "123456789012",
        "WIF_SERVICE_ACCOUNT_EMAIL": "sa@test-project.iam.gserviceaccount.com",
        "GITHUB_REPO": "my-org/my-repo",
    }


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_missing_required_env_raises_value_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    env = _base_env()

    # 필수 값 중 GCP_PROJECT_NUMBER 만 비워둔다.
    for key, value in env.items():
        if key == "GCP_PROJECT_NUMBER":
            continue
        monkeypatch.setenv(key, value)

    with pytest.raises(ValueError) as excinfo:
        WifConfig.from_env()

    assert "GCP_PROJECT_NUMBER" in str(excinfo.value)


def test_defaults_follow_github_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in _base_env().items():
        monkeypatch.setenv(key, value)

    cfg = WifConfig.from_env()
    binding = cfg.to_binding()

    assert binding.pool_id == "github-pool"
    assert binding.provider_id == "github-provider"
    assert binding.issuer_uri == GITHUB_ACTIONS_ISSUER
    assert dict(binding.attribute_mapping) == DEFAULT_GITHUB_ATTRIBUTE_MAPPING
    # GITHUB_ORG 가 없으면 GITHUB_REPO 의 owner 를 사용
    assert binding.attribute_condition == "assertion.repository_owner == 'my-org'"
    assert binding.allowed_principal_pattern == "my-org/my-repo"
    assert binding.principal_set == (
        "principalSet://iam.googleapis.com/projects/123456789012/locations/global"
        "/workloadIdentityPools/github-pool/attribute.repository/my-org/my-repo"
    )


def test_overrides_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    env = _base_env()
    env.update(
        {
            "WIF_POOL_ID": "ci-pool",
            "GITHUB_ORG": "other-org",
            "WIF_ATTRIBUTE_MAPPING": "google.subject=assertion.sub,attribute.repository=assertion.repository",
            "GCLOUD_TIMEOUT_SECONDS": "60",
        }
    )
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    cfg = WifConfig.from_env()

    assert cfg.pool_id == "ci-pool"
    assert cfg.effective_condition == "assertion.repository_owner == 'other-org'"
    assert cfg.attribute_mapping == {
        "google.subject": "assertion.sub",
        "attribute.repository": "assertion.repository",
    }
    assert cfg.gcloud_timeout_seconds == 60.0


def test_invalid_timeout_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in _base_env().items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("GCLOUD_TIMEOUT_SECONDS", "soon")

    with pytest.raises(ValueError) as excinfo:
        WifConfig.from_env()

    assert "GCLOUD_TIMEOUT_SECONDS" in str(excinfo.value)


def test_parse_attribute_mapping_alternate_delimiter() -> None:
    mapping = parse_attribute_mapping("^;^google.subject=assertion.sub;attribute.x=assertion.a + ',' + assertion.b")

    assert mapping == {
        "google.subject": "assertion.sub",
        "attribute.x": "assertion.a + ',' + assertion.b",
    }


def test_parse_attribute_mapping_rejects_item_without_equals() -> None:
    with pytest.raises(ValueError):
        parse_attribute_mapping("google.subject")


def test_load_env_files_later_file_overrides(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    # monkeypatch 가 테스트 후 원래 상태로 되돌리도록 먼저 등록해 둔다.
    monkeypatch.setenv("WIF_POOL_ID", "placeholder")
    (tmp_path / ".env").write_text("WIF_POOL_ID=from-env\n", encoding="utf-8")
    (tmp_path / ".env.wif").write_text("WIF_POOL_ID=from-wif\n", encoding="utf-8")

    load_env_files(str(tmp_path))

    assert os.environ["WIF_POOL_ID"] == "from-wif"
