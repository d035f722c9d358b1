from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .models import (
    DEFAULT_GITHUB_ATTRIBUTE_MAPPING,
    GITHUB_ACTIONS_ISSUER,
    FederationBinding,
    default_github_condition,
)


ENV_FILES_DEFAULT_ORDER = [".env", ".env.wif"]


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def parse_attribute_mapping(raw: str) -> Dict[str, str]:
    """
    'k=v,k=v' 형태의 문자열을 dict 로 파싱한다.
    gcloud 와 같은 ^DELIM^ 접두어로 구분자를 바꿀 수 있다. (예: '^;^a=b;c=d')
    """
    text = raw.strip()
    delim = ","
    if text.startswith("^"):
        end = text.find("^", 1)
        if end > 1:
            delim = text[1:end]
            text = text[end + 1:]

    mapping: Dict[str, str] = {}
    for item in text.split(delim):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ValueError(f"WIF_ATTRIBUTE_MAPPING 항목 형식이 올바르지 않습니다 (key=value): {item!r}")
        key, value = item.split("=", 1)
        mapping[key.strip()] = value.strip()
    return mapping


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} 는 숫자여야 합니다: {raw!r}") from e


@dataclass
class WifConfig:
    # 필수 공통
    gcp_project_id: str
    gcp_project_number: str
    service_account_email: str
    github_repo: str

    pool_id: str = "github-pool"
    provider_id: str = "github-provider"
    github_org: Optional[str] = None
    issuer_uri: str = GITHUB_ACTIONS_ISSUER
    attribute_mapping: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_GITHUB_ATTRIBUTE_MAPPING)
    )
    attribute_condition: Optional[str] = None

    location: str = "global"
    pool_display_name: str = "GitHub Pool"
    pool_description: str = "Workload Identity Pool for GitHub Actions"

    gcloud_timeout_seconds: float = 300.0

    @classmethod
    def from_env(cls) -> "WifConfig":
        # 필수값
        missing: List[str] = []
        def req(name: str) -> str:
            val = os.getenv(name)
            if not val:
                missing.append(name)
            return val or ""

        raw_mapping = os.getenv("WIF_ATTRIBUTE_MAPPING")

        cfg = cls(
            gcp_project_id=req("GCP_PROJECT_ID"),
            gcp_project_number=req("GCP_PROJECT_NUMBER"),
            service_account_email=req("WIF_SERVICE_ACCOUNT_EMAIL"),
            github_repo=req("GITHUB_REPO"),
            pool_id=os.getenv("WIF_POOL_ID") or "github-pool",
            provider_id=os.getenv("WIF_PROVIDER_ID") or "github-provider",
            github_org=os.getenv("GITHUB_ORG") or None,
            issuer_uri=os.getenv("WIF_ISSUER_URI") or GITHUB_ACTIONS_ISSUER,
            attribute_condition=os.getenv("WIF_ATTRIBUTE_CONDITION") or None,
            location=os.getenv("WIF_LOCATION") or "global",
            pool_display_name=os.getenv("WIF_POOL_DISPLAY_NAME") or "GitHub Pool",
            pool_description=os.getenv("WIF_POOL_DESCRIPTION")
            or "Workload Identity Pool for GitHub Actions",
            gcloud_timeout_seconds=_get_float("GCLOUD_TIMEOUT_SECONDS", 300.0),
        )

        if missing:
            raise ValueError(
                "필수 환경변수가 누락되었습니다: " + ", ".join(sorted(set(missing)))
            )

        if raw_mapping:
            cfg.attribute_mapping = parse_attribute_mapping(raw_mapping)

        return cfg

    @property
    def effective_org(self) -> str:
        # GITHUB_ORG 가 없으면 GITHUB_REPO 의 owner 부분을 사용
        if self.github_org:
            return self.github_org
        return self.github_repo.split("/", 1)[0]

    @property
    def effective_condition(self) -> str:
        return self.attribute_condition or default_github_condition(self.effective_org)

    def to_binding(self) -> FederationBinding:
        return FederationBinding(
            project_id=self.gcp_project_id,
            project_number=self.gcp_project_number,
            pool_id=self.pool_id,
            provider_id=self.provider_id,
            issuer_uri=self.issuer_uri,
            attribute_mapping=dict(self.attribute_mapping),
            attribute_condition=self.effective_condition,
            service_account_email=self.service_account_email,
            allowed_principal_pattern=self.github_repo,
            location=self.location,
            pool_display_name=self.pool_display_name,
            pool_description=self.pool_description,
        )
