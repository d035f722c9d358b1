"""
models
------

Workload Identity Federation 리소스를 선언적으로 표현하는 데이터 모델.
"""

from __future__ import annotations

import enum
import types
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple


GITHUB_ACTIONS_ISSUER = "https://token.actions.githubusercontent.com"
WORKLOAD_IDENTITY_USER_ROLE = "roles/iam.workloadIdentityUser"

DEFAULT_GITHUB_ATTRIBUTE_MAPPING: Dict[str, str] = {
    "google.subject": "assertion.sub",
    "attribute.actor": "assertion.actor",
    "attribute.repository": "assertion.repository",
    "attribute.repository_owner": "assertion.repository_owner",
}


def default_github_condition(owner: str) -> str:
    return f"assertion.repository_owner == '{owner}'"


@dataclass(frozen=True)
class FederationBinding:
    """
    Pool / OIDC Provider / 서비스 계정 바인딩 한 세트에 대한 선언.

    환경마다 한 번 생성되고, 변경은 ensure 재적용으로만 반영한다.
    """

    project_id: str
    project_number: str
    pool_id: str
    provider_id: str
    issuer_uri: str
    # 읽기 전용 매핑으로 보관하며 hash 에서는 제외한다.
    attribute_mapping: Mapping[str, str] = field(hash=False)
    attribute_condition: str
    service_account_email: str
    allowed_principal_pattern: str

    location: str = "global"
    principal_attribute: str = "repository"
    pool_display_name: str = "GitHub Pool"
    pool_description: str = "Workload Identity Pool for GitHub Actions"
    provider_display_name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "attribute_mapping",
            types.MappingProxyType(dict(self.attribute_mapping or {})),
        )

    @property
    def pool_name(self) -> str:
        return (
            f"projects/{self.project_number}/locations/{self.location}"
            f"/workloadIdentityPools/{self.pool_id}"
        )

    @property
    def provider_name(self) -> str:
        return f"{self.pool_name}/providers/{self.provider_id}"

    @property
    def principal_set(self) -> str:
        return (
            f"principalSet://iam.googleapis.com/{self.pool_name}"
            f"/attribute.{self.principal_attribute}/{self.allowed_principal_pattern}"
        )


class ApplyOutcome(str, enum.Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class StepResult:
    step: str
    outcome: ApplyOutcome
    resource: str


@dataclass(frozen=True)
class ProvisioningResult:
    """
    다운스트림(CI 시크릿 저장소)에 넘길 식별자 묶음.

    steps 는 리포트용이며 비교 대상에서 제외한다.
    (같은 binding 에 대한 두 번째 ensure 도 같은 결과로 취급해야 하므로)
    """

    provider_resource_name: str
    service_account_email: str
    project_id: str
    steps: Tuple[StepResult, ...] = field(default=(), compare=False)

    def as_ci_secrets(self) -> Dict[str, str]:
        return {
            "WIF_PROVIDER": self.provider_resource_name,
            "WIF_SERVICE_ACCOUNT": self.service_account_email,
            "GCP_PROJECT_ID": self.project_id,
        }
