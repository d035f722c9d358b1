"""
provisioner
-----------

FederationBinding 을 받아 Pool -> OIDC Provider -> 서비스 계정 바인딩 순서로
리소스를 보장(ensure)하는 모듈.

- 각 단계는 먼저 생성을 시도하고, AlreadyExists 만 성공으로 흡수한다.
- 그 외 오류는 그대로 전파하고 남은 단계는 실행하지 않는다. (롤백 없음)
- 모든 단계가 멱등하므로 실패 시에는 처음부터 다시 실행하면 된다.
"""

from __future__ import annotations

from typing import Callable, List, Protocol

from google.api_core.exceptions import AlreadyExists

from .logging_utils import get_logger
from .models import ApplyOutcome, FederationBinding, ProvisioningResult, StepResult
from .validation import validate_binding


logger = get_logger(__name__)


STEP_POOL = "pool"
STEP_PROVIDER = "provider"
STEP_BINDING = "service_account_binding"


class IamBackend(Protocol):
    def create_pool(self, binding: FederationBinding) -> None: ...

    def create_oidc_provider(self, binding: FederationBinding) -> None: ...

    def add_workload_identity_user(self, binding: FederationBinding) -> None: ...


def apply_step(name: str, action: Callable[[], None]) -> ApplyOutcome:
    """
    생성 한 단계를 실행하고 결과를 ApplyOutcome 으로 접는다.
    AlreadyExists 이외의 예외는 잡지 않는다.
    """
    try:
        action()
    except AlreadyExists:
        logger.info("이미 존재하여 건너뜁니다: %s", name)
        return ApplyOutcome.ALREADY_EXISTS
    logger.info("생성 완료: %s", name)
    return ApplyOutcome.CREATED


class Provisioner:
    def __init__(self, backend: IamBackend) -> None:
        self._backend = backend

    def ensure(self, binding: FederationBinding) -> ProvisioningResult:
        validate_binding(binding)

        logger.info(
            "Workload Identity Federation 설정 시작: project=%s pool=%s provider=%s",
            binding.project_id,
            binding.pool_id,
            binding.provider_id,
        )

        steps = [
            (STEP_POOL, binding.pool_name, self._backend.create_pool),
            (STEP_PROVIDER, binding.provider_name, self._backend.create_oidc_provider),
            (STEP_BINDING, binding.service_account_email, self._backend.add_workload_identity_user),
        ]

        results: List[StepResult] = []
        for name, resource, create in steps:
            outcome = apply_step(name, lambda create=create: create(binding))
            results.append(StepResult(step=name, outcome=outcome, resource=resource))

        return ProvisioningResult(
            provider_resource_name=binding.provider_name,
            service_account_email=binding.service_account_email,
            project_id=binding.project_id,
            steps=tuple(results),
        )
