from __future__ import annotations

from typing import List, Optional, Tuple

from google.api_core.exceptions import GoogleAPICallError, NotFound

from .config import WifConfig
from .gcloud_iam import GcloudIamClient
from .logging_utils import get_logger
from .models import WORKLOAD_IDENTITY_USER_ROLE, ApplyOutcome, ProvisioningResult
from .provisioner import Provisioner
from .validation import BindingValidationError, policy_warnings, validate_binding


logger = get_logger(__name__)


def _default_client(cfg: WifConfig) -> GcloudIamClient:
    return GcloudIamClient(timeout=cfg.gcloud_timeout_seconds)


def github_secrets_url(repo: str) -> str:
    return f"https://github.com/{repo}/settings/secrets/actions"


def plan_all(cfg: WifConfig) -> str:
    """
    현재 설정으로 어떤 리소스가 어떤 순서로 생성되는지 요약 텍스트를 리턴한다.
    실제 GCP 호출은 하지 않는다.
    """
    binding = cfg.to_binding()

    lines: List[str] = []
    lines.append("# Workload Identity Federation plan")
    lines.append(f"- project: {binding.project_id} ({binding.project_number})")
    lines.append(f"- repository: {cfg.github_repo}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- pool_id: {binding.pool_id}")
    lines.append(f"- provider_id: {binding.provider_id}")
    lines.append(f"- location: {binding.location}")
    lines.append(f"- issuer_uri: {binding.issuer_uri}")
    for key, expr in binding.attribute_mapping.items():
        lines.append(f"- mapping: {key}={expr}")
    lines.append(f"- attribute_condition: {binding.attribute_condition}")
    lines.append(f"- service_account: {binding.service_account_email}")
    lines.append("")

    lines.append("## Steps")
    lines.append(f"1. pool: {binding.pool_name}")
    lines.append(f"2. provider: {binding.provider_name}")
    lines.append(
        f"3. service_account_binding: {WORKLOAD_IDENTITY_USER_ROLE} -> {binding.principal_set}"
    )
    lines.append("")

    lines.append("## Validation")
    try:
        validate_binding(binding)
        lines.append("- OK")
    except BindingValidationError as e:
        for p in e.problems:
            lines.append(f"- ERROR: {p}")

    warnings = policy_warnings(binding)
    if warnings:
        lines.append("")
        lines.append("## Policy warnings")
        for w in warnings:
            lines.append(f"- {w}")

    return "\n".join(lines)


def format_ci_secrets(result: ProvisioningResult, repo: str) -> str:
    lines: List[str] = []
    lines.append("## GitHub secrets")
    lines.append(f"- Repository: {github_secrets_url(repo)}")
    lines.append("")
    for name, value in result.as_ci_secrets().items():
        lines.append(f"{name}:")
        lines.append(value)
        lines.append("")
    return "\n".join(lines).rstrip()


def apply_all(
    cfg: WifConfig, provisioner: Optional[Provisioner] = None
) -> Tuple[str, ProvisioningResult]:
    """
    Pool / Provider / 바인딩을 실제로 생성하고 요약과 결과를 리턴한다.

    오류는 잡지 않고 그대로 전파한다. (중간 단계부터 재개하지 않고 전체 재실행)
    """
    binding = cfg.to_binding()
    for w in policy_warnings(binding):
        logger.warning("정책 경고: %s", w)

    prov = provisioner or Provisioner(_default_client(cfg))
    result = prov.ensure(binding)

    lines: List[str] = []
    lines.append("# Workload Identity Federation summary")
    lines.append(f"- project: {result.project_id}")
    lines.append("")

    lines.append("## Steps")
    for step in result.steps:
        status = "CREATED" if step.outcome is ApplyOutcome.CREATED else "ALREADY EXISTS"
        lines.append(f"- {step.step}: {status} ({step.resource})")
    lines.append("")

    lines.append(format_ci_secrets(result, cfg.github_repo))

    return "\n".join(lines), result


def _binding_present(policy: dict, member: str) -> bool:
    for b in policy.get("bindings") or []:
        if b.get("role") == WORKLOAD_IDENTITY_USER_ROLE and member in (b.get("members") or []):
            return True
    return False


def check_all(
    cfg: WifConfig,
    show_all: bool = False,
    client: Optional[GcloudIamClient] = None,
) -> Tuple[str, bool]:
    """
    실제 리소스 생성 없이 Pool / Provider / 바인딩 상태를 점검한다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: 크리티컬 이슈 또는 경고가 있는지 여부
    """
    binding = cfg.to_binding()
    iam = client or _default_client(cfg)

    lines: List[str] = []
    critical: List[str] = []
    warnings: List[str] = []

    lines.append("# Workload Identity Federation pre-check")
    lines.append(f"- project: {binding.project_id} ({binding.project_number})")
    lines.append("")

    # 1) 설정 검증
    lines.append("## Config")
    try:
        validate_binding(binding)
        if show_all:
            lines.append("- Config: 검증 통과")
    except BindingValidationError as e:
        for p in e.problems:
            msg = f"Config: {p}"
            if show_all:
                lines.append(f"- {msg}")
            critical.append(msg)
    for w in policy_warnings(binding):
        msg = f"Policy: {w}"
        if show_all:
            lines.append(f"- {msg}")
        warnings.append(msg)
    lines.append("")

    # 2) Pool
    lines.append("## Workload Identity Pool")
    try:
        pool = iam.describe_pool(binding)
        state = pool.get("state", "ACTIVE")
        if state == "DELETED":
            msg = f"Pool: 삭제된 상태입니다 (undelete 필요) ({binding.pool_name})"
            critical.append(msg)
        else:
            msg = f"Pool: 존재함 ({binding.pool_name})"
    except NotFound:
        msg = f"Pool: 없음 (생성이 필요함) ({binding.pool_name})"
        warnings.append(msg)
    except (GoogleAPICallError, RuntimeError) as e:
        msg = f"Pool: 조회 실패: {e}"
        critical.append(msg)
    if show_all:
        lines.append(f"- {msg}")
    lines.append("")

    # 3) Provider
    lines.append("## OIDC Provider")
    try:
        provider = iam.describe_provider(binding)
        issuer = (provider.get("oidc") or {}).get("issuerUri")
        msg = f"Provider: 존재함 ({binding.provider_name})"
        if provider.get("state") == "DELETED":
            msg = f"Provider: 삭제된 상태입니다 (undelete 필요) ({binding.provider_name})"
            critical.append(msg)
        elif issuer and issuer != binding.issuer_uri:
            # 기존 provider 는 create 로 갱신되지 않으므로 수동 수정이 필요
            msg = f"Provider: issuer 불일치 ({issuer} != {binding.issuer_uri})"
            critical.append(msg)
    except NotFound:
        msg = f"Provider: 없음 (생성이 필요함) ({binding.provider_name})"
        warnings.append(msg)
    except (GoogleAPICallError, RuntimeError) as e:
        msg = f"Provider: 조회 실패: {e}"
        critical.append(msg)
    if show_all:
        lines.append(f"- {msg}")
    lines.append("")

    # 4) 서비스 계정 바인딩
    lines.append("## Service account binding")
    try:
        policy = iam.get_service_account_policy(binding)
        if _binding_present(policy, binding.principal_set):
            msg = f"Binding: 존재함 ({binding.service_account_email})"
        else:
            msg = f"Binding: 없음 (추가가 필요함) ({binding.principal_set})"
            warnings.append(msg)
    except NotFound:
        msg = f"Binding: 서비스 계정 없음 ({binding.service_account_email})"
        critical.append(msg)
    except (GoogleAPICallError, RuntimeError) as e:
        msg = f"Binding: 조회 실패: {e}"
        critical.append(msg)
    if show_all:
        lines.append(f"- {msg}")
    lines.append("")

    # Summary
    lines.append("## Summary")
    if critical:
        lines.append("- 상태: 크리티컬 이슈가 있습니다. apply 전에 반드시 해결해야 합니다.")
    elif warnings:
        lines.append("- 상태: 경고가 있습니다. apply 시 일부 리소스가 새로 생성됩니다.")
    else:
        lines.append("- 상태: 주요 이슈 없음 (설정 완료 상태로 보입니다)")

    if show_all or critical:
        lines.append("")
        lines.append("### Critical issues")
        if critical:
            for i in critical:
                lines.append(f"- {i}")
        else:
            lines.append("- (none)")

    if show_all or warnings:
        lines.append("")
        lines.append("### Warnings")
        if warnings:
            for i in warnings:
                lines.append(f"- {i}")
        else:
            lines.append("- (none)")

    if not show_all:
        lines.append("")
        lines.append("자세한 상태를 보려면 `setup-wif check -a` 를 실행하세요.")

    return "\n".join(lines), bool(critical or warnings)
