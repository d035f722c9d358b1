"""
gcloud_iam
----------

gcloud CLI 로 Workload Identity Pool / Provider / 서비스 계정 IAM 바인딩을
생성하거나 조회하는 모듈.

gcloud 실패는 stderr 의 상태 코드(ALREADY_EXISTS, PERMISSION_DENIED ...)를 읽어
google.api_core.exceptions 의 타입으로 바꿔서 던진다.
호출 측은 메시지 문자열이 아니라 예외 타입으로 분기하면 된다.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Type

from google.api_core import exceptions

from .logging_utils import get_logger
from .models import WORKLOAD_IDENTITY_USER_ROLE, FederationBinding
from .subprocess_utils import CommandError, RunResult, run_command


logger = get_logger(__name__)


Runner = Callable[..., RunResult]

_STATUS_EXCEPTIONS: Dict[str, Type[exceptions.GoogleAPICallError]] = {
    "ALREADY_EXISTS": exceptions.AlreadyExists,
    "PERMISSION_DENIED": exceptions.PermissionDenied,
    "NOT_FOUND": exceptions.NotFound,
    "INVALID_ARGUMENT": exceptions.InvalidArgument,
    "FAILED_PRECONDITION": exceptions.FailedPrecondition,
    "UNAUTHENTICATED": exceptions.Unauthenticated,
    "RESOURCE_EXHAUSTED": exceptions.ResourceExhausted,
    "ABORTED": exceptions.Aborted,
    "UNAVAILABLE": exceptions.ServiceUnavailable,
    "DEADLINE_EXCEEDED": exceptions.DeadlineExceeded,
    "INTERNAL": exceptions.InternalServerError,
}

_STATUS_RE = re.compile(r"\b(" + "|".join(_STATUS_EXCEPTIONS) + r")\b")
_HTTP_CODE_RE = re.compile(r"(?:code=|'status': '|HTTPError )(\d{3})\b")
_CONFLICT_RE = re.compile(r"is the subject of a conflict")

# gcloud 가 리스트 인자를 쉼표로 자르므로, 값에 쉼표가 있으면 다른 구분자를 쓴다.
# (gcloud topic escaping 의 ^DELIM^ 문법)
_ALT_DELIMITERS = (";", "|", "#", "~")


def to_api_error(err: CommandError) -> exceptions.GoogleAPICallError:
    """
    gcloud 실패(CommandError)를 google.api_core 예외로 변환한다.
    원래 stderr 는 메시지에 그대로 남긴다.

    판단 순서: 상태 토큰(ALREADY_EXISTS ...) > HTTP 코드 > gcloud 의 conflict 문구.
    상태 토큰 없이 409 만 오는 경우는 create 호출의 충돌이므로 AlreadyExists 로 본다.
    (동시 수정 충돌은 ABORTED 토큰으로 온다)
    """
    text = (err.stderr or err.stdout or "").strip()
    message = text or str(err)

    match = _STATUS_RE.search(text)
    if match:
        return _STATUS_EXCEPTIONS[match.group(1)](message)

    code_match = _HTTP_CODE_RE.search(text)
    status_code = int(code_match.group(1)) if code_match else None
    if status_code is None and _CONFLICT_RE.search(text):
        status_code = 409

    if status_code == 409:
        return exceptions.AlreadyExists(message)
    if status_code is not None:
        return exceptions.from_http_status(status_code, message)

    return exceptions.Unknown(message)


def format_attribute_mapping(mapping: Mapping[str, str]) -> str:
    items = [f"{k}={v}" for k, v in mapping.items()]
    if not any("," in item for item in items):
        return ",".join(items)

    for delim in _ALT_DELIMITERS:
        if not any(delim in item for item in items):
            return f"^{delim}^" + delim.join(items)
    raise ValueError(
        "attribute_mapping 값에 gcloud 구분자로 쓸 수 있는 문자가 모두 포함되어 있습니다."
    )


class GcloudIamClient:
    """
    Workload Identity Federation 용 gcloud 래퍼.

    runner 는 테스트에서 교체할 수 있도록 주입받는다.
    """

    def __init__(
        self,
        *,
        gcloud: str = "gcloud",
        timeout: float = 300.0,
        runner: Optional[Runner] = None,
    ) -> None:
        self._gcloud = gcloud
        self._timeout = timeout
        self._runner = runner or run_command

    def _run(self, args: Sequence[str]) -> RunResult:
        cmd = [self._gcloud, *args, "--quiet"]
        try:
            return self._runner(cmd, timeout=self._timeout)
        except CommandError as e:
            raise to_api_error(e) from e

    def _run_json(self, args: Sequence[str]) -> Dict[str, Any]:
        result = self._run([*args, "--format=json"])
        out = result.stdout.strip()
        if not out:
            return {}
        return json.loads(out)

    # -----------------------------
    # create / bind
    # -----------------------------
    def create_pool(self, binding: FederationBinding) -> None:
        logger.info("Workload Identity Pool 생성: %s", binding.pool_id)
        self._run(
            [
                "iam",
                "workload-identity-pools",
                "create",
                binding.pool_id,
                f"--project={binding.project_id}",
                f"--location={binding.location}",
                f"--description={binding.pool_description}",
                f"--display-name={binding.pool_display_name}",
            ]
        )

    def create_oidc_provider(self, binding: FederationBinding) -> None:
        logger.info("OIDC Provider 생성: %s (pool=%s)", binding.provider_id, binding.pool_id)
        args: List[str] = [
            "iam",
            "workload-identity-pools",
            "providers",
            "create-oidc",
            binding.provider_id,
            f"--project={binding.project_id}",
            f"--location={binding.location}",
            f"--workload-identity-pool={binding.pool_id}",
            f"--issuer-uri={binding.issuer_uri}",
            f"--attribute-mapping={format_attribute_mapping(binding.attribute_mapping)}",
            f"--attribute-condition={binding.attribute_condition}",
        ]
        if binding.provider_display_name:
            args.append(f"--display-name={binding.provider_display_name}")
        self._run(args)

    def add_workload_identity_user(self, binding: FederationBinding) -> None:
        logger.info(
            "서비스 계정에 %s 바인딩: %s <- %s",
            WORKLOAD_IDENTITY_USER_ROLE,
            binding.service_account_email,
            binding.principal_set,
        )
        self._run(
            [
                "iam",
                "service-accounts",
                "add-iam-policy-binding",
                binding.service_account_email,
                f"--project={binding.project_id}",
                f"--role={WORKLOAD_IDENTITY_USER_ROLE}",
                f"--member={binding.principal_set}",
            ]
        )

    # -----------------------------
    # read-only
    # -----------------------------
    def describe_pool(self, binding: FederationBinding) -> Dict[str, Any]:
        return self._run_json(
            [
                "iam",
                "workload-identity-pools",
                "describe",
                binding.pool_id,
                f"--project={binding.project_id}",
                f"--location={binding.location}",
            ]
        )

    def describe_provider(self, binding: FederationBinding) -> Dict[str, Any]:
        return self._run_json(
            [
                "iam",
                "workload-identity-pools",
                "providers",
                "describe",
                binding.provider_id,
                f"--project={binding.project_id}",
                f"--location={binding.location}",
                f"--workload-identity-pool={binding.pool_id}",
            ]
        )

    def get_service_account_policy(self, binding: FederationBinding) -> Dict[str, Any]:
        return self._run_json(
            [
                "iam",
                "service-accounts",
                "get-iam-policy",
                binding.service_account_email,
                f"--project={binding.project_id}",
            ]
        )
