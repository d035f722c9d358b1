"""
validation
----------

FederationBinding 을 GCP 에 적용하기 전에 검증하는 모듈.

- validate_binding : 구조적 오류. 하나라도 있으면 BindingValidationError 를 던진다.
- policy_warnings  : 적용은 가능하지만 정책상 위험한 설정(너무 넓은 principal 패턴 등).
"""

from __future__ import annotations

import re
from typing import List, Set

from .models import FederationBinding


class BindingValidationError(ValueError):
    def __init__(self, problems: List[str]) -> None:
        self.problems = list(problems)
        super().__init__(
            "Workload Identity 설정이 올바르지 않습니다:\n"
            + "\n".join(f"- {p}" for p in self.problems)
        )


# pool / provider ID 규칙: 32자 이하 소문자/숫자/하이픈, gcp- 접두어는 예약됨
# (최소 길이는 API 쪽 INVALID_ARGUMENT 에 맡긴다)
_RESOURCE_ID_RE = re.compile(r"^[a-z0-9-]{1,32}$")
_RESERVED_ID_PREFIX = "gcp-"

# assertion['claim'] 인덱스 접근을 문자열 리터럴보다 먼저 잡는다.
_INDEX_OR_LITERAL_RE = re.compile(
    r"(\bassertion\[\s*(?:'[^'\\]*'|\"[^\"\\]*\")\s*\])"
    r"|'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\""
)
_ASSERTION_DOT_RE = re.compile(r"\bassertion\.([A-Za-z_][A-Za-z0-9_]*)")
_ASSERTION_INDEX_RE = re.compile(r"\bassertion\[\s*['\"]([^'\"]+)['\"]\s*\]")
_MAPPED_REF_RE = re.compile(r"\b(attribute|google)\.([A-Za-z_][A-Za-z0-9_]*)")

_REQUIRED_FIELDS = (
    "project_id",
    "project_number",
    "pool_id",
    "provider_id",
    "issuer_uri",
    "attribute_condition",
    "service_account_email",
    "allowed_principal_pattern",
    "location",
    "principal_attribute",
)


def _strip_string_literals(expr: str, keep_index: bool = False) -> str:
    def _replace(m: re.Match) -> str:
        if m.group(1) and keep_index:
            return m.group(1)
        if m.group(1):
            return "assertion['']"
        return "''"

    return _INDEX_OR_LITERAL_RE.sub(_replace, expr)


def assertion_claims(expr: str) -> Set[str]:
    """CEL 표현식에서 참조하는 assertion.<claim> 이름들을 추출한다."""
    text = _strip_string_literals(expr, keep_index=True)
    claims = set(_ASSERTION_INDEX_RE.findall(text))
    claims.update(_ASSERTION_DOT_RE.findall(text))
    return claims


def mapped_references(expr: str) -> Set[str]:
    """attribute.<name> / google.<name> 참조를 'attribute.name' 형태로 추출한다."""
    return {
        f"{ns}.{name}"
        for ns, name in _MAPPED_REF_RE.findall(_strip_string_literals(expr))
    }


def _syntax_problems(expr: str) -> List[str]:
    problems: List[str] = []

    quote = ""
    depth = 0
    escaped = False
    for ch in expr:
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = ""
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                break

    if quote:
        problems.append("attribute_condition 의 문자열 따옴표가 닫히지 않았습니다.")
    if depth != 0:
        problems.append("attribute_condition 의 괄호 짝이 맞지 않습니다.")
    return problems


def _nonempty_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _check_resource_id(kind: str, value: str, problems: List[str]) -> None:
    # 빈 값/문자열이 아닌 값은 필수 필드 검사에서 이미 보고된다.
    if not isinstance(value, str) or not value:
        return
    if not _RESOURCE_ID_RE.match(value):
        problems.append(
            f"{kind} 는 32자 이하의 소문자/숫자/하이픈이어야 합니다: {value!r}"
        )
    elif value.startswith(_RESERVED_ID_PREFIX):
        problems.append(f"{kind} 는 '{_RESERVED_ID_PREFIX}' 로 시작할 수 없습니다: {value!r}")


def validate_binding(binding: FederationBinding) -> None:
    """
    GCP 호출 전에 binding 의 구조적 오류를 모두 모아서 한 번에 보고한다.
    """
    problems: List[str] = []

    for name in _REQUIRED_FIELDS:
        value = getattr(binding, name)
        if not _nonempty_str(value):
            problems.append(f"{name} 가 비어 있습니다.")

    _check_resource_id("pool_id", binding.pool_id, problems)
    _check_resource_id("provider_id", binding.provider_id, problems)

    if _nonempty_str(binding.project_number) and not binding.project_number.isdigit():
        problems.append(
            f"project_number 는 숫자여야 합니다 (project_id 가 아님): {binding.project_number!r}"
        )
    if _nonempty_str(binding.issuer_uri) and not binding.issuer_uri.startswith("https://"):
        problems.append(f"issuer_uri 는 https:// 로 시작해야 합니다: {binding.issuer_uri!r}")
    if _nonempty_str(binding.service_account_email) and "@" not in binding.service_account_email:
        problems.append(
            f"service_account_email 형식이 올바르지 않습니다: {binding.service_account_email!r}"
        )

    mapping = dict(binding.attribute_mapping or {})
    if not mapping:
        problems.append("attribute_mapping 이 비어 있습니다.")
    else:
        for key, expr in mapping.items():
            if not _nonempty_str(key) or not _nonempty_str(expr):
                problems.append(f"attribute_mapping 에 빈 키/값이 있습니다: {key!r}={expr!r}")
        if "google.subject" not in mapping:
            problems.append("attribute_mapping 에 google.subject 매핑이 필요합니다.")
        principal_key = f"attribute.{binding.principal_attribute}"
        if binding.principal_attribute and principal_key not in mapping:
            problems.append(
                f"principal set 이 사용하는 {principal_key} 가 attribute_mapping 에 없습니다."
            )

    condition = binding.attribute_condition if _nonempty_str(binding.attribute_condition) else ""
    if condition.strip():
        problems.extend(_syntax_problems(condition))

        available_claims: Set[str] = set()
        for expr in mapping.values():
            if isinstance(expr, str):
                available_claims |= assertion_claims(expr)

        unknown_claims = sorted(assertion_claims(condition) - available_claims)
        if unknown_claims:
            problems.append(
                "attribute_condition 이 attribute_mapping 에 없는 claim 을 참조합니다: "
                + ", ".join(f"assertion.{c}" for c in unknown_claims)
            )

        unknown_attrs = sorted(mapped_references(condition) - set(mapping))
        if unknown_attrs:
            problems.append(
                "attribute_condition 이 매핑되지 않은 속성을 참조합니다: "
                + ", ".join(unknown_attrs)
            )

    if problems:
        raise BindingValidationError(problems)


def _principal_scope_warnings(attribute: str, pattern: str) -> List[str]:
    if attribute == "repository":
        owner, sep, repo = pattern.partition("/")
        if not sep or not owner or not repo or "/" in repo:
            return [
                "attribute.repository 의 allowed_principal_pattern 은 하나의 저장소(owner/repo)만 "
                f"가리켜야 합니다: {pattern!r}"
            ]
        return []
    if attribute == "repository_owner":
        # 조직 단위 principal set: owner 하나만 와야 한다.
        if "/" in pattern:
            return [
                "attribute.repository_owner 의 allowed_principal_pattern 은 조직 이름(owner) "
                f"하나여야 합니다. owner/repo 형태는 어떤 토큰과도 일치하지 않습니다: {pattern!r}"
            ]
        return []
    return [
        f"attribute.{attribute} 기준 principal set 은 저장소/조직 범위를 판단할 수 없습니다: "
        f"{pattern!r}"
    ]


def policy_warnings(binding: FederationBinding) -> List[str]:
    """
    구조적으로는 유효하지만 권한 범위가 넓어지는 설정을 경고 문자열로 돌려준다.

    principal set 은 principal_attribute 에 따라 범위가 다르다.
    repository 는 owner/repo 하나, repository_owner 는 조직 하나를 가리켜야 한다.
    """
    warnings: List[str] = []
    pattern = binding.allowed_principal_pattern if isinstance(binding.allowed_principal_pattern, str) else ""
    attribute = binding.principal_attribute if isinstance(binding.principal_attribute, str) else ""

    if "*" in pattern:
        warnings.append(
            f"allowed_principal_pattern 에 와일드카드가 포함되어 있습니다: {pattern!r}"
        )
    warnings.extend(_principal_scope_warnings(attribute, pattern))

    condition = binding.attribute_condition if _nonempty_str(binding.attribute_condition) else ""
    claims = assertion_claims(condition)
    attrs = mapped_references(condition)
    if not (
        claims & {"repository", "repository_owner", "repository_id", "repository_owner_id"}
        or attrs & {"attribute.repository", "attribute.repository_owner"}
    ):
        warnings.append(
            "attribute_condition 이 저장소/조직을 제한하지 않습니다. "
            "다른 저장소의 토큰도 pool 에 들어올 수 있습니다."
        )

    return warnings
