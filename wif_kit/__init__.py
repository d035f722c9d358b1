"""
wif_kit
-------

GitHub Actions 용 GCP Workload Identity Federation 설정 CLI 패키지.
Workload Identity Pool, OIDC Provider, 서비스 계정 바인딩을 멱등하게 생성하고
CI 시크릿에 넣을 식별자를 출력하는 것을 목표로 한다.
"""

__all__ = [
    "config",
    "models",
    "provisioner",
    "orchestrator",
]
