import json
import sys

import click

from .config import load_env_files, WifConfig
from .logging_utils import setup_logging, get_logger
from .orchestrator import apply_all, plan_all, check_all


logger = get_logger(__name__)

TEMPLATE_NAME = "env.wif.example"


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다.",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """GitHub Actions 용 GCP Workload Identity Federation 설정 CLI"""
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_config_from_ctx(ctx: click.Context) -> WifConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    cfg = WifConfig.from_env()
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _load_config_or_exit(ctx: click.Context) -> WifConfig:
    try:
        return _load_config_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)


@main.command()
@click.pass_context
def plan(ctx: click.Context) -> None:
    """생성될 Pool/Provider/바인딩과 검증 결과를 출력 (GCP 호출 없음)"""
    setup_logging(ctx.obj["verbose"])
    cfg = _load_config_or_exit(ctx)
    click.echo(plan_all(cfg))


@main.command(name="apply")
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="CI 시크릿 3개(WIF_PROVIDER, WIF_SERVICE_ACCOUNT, GCP_PROJECT_ID)만 JSON 으로 출력합니다.",
)
@click.pass_context
def apply(ctx: click.Context, as_json: bool) -> None:
    """Pool / OIDC Provider / 서비스 계정 바인딩을 생성 (이미 있으면 건너뜀)"""
    setup_logging(ctx.obj["verbose"], quiet=as_json)
    cfg = _load_config_or_exit(ctx)

    try:
        summary, result = apply_all(cfg)
    except Exception as e:  # noqa: BLE001
        logger.exception("Workload Identity Federation 설정 중 오류 발생")
        click.echo(f"[ERROR] 설정 실패: {e}", err=True)
        click.echo("모든 단계가 멱등하므로 원인을 해결한 뒤 다시 실행하세요.", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.as_ci_secrets(), indent=2))
    else:
        click.echo(summary)


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """
    현재 디렉토리에 env 템플릿(env.wif.example)을 복사하는 초기화.
    """
    import os
    from importlib import resources

    base_dir: str = ctx.obj["chdir"]
    target = os.path.join(base_dir, TEMPLATE_NAME)
    if os.path.exists(target):
        click.echo(f"{TEMPLATE_NAME} 이(가) 이미 존재하여 건너뜀")
        return
    try:
        with resources.files("wif_kit.examples").joinpath(TEMPLATE_NAME).open("r", encoding="utf-8") as src, open(
            target, "w", encoding="utf-8"
        ) as dst:
            dst.write(src.read())
        click.echo(f"{TEMPLATE_NAME} 템플릿을 생성했습니다. .env.wif 로 이름을 바꾼 뒤 값을 채우세요.")
    except FileNotFoundError:
        click.echo(f"템플릿 {TEMPLATE_NAME} 을(를) 패키지에서 찾을 수 없습니다.", err=True)
        sys.exit(1)


@main.command()
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help="모든 체크 항목의 상세 상태를 출력합니다. (기본은 이슈만 요약)",
)
@click.pass_context
def check(ctx: click.Context, show_all: bool) -> None:
    """
    Pool / Provider / 바인딩 상태를 점검한다.
    (실제 리소스 생성/변경은 하지 않는다)
    """
    setup_logging(ctx.obj["verbose"])
    cfg = _load_config_or_exit(ctx)

    try:
        report, has_issues = check_all(cfg, show_all=show_all)
    except Exception as e:  # noqa: BLE001
        logger.exception("사전 체크 중 오류 발생")
        click.echo(f"[ERROR] 체크 실패: {e}", err=True)
        sys.exit(1)

    click.echo(report)

    # 이슈가 있으면 exit 1 로 종료하여 CI 등에서 감지 가능하게 한다.
    if has_issues:
        sys.exit(1)
