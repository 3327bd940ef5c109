"""
Migration 설정 모듈
환경변수에서 소스/타겟 DB 연결 설정을 로드
YAML 파일에서 마이그레이션 플랜을 로드
"""

import os
from pathlib import Path
from typing import Literal
from urllib.parse import urlsplit, urlunsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_SCHEMES = ("postgres", "postgresql")


def _find_project_root() -> Path:
    """프로젝트 루트 경로 탐색 (pyproject.toml 기준)"""
    current = Path(__file__).parent
    for _ in range(5):
        if (current / "pyproject.toml").exists():
            return current
        current = current.parent
    return Path(__file__).parent.parent.parent


PROJECT_ROOT = _find_project_root()


def detect_cpu_cores() -> int:
    """CPU 코어 수 (감지 실패 시 4)"""
    return os.cpu_count() or 4


# ============================================================
# 엔드포인트 / 플랜
# ============================================================

class Endpoint(BaseModel):
    """DB 인스턴스 연결 정보 (실행 중 불변)"""

    model_config = ConfigDict(frozen=True)

    url: str
    label: str = "source"

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("연결 URL이 비어 있습니다")
        scheme = urlsplit(value).scheme
        if scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"PostgreSQL URL이 아닙니다: scheme={scheme or '(없음)'}")
        return value

    @property
    def database(self) -> str:
        """URL 마지막 path 구성요소 (DB명)"""
        path = urlsplit(self.url).path.lstrip("/")
        return path or "?"

    def redacted(self) -> str:
        """비밀번호를 가린 URL (출력/로그용)"""
        parts = urlsplit(self.url)
        if parts.password is None:
            return self.url
        netloc = parts.netloc.replace(f":{parts.password}@", ":****@", 1)
        return urlunsplit(parts._replace(netloc=netloc))


class MigrationPlan(BaseModel):
    """마이그레이션 실행 플랜 (생성 후 불변)"""

    model_config = ConfigDict(frozen=True)

    mode: Literal["full", "data-only"] = "full"
    jobs: int = Field(default=0, ge=0, validate_default=True)  # 0이면 CPU 코어 수
    clean_target: bool = True
    keep_dump: bool = False

    @field_validator("jobs")
    @classmethod
    def _resolve_jobs(cls, value: int) -> int:
        return value or detect_cpu_cores()

    @property
    def data_only(self) -> bool:
        return self.mode == "data-only"

    @property
    def truncates_target(self) -> bool:
        """data-only + clean 조합일 때만 타겟 테이블을 직접 비움"""
        return self.data_only and self.clean_target

    @property
    def restore_cleans(self) -> bool:
        """full 모드 정리는 pg_restore --clean에 위임"""
        return self.clean_target and not self.data_only

    def describe_mode(self) -> str:
        return "data-only" if self.data_only else "full (schema + data)"


# ============================================================
# 환경변수 기반 설정
# ============================================================

class SourceDBSettings(BaseSettings):
    """소스 DB 연결 설정 (마이그레이션 원본)"""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_prefix="SOURCE_DB_",
        extra="ignore",
    )

    url: str = Field(default="")


class TargetDBSettings(BaseSettings):
    """타겟 DB 연결 설정 (마이그레이션 대상)"""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_prefix="TARGET_DB_",
        extra="ignore",
    )

    url: str = Field(default="")


class AppSettings(BaseSettings):
    """애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_prefix="PG_MIGRATE_",
        extra="ignore",
    )

    log_dir: str = Field(default="./logs")
    dump_dir: str | None = Field(default=None)  # None이면 시스템 임시 디렉토리
    schema_name: str = Field(default="public")
    connect_timeout: int = Field(default=10)
    dump_poll_interval: float = Field(default=0.5)
    restore_poll_interval: float = Field(default=0.3)
    pg_dump_path: str = Field(default="pg_dump")
    pg_restore_path: str = Field(default="pg_restore")


class MigrationSettings(BaseSettings):
    """마이그레이션 연결 설정"""

    source: SourceDBSettings = Field(default_factory=SourceDBSettings)
    target: TargetDBSettings = Field(default_factory=TargetDBSettings)
    app: AppSettings = Field(default_factory=AppSettings)


# ============================================================
# YAML 설정 모델
# ============================================================

class MigrationYAMLConfig(BaseModel):
    """YAML 마이그레이션 설정"""
    source_url: str | None = None  # 없으면 SOURCE_DB_URL
    target_url: str | None = None  # 없으면 TARGET_DB_URL
    jobs: int = 0
    data_only: bool = False
    clean: bool = True
    keep_dump: bool = False
    dump_dir: str | None = None

    def to_plan(self) -> MigrationPlan:
        return MigrationPlan(
            mode="data-only" if self.data_only else "full",
            jobs=self.jobs,
            clean_target=self.clean,
            keep_dump=self.keep_dump,
        )


def load_yaml_config(yaml_path: str | Path) -> MigrationYAMLConfig:
    """YAML 설정 파일 로드"""
    path = Path(yaml_path)
    if not path.exists():
        raise FileNotFoundError(f"설정 파일을 찾을 수 없습니다: {yaml_path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return MigrationYAMLConfig(**data)


def get_settings() -> MigrationSettings:
    """설정 로드"""
    return MigrationSettings()


# 싱글톤 인스턴스
settings = get_settings()
