"""
PostgreSQL 데이터베이스 마이그레이션 도구
pg_dump / pg_restore 기반으로 소스 DB를 타겟 DB로 이전
병렬 복원 + 복원 후 시퀀스 재설정 지원
"""

from pg_migration.orchestrator import MigrationOrchestrator

__all__ = ["MigrationOrchestrator"]
