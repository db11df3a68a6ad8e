"""
Elasticsearch 연결 및 벌크 인덱싱 설정

환경 변수(.env 포함)에서 노드 주소, 인증 정보, 타임아웃,
벌크 배치 크기/병렬도/재시도 정책을 읽어옵니다.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from search.errors import SearchConfigError

load_dotenv()

# 환경 변수 기본값
ES_NODES = os.getenv("ES_NODES", "http://localhost:9200")
ES_USERNAME = os.getenv("ES_USERNAME", "")
ES_PASSWORD = os.getenv("ES_PASSWORD", "")
ES_TIMEOUT = os.getenv("ES_TIMEOUT", "120")
ES_MAX_RETRIES = os.getenv("ES_MAX_RETRIES", "3")

ES_BULK_BATCH_SIZE = os.getenv("ES_BULK_BATCH_SIZE", "1000")
ES_BULK_PARALLELISM = os.getenv("ES_BULK_PARALLELISM", "4")
ES_BULK_MAX_RETRIES = os.getenv("ES_BULK_MAX_RETRIES", "2")
ES_BULK_BACKOFF_SECONDS = os.getenv("ES_BULK_BACKOFF_SECONDS", "30")
ES_BULK_TIMEOUT_SECONDS = os.getenv("ES_BULK_TIMEOUT_SECONDS", "600")


def _parse_number(name: str, value: str, cast, minimum):
    """숫자 환경 변수 파싱 (실패 시 SearchConfigError)"""
    try:
        parsed = cast(value)
    except (TypeError, ValueError):
        raise SearchConfigError(f"{name} must be a number, got {value!r}", key=name)
    if parsed < minimum:
        raise SearchConfigError(f"{name} must be >= {minimum}, got {parsed}", key=name)
    return parsed


def _parse_nodes(value: str) -> List[str]:
    nodes = [node.strip() for node in value.split(",") if node.strip()]
    if not nodes:
        raise SearchConfigError("ES_NODES must contain at least one node URL", key="ES_NODES")
    return nodes


@dataclass(frozen=True)
class ESSettings:
    """
    Elasticsearch 클라이언트 및 벌크 파이프라인 설정

    사용 예:
        settings = ESSettings.from_env()
        client = ESClient.from_settings(settings)
    """
    nodes: List[str] = field(default_factory=lambda: ["http://localhost:9200"])
    username: str = ""
    password: str = ""
    request_timeout: float = 120.0
    max_retries: int = 3

    bulk_batch_size: int = 1000
    bulk_parallelism: int = 4
    bulk_max_retries: int = 2
    bulk_backoff_seconds: float = 30.0
    bulk_timeout_seconds: float = 600.0

    @property
    def basic_auth(self) -> Optional[Tuple[str, str]]:
        """사용자명이 설정된 경우에만 basic auth 튜플 반환"""
        if not self.username:
            return None
        return (self.username, self.password)

    @classmethod
    def from_env(cls) -> "ESSettings":
        """환경 변수에서 설정 생성"""
        return cls(
            nodes=_parse_nodes(ES_NODES),
            username=ES_USERNAME,
            password=ES_PASSWORD,
            request_timeout=_parse_number("ES_TIMEOUT", ES_TIMEOUT, float, 0.001),
            max_retries=_parse_number("ES_MAX_RETRIES", ES_MAX_RETRIES, int, 0),
            bulk_batch_size=_parse_number("ES_BULK_BATCH_SIZE", ES_BULK_BATCH_SIZE, int, 1),
            bulk_parallelism=_parse_number("ES_BULK_PARALLELISM", ES_BULK_PARALLELISM, int, 1),
            bulk_max_retries=_parse_number("ES_BULK_MAX_RETRIES", ES_BULK_MAX_RETRIES, int, 0),
            bulk_backoff_seconds=_parse_number("ES_BULK_BACKOFF_SECONDS", ES_BULK_BACKOFF_SECONDS, float, 0),
            bulk_timeout_seconds=_parse_number("ES_BULK_TIMEOUT_SECONDS", ES_BULK_TIMEOUT_SECONDS, float, 0.001),
        )
