"""
Elasticsearch 클라이언트

스토어 검색 시스템의 모든 백엔드 호출이 지나가는 공유 진입점.
노드 풀, basic 인증, 요청 타임아웃을 설정하고 호출별 소요 시간을 기록합니다.
"""

import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

from elasticsearch import AsyncElasticsearch
from elasticsearch.exceptions import ConnectionError, ConnectionTimeout

from search.config import ESSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ESClient:
    """
    Elasticsearch 클라이언트 래퍼

    프로세스당 한 번 생성하여 인덱스 관리자, 벌크 로더, 검색/집계 엔진에
    명시적으로 전달합니다. 내부 커넥션 풀은 같은 이벤트 루프의
    여러 태스크에서 동시에 사용해도 안전합니다.

    사용 예:
        client = ESClient.from_settings(ESSettings.from_env())
        exists = await client.using_client(
            lambda es: es.indices.exists(index="products-data-index"),
            operation="exists",
        )
        await client.close()
    """

    def __init__(
        self,
        nodes: List[str],
        basic_auth: Optional[Tuple[str, str]] = None,
        request_timeout: float = 120.0,
        max_retries: int = 3,
    ):
        """
        클라이언트 초기화 (연결은 첫 호출 시 생성)

        Args:
            nodes: ES 노드 URL 목록
            basic_auth: (사용자명, 비밀번호) 또는 None
            request_timeout: 요청당 최대 대기 시간 (초)
            max_retries: 트랜스포트 레벨 재시도 횟수
        """
        if not nodes:
            raise ValueError("At least one Elasticsearch node is required")
        self.nodes = list(nodes)
        self.basic_auth = basic_auth
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self._client: Optional[AsyncElasticsearch] = None

    @classmethod
    def from_settings(cls, settings: ESSettings) -> "ESClient":
        return cls(
            nodes=settings.nodes,
            basic_auth=settings.basic_auth,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )

    @property
    def client(self) -> AsyncElasticsearch:
        """비동기 클라이언트 (lazy initialization)"""
        if self._client is None:
            kwargs = {
                "hosts": self.nodes,
                "request_timeout": self.request_timeout,
                "retry_on_timeout": True,
                "max_retries": self.max_retries,
            }
            if self.basic_auth:
                kwargs["basic_auth"] = self.basic_auth
            self._client = AsyncElasticsearch(**kwargs)
        return self._client

    async def using_client(
        self,
        request: Callable[[AsyncElasticsearch], Awaitable[T]],
        operation: str = "request",
        index: Optional[str] = None,
    ) -> T:
        """
        클라이언트로 요청 실행 및 소요 시간 기록

        예외는 그대로 호출자에게 전파됩니다.

        Args:
            request: AsyncElasticsearch를 받아 awaitable을 반환하는 함수
            operation: 로그에 남길 작업명
            index: 로그에 남길 인덱스명

        Returns:
            request의 결과
        """
        started = time.perf_counter()
        try:
            return await request(self.client)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(f"--> Elasticsearch {operation} [{index or '-'}] took {elapsed_ms:.1f} ms")

    async def ping(self) -> bool:
        """ES 연결 상태 확인"""
        try:
            return bool(await self.using_client(lambda es: es.ping(), operation="ping"))
        except (ConnectionError, ConnectionTimeout):
            logger.warning("Elasticsearch connection failed")
            return False

    async def close(self):
        """비동기 클라이언트 연결 종료"""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> "ESClient":
        return self

    async def __aexit__(self, *exc_info: Any):
        await self.close()


def response_body(response: Any) -> Any:
    """ApiResponse 래퍼를 벗겨 원본 dict 반환"""
    return getattr(response, "body", response)
