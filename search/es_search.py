"""
Elasticsearch 검색 실행기

쿼리 디스크립터로 검색 요청을 만들고 결과 문서를 모델 타입으로 디코딩합니다.
검색 인덱스는 보조 뷰이므로 호출자는 반환된 ID로 원본 저장소를 다시 조회합니다.
"""

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from elasticsearch import ApiError, TransportError
from pydantic import ValidationError

from search.descriptors import MetricKind, MetricSpec, Query, SortSpec
from search.errors import SearchRequestError, reason_from_exception
from search.es_client import ESClient, response_body
from search.es_encoder import build_search_body, encode_metric

logger = logging.getLogger(__name__)

M = TypeVar("M")


class ESSearchExecutor:
    """
    Elasticsearch 검색 실행기

    사용 예:
        executor = ESSearchExecutor(client)
        products = await executor.search(
            "products-data-index",
            MatchQuery("name", "widget"),
            Product,
            skip=0, size=10,
            sort=SortSpec("created_at", SortOrder.DESC),
        )
    """

    def __init__(self, client: ESClient):
        self.client = client

    async def execute(self, index: str, body: Dict[str, Any], operation: str = "search") -> Dict[str, Any]:
        """
        검색 요청 실행 (원본 응답 반환)

        Raises:
            SearchRequestError: 잘못된 요청 또는 전송 실패
        """
        try:
            response = await self.client.using_client(
                lambda es: es.search(index=index, body=body),
                operation=operation,
                index=index,
            )
        except (ApiError, TransportError) as e:
            reason = reason_from_exception(e)
            logger.error(f"[{index}] -- Elasticsearch {operation} error: {reason}")
            raise SearchRequestError(
                "Elasticsearch response contains errors", index=index, reason=reason
            ) from e

        result = response_body(response)
        if not isinstance(result, dict) or "hits" not in result:
            raise SearchRequestError(
                "Elasticsearch response contains unknown errors", index=index
            )
        if result.get("timed_out"):
            logger.warning(f"[{index}] -- Elasticsearch {operation} timed out, results may be partial")
        return result

    async def search(
        self,
        index: str,
        query: Query,
        model: Type[M],
        skip: int = 0,
        size: int = 20,
        sort: Optional[SortSpec] = None,
    ) -> List[M]:
        """
        문서 검색

        Args:
            index: 인덱스명
            query: 쿼리 디스크립터
            model: 결과 문서 pydantic 모델
            skip: 시작 위치
            size: 반환할 결과 수
            sort: 정렬 기준

        Returns:
            디코딩된 문서 리스트 (일치 문서가 없으면 빈 리스트)
        """
        body = build_search_body(query, skip=skip, size=size, sort=sort)
        result = await self.execute(index, body)

        documents = []
        for hit in result["hits"].get("hits", []):
            try:
                documents.append(model.model_validate(hit["_source"]))
            except (KeyError, ValidationError) as e:
                raise SearchRequestError(
                    f"Failed to decode document {hit.get('_id')}",
                    index=index,
                    reason=str(e),
                ) from e

        logger.info(f"[{index}] -- Search: skip={skip}, size={size}, hits={len(documents)}")
        return documents

    async def count(self, index: str, query: Query, field: str = "id") -> int:
        """
        쿼리와 일치하는 문서 수 (value_count 집계)

        Args:
            index: 인덱스명
            query: 쿼리 디스크립터
            field: 값을 셀 필드

        Returns:
            문서 수
        """
        body = build_search_body(
            query,
            size=0,
            aggregations={"count": encode_metric(MetricSpec("count", MetricKind.VALUE_COUNT, field))},
        )
        result = await self.execute(index, body, operation="count")
        value = (result.get("aggregations") or {}).get("count", {}).get("value")
        return int(value or 0)
