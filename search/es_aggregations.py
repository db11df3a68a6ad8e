"""
Elasticsearch 집계 엔진

중첩 집계(버킷 → 하위 메트릭) 요청을 만들고
응답 트리를 평탄한 Bucket 리스트로 디코딩합니다.
문서 본문은 가져오지 않습니다 (size=0).
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from search.descriptors import AggregationSpec, MetricSpec, Query, ValueType
from search.errors import SearchRequestError
from search.es_client import ESClient
from search.es_encoder import build_search_body, encode_aggregation
from search.es_search import ESSearchExecutor
from search.models import Bucket

logger = logging.getLogger(__name__)

B = TypeVar("B")

CURRENCY_QUANT = Decimal("0.01")


def convert_metric(value: Any, value_type: ValueType) -> Union[int, float, Decimal]:
    """메트릭 값을 선언된 타입으로 변환 (null은 0)"""
    if value is None:
        value = 0
    if value_type is ValueType.INTEGER:
        return int(round(float(value)))
    if value_type is ValueType.CURRENCY:
        return Decimal(str(value)).quantize(CURRENCY_QUANT, rounding=ROUND_HALF_UP)
    return float(value)


def decode_buckets(
    aggregations: Dict[str, Any],
    spec: AggregationSpec,
) -> List[Bucket]:
    """
    집계 응답을 Bucket 리스트로 변환

    외부 버킷마다 key를 읽고, 이름별 하위 메트릭의 value를
    MetricSpec.value_type으로 변환합니다. 백엔드 순서를 유지합니다.
    """
    if spec.name not in aggregations:
        raise SearchRequestError(
            f"Aggregation '{spec.name}' missing from response",
            reason="malformed aggregation response",
        )

    buckets = []
    for raw in aggregations[spec.name].get("buckets", []):
        metrics = {}
        for metric in spec.metrics:
            metrics[metric.name] = convert_metric(_metric_value(raw, metric), metric.value_type)
        buckets.append(Bucket(key=raw["key"], doc_count=raw.get("doc_count", 0), metrics=metrics))
    return buckets


def _metric_value(raw_bucket: Dict[str, Any], metric: MetricSpec) -> Any:
    node = raw_bucket.get(metric.name)
    if node is None:
        return None
    return node.get("value")


class ESAggregationEngine:
    """
    Elasticsearch 집계 엔진

    사용 예:
        engine = ESAggregationEngine(client)
        buckets = await engine.aggregate(
            "products-data-index",
            TermsSpec("by-category", "category", metrics=(...)),
            decoder=CategoryBucket.from_bucket,
        )
    """

    def __init__(self, client: ESClient, executor: Optional[ESSearchExecutor] = None):
        self.client = client
        self.executor = executor or ESSearchExecutor(client)

    async def aggregate(
        self,
        index: str,
        spec: AggregationSpec,
        query: Optional[Query] = None,
        decoder: Optional[Callable[[Bucket], B]] = None,
    ) -> List[Union[Bucket, B]]:
        """
        집계 실행

        Args:
            index: 인덱스명
            spec: DateHistogramSpec 또는 TermsSpec
            query: 사전 필터 쿼리 (None이면 전체)
            decoder: Bucket → 타입 버킷 변환 함수

        Returns:
            버킷 리스트 (일치 문서가 없으면 빈 리스트)
        """
        body = build_search_body(query, skip=0, size=0, aggregations=encode_aggregation(spec))
        result = await self.executor.execute(index, body, operation="aggregate")

        try:
            buckets = decode_buckets(result.get("aggregations") or {}, spec)
        except SearchRequestError as e:
            e.index = index
            raise
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise SearchRequestError(
                f"Failed to decode aggregation '{spec.name}'", index=index, reason=str(e)
            ) from e

        logger.info(f"[{index}] -- Aggregate '{spec.name}': buckets={len(buckets)}")
        if decoder is None:
            return buckets
        return [decoder(bucket) for bucket in buckets]
