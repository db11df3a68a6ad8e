"""
디스크립터 → Elasticsearch 요청 본문 변환

쿼리 DSL 의존성은 이 모듈에만 둡니다.
"""

from typing import Any, Dict, List, Optional

from search.descriptors import (
    AggregationSpec,
    BoolMustQuery,
    DateHistogramSpec,
    FuzzyQuery,
    MatchAllQuery,
    MatchQuery,
    MetricSpec,
    PrefixQuery,
    Query,
    SortSpec,
    TermsSpec,
)


def encode_query(query: Query) -> Dict[str, Any]:
    """쿼리 디스크립터를 ES 쿼리 dict로 변환"""
    if isinstance(query, PrefixQuery):
        return {"prefix": {query.field: {"value": query.value}}}

    if isinstance(query, FuzzyQuery):
        return {"fuzzy": {query.field: {"value": query.value, "fuzziness": query.fuzziness}}}

    if isinstance(query, MatchQuery):
        match: Dict[str, Any] = {
            "query": query.query,
            "operator": query.operator.value,
        }
        if query.fuzziness is not None:
            match["fuzziness"] = query.fuzziness
        if query.fuzzy_transpositions is not None:
            match["fuzzy_transpositions"] = query.fuzzy_transpositions
        return {"match": {query.field: match}}

    if isinstance(query, BoolMustQuery):
        return {"bool": {"must": [encode_query(clause) for clause in query.clauses]}}

    if isinstance(query, MatchAllQuery):
        return {"match_all": {}}

    raise TypeError(f"Unsupported query descriptor: {type(query).__name__}")


def encode_sort(sort: Optional[SortSpec]) -> Optional[List[Dict[str, Any]]]:
    if sort is None:
        return None
    return [{sort.field: {"order": sort.order.value}}]


def encode_metric(metric: MetricSpec) -> Dict[str, Any]:
    return {metric.kind.value: {"field": metric.field}}


def encode_aggregation(spec: AggregationSpec) -> Dict[str, Any]:
    """
    집계 디스크립터를 ES aggs dict로 변환

    Returns:
        {spec.name: {...}} 형태의 aggs 본문
    """
    if isinstance(spec, DateHistogramSpec):
        outer: Dict[str, Any] = {
            "field": spec.field,
            "calendar_interval": spec.interval.value,
        }
        if spec.format:
            outer["format"] = spec.format
        body: Dict[str, Any] = {"date_histogram": outer}
    elif isinstance(spec, TermsSpec):
        body = {"terms": {"field": spec.field, "size": spec.size}}
    else:
        raise TypeError(f"Unsupported aggregation descriptor: {type(spec).__name__}")

    if spec.metrics:
        body["aggs"] = {metric.name: encode_metric(metric) for metric in spec.metrics}

    return {spec.name: body}


def build_search_body(
    query: Optional[Query] = None,
    skip: int = 0,
    size: int = 20,
    sort: Optional[SortSpec] = None,
    aggregations: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    검색 요청 본문 빌드

    Args:
        query: 쿼리 디스크립터 (None이면 match_all)
        skip: 시작 위치 (from)
        size: 반환 문서 수 (집계 전용이면 0)
        sort: 정렬 기준
        aggregations: encode_aggregation 결과

    Returns:
        Elasticsearch search 본문
    """
    if skip < 0:
        raise ValueError(f"skip must be >= 0, got {skip}")
    if size < 0:
        raise ValueError(f"size must be >= 0, got {size}")

    body: Dict[str, Any] = {
        "query": encode_query(query if query is not None else MatchAllQuery()),
        "from": skip,
        "size": size,
    }

    sort_body = encode_sort(sort)
    if sort_body:
        body["sort"] = sort_body

    if aggregations:
        body["aggs"] = aggregations

    return body
