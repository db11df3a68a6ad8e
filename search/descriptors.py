"""
검색/집계 요청 디스크립터

백엔드에 독립적인 쿼리/정렬/집계 기술 타입.
실제 Elasticsearch JSON 변환은 es_encoder에서만 수행합니다.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union


class Operator(Enum):
    """토큰 매칭 연산자"""
    AND = "and"
    OR = "or"


class SortOrder(Enum):
    """정렬 방향"""
    ASC = "asc"
    DESC = "desc"


class CalendarInterval(Enum):
    """date_histogram 달력 간격"""
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class MetricKind(Enum):
    """버킷 하위 메트릭 종류"""
    CARDINALITY = "cardinality"
    SUM = "sum"
    AVG = "avg"
    VALUE_COUNT = "value_count"


class ValueType(Enum):
    """메트릭 디코딩 타입"""
    INTEGER = "integer"
    DOUBLE = "double"
    CURRENCY = "currency"


# === 쿼리 ===

@dataclass(frozen=True)
class PrefixQuery:
    """keyword 필드 접두어 일치 (대소문자 구분)"""
    field: str
    value: str


@dataclass(frozen=True)
class FuzzyQuery:
    """편집 거리 허용 검색 (전화번호 등 노이즈 입력)"""
    field: str
    value: str
    fuzziness: str = "AUTO"


@dataclass(frozen=True)
class MatchQuery:
    """전문 검색 토큰 매칭 (기본: 모든 토큰 포함)"""
    field: str
    query: str
    operator: Operator = Operator.AND
    fuzziness: Optional[str] = None
    fuzzy_transpositions: Optional[bool] = None


@dataclass(frozen=True)
class MatchAllQuery:
    """전체 문서"""


@dataclass(frozen=True)
class BoolMustQuery:
    """여러 조건의 논리 AND"""
    clauses: Tuple["Query", ...]

    def __post_init__(self):
        if len(self.clauses) < 2:
            raise ValueError("BoolMustQuery requires at least two clauses")


Query = Union[PrefixQuery, FuzzyQuery, MatchQuery, MatchAllQuery, BoolMustQuery]


@dataclass(frozen=True)
class SortSpec:
    """단일 필드 정렬"""
    field: str
    order: SortOrder = SortOrder.ASC


# === 집계 ===

@dataclass(frozen=True)
class MetricSpec:
    """버킷 내부 메트릭 정의"""
    name: str
    kind: MetricKind
    field: str
    value_type: ValueType = ValueType.DOUBLE


@dataclass(frozen=True)
class DateHistogramSpec:
    """달력 간격별 버킷 집계"""
    name: str
    field: str
    interval: CalendarInterval
    metrics: Tuple[MetricSpec, ...] = ()
    format: Optional[str] = "yyyy-MM-dd"


@dataclass(frozen=True)
class TermsSpec:
    """카테고리 값별 버킷 집계"""
    name: str
    field: str
    metrics: Tuple[MetricSpec, ...] = ()
    size: int = 10


AggregationSpec = Union[DateHistogramSpec, TermsSpec]
