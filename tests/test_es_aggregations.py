"""
집계 엔진 단위 테스트 (Mock 기반)
- 날짜 히스토그램/terms 버킷 디코딩
- 메트릭 타입 변환
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from search.descriptors import (
    CalendarInterval,
    DateHistogramSpec,
    MetricKind,
    MetricSpec,
    TermsSpec,
    ValueType,
)
from search.errors import SearchRequestError
from search.es_aggregations import ESAggregationEngine, convert_metric, decode_buckets
from search.models import CategoryBucket, IntervalBucket

JAN = int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)
FEB = int(datetime(2024, 2, 1, tzinfo=timezone.utc).timestamp() * 1000)
MAR = int(datetime(2024, 3, 1, tzinfo=timezone.utc).timestamp() * 1000)

INTERVAL_SPEC = DateHistogramSpec(
    name="by-interval",
    field="created_at",
    interval=CalendarInterval.MONTH,
    metrics=(
        MetricSpec("unique-customers", MetricKind.CARDINALITY, "customer_id", ValueType.INTEGER),
        MetricSpec("quantity-sum", MetricKind.SUM, "quantity", ValueType.DOUBLE),
        MetricSpec("price-sum", MetricKind.SUM, "order_price", ValueType.CURRENCY),
    ),
)

CATEGORY_SPEC = TermsSpec(
    name="by-category",
    field="category",
    metrics=(
        MetricSpec("products-count", MetricKind.CARDINALITY, "id", ValueType.INTEGER),
        MetricSpec("avg-price", MetricKind.AVG, "price", ValueType.CURRENCY),
    ),
)


def interval_bucket(key, customers, quantity, price, doc_count):
    return {
        "key_as_string": datetime.fromtimestamp(key / 1000, tz=timezone.utc).strftime("%Y-%m-%d"),
        "key": key,
        "doc_count": doc_count,
        "unique-customers": {"value": customers},
        "quantity-sum": {"value": quantity},
        "price-sum": {"value": price},
    }


INTERVAL_RESPONSE = {
    "hits": {"total": {"value": 6}, "hits": []},
    "aggregations": {
        "by-interval": {
            "buckets": [
                interval_bucket(JAN, 2, 5.0, 50.0, 2),
                interval_bucket(FEB, 1, 1.0, 9.99, 1),
                interval_bucket(MAR, 3, 7.0, 120.5, 3),
            ]
        }
    },
}

CATEGORY_RESPONSE = {
    "hits": {"total": {"value": 3}, "hits": []},
    "aggregations": {
        "by-category": {
            "buckets": [
                {"key": "Electronics", "doc_count": 2,
                 "products-count": {"value": 2}, "avg-price": {"value": 15.0}},
                {"key": "Clothing", "doc_count": 1,
                 "products-count": {"value": 1}, "avg-price": {"value": 15.0}},
            ]
        }
    },
}


class TestConvertMetric:
    """메트릭 값 변환"""

    def test_integer(self):
        assert convert_metric(3.0, ValueType.INTEGER) == 3
        assert isinstance(convert_metric(3.0, ValueType.INTEGER), int)

    def test_currency_rounds_to_cents(self):
        assert convert_metric(10.005, ValueType.CURRENCY) == Decimal("10.01")
        assert convert_metric(15.0, ValueType.CURRENCY) == Decimal("15.00")

    def test_double(self):
        assert convert_metric(2.5, ValueType.DOUBLE) == 2.5

    @pytest.mark.parametrize("value_type,expected", [
        (ValueType.INTEGER, 0),
        (ValueType.DOUBLE, 0.0),
        (ValueType.CURRENCY, Decimal("0.00")),
    ])
    def test_null_is_zero(self, value_type, expected):
        assert convert_metric(None, value_type) == expected


class TestDecodeBuckets:
    """버킷 디코딩"""

    def test_backend_order_preserved(self):
        buckets = decode_buckets(INTERVAL_RESPONSE["aggregations"], INTERVAL_SPEC)

        assert [b.key for b in buckets] == [JAN, FEB, MAR]
        assert buckets[1].metrics == {
            "unique-customers": 1,
            "quantity-sum": 1.0,
            "price-sum": Decimal("9.99"),
        }

    def test_missing_sub_aggregation_is_zero(self):
        raw = {"by-category": {"buckets": [{"key": "Food", "doc_count": 0, "avg-price": {"value": None}}]}}

        buckets = decode_buckets(raw, CATEGORY_SPEC)

        assert buckets[0].metrics == {"products-count": 0, "avg-price": Decimal("0.00")}

    def test_missing_aggregation_raises(self):
        with pytest.raises(SearchRequestError):
            decode_buckets({}, CATEGORY_SPEC)


class TestAggregate:
    """aggregate"""

    def test_request_has_no_documents(self, client, es):
        es.search.return_value = INTERVAL_RESPONSE

        asyncio.run(ESAggregationEngine(client).aggregate("orderitems-data-index", INTERVAL_SPEC))

        body = es.search.await_args.kwargs["body"]
        assert body["size"] == 0
        assert body["query"] == {"match_all": {}}
        assert body["aggs"]["by-interval"]["date_histogram"]["calendar_interval"] == "month"

    def test_three_months_of_order_items(self, client, es):
        """월별 버킷 3개, 월마다 합계 일치"""
        es.search.return_value = INTERVAL_RESPONSE

        buckets = asyncio.run(ESAggregationEngine(client).aggregate(
            "orderitems-data-index", INTERVAL_SPEC, decoder=IntervalBucket.from_bucket
        ))

        assert len(buckets) == 3
        assert [b.timestamp.month for b in buckets] == [1, 2, 3]
        assert [b.quantity_sum for b in buckets] == [5.0, 1.0, 7.0]
        assert [b.order_price_sum for b in buckets] == [Decimal("50.00"), Decimal("9.99"), Decimal("120.50")]
        assert [b.unique_customers for b in buckets] == [2, 1, 3]
        assert [b.doc_count for b in buckets] == [2, 1, 3]

    def test_products_by_category(self, client, es):
        es.search.return_value = CATEGORY_RESPONSE

        buckets = asyncio.run(ESAggregationEngine(client).aggregate(
            "products-data-index", CATEGORY_SPEC, decoder=CategoryBucket.from_bucket
        ))

        assert buckets == [
            CategoryBucket("Electronics", "Electronics", 2, Decimal("15.00"), doc_count=2),
            CategoryBucket("Clothing", "Clothing", 1, Decimal("15.00"), doc_count=1),
        ]

    def test_empty_index_no_buckets(self, client, es):
        es.search.return_value = {"hits": {"hits": []}, "aggregations": {"by-category": {"buckets": []}}}

        buckets = asyncio.run(ESAggregationEngine(client).aggregate("products-data-index", CATEGORY_SPEC))

        assert buckets == []

    def test_missing_aggregation_has_index(self, client, es):
        es.search.return_value = {"hits": {"hits": []}}

        with pytest.raises(SearchRequestError) as exc_info:
            asyncio.run(ESAggregationEngine(client).aggregate("products-data-index", CATEGORY_SPEC))

        assert exc_info.value.index == "products-data-index"
