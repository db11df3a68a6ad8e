"""
엔티티별 검색 서비스

고객/상품/주문 항목 인덱스별로 인덱스 관리, 벌크 인덱싱,
검색과 집계를 묶어 제공합니다. 모든 서비스는 하나의 ESClient를 공유합니다.
"""

import asyncio
import logging
from typing import Generic, List, Optional, Type, TypeVar

from search.descriptors import (
    BoolMustQuery,
    CalendarInterval,
    DateHistogramSpec,
    FuzzyQuery,
    MatchQuery,
    MetricKind,
    MetricSpec,
    PrefixQuery,
    SortOrder,
    SortSpec,
    TermsSpec,
    ValueType,
)
from search.es_aggregations import ESAggregationEngine
from search.es_bulk import BulkConfig, BulkOutcome, Documents, ESBulkLoader
from search.es_client import ESClient
from search.es_indices import (
    CUSTOMERS_INDEX,
    ORDER_ITEMS_INDEX,
    PRODUCTS_INDEX,
    ESIndexManager,
    IndexDefinition,
    IndexStatus,
)
from search.es_search import ESSearchExecutor
from search.models import (
    AVG_PRICE,
    PRICE_SUM,
    PRODUCTS_COUNT,
    QUANTITY_SUM,
    UNIQUE_CUSTOMERS,
    CategoryBucket,
    Customer,
    IntervalBucket,
    OrderItem,
    Product,
    SearchDocument,
)

logger = logging.getLogger(__name__)

D = TypeVar("D", bound=SearchDocument)


class EntitySearchService(Generic[D]):
    """엔티티 인덱스 공통 작업"""

    definition: IndexDefinition
    model: Type[D]

    def __init__(self, client: ESClient, bulk_config: Optional[BulkConfig] = None):
        self.client = client
        self.indices = ESIndexManager(client)
        self.loader = ESBulkLoader(client, bulk_config)
        self.executor = ESSearchExecutor(client)
        self.aggregations = ESAggregationEngine(client, self.executor)

    @property
    def index_name(self) -> str:
        return self.definition.name

    async def create_index(self) -> IndexStatus:
        return await self.indices.ensure_index(self.definition)

    async def delete_index(self) -> IndexStatus:
        return await self.indices.delete_index(self.index_name)

    async def index(self, document: D) -> str:
        return await self.loader.index_document(self.index_name, document)

    async def index_all(
        self,
        documents: Documents,
        config: Optional[BulkConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BulkOutcome:
        return await self.loader.index_all(self.index_name, documents, config, cancel_event)

    async def _search(self, query, skip: int, size: int, sort: SortSpec) -> List[D]:
        return await self.executor.search(self.index_name, query, self.model, skip=skip, size=size, sort=sort)


class CustomersSearchService(EntitySearchService[Customer]):
    """고객 검색"""

    definition = CUSTOMERS_INDEX
    model = Customer

    async def search_by_name(self, name: str, skip: int = 0, size: int = 20) -> List[Customer]:
        logger.info(f"[{self.index_name}] -- Search by name")
        return await self._search(PrefixQuery("name", name), skip, size, SortSpec("name", SortOrder.ASC))

    async def search_by_surname(self, surname: str, skip: int = 0, size: int = 20) -> List[Customer]:
        logger.info(f"[{self.index_name}] -- Search by surname")
        return await self._search(PrefixQuery("surname", surname), skip, size, SortSpec("surname", SortOrder.ASC))

    async def search_by_phone_number(self, phone_number: str, skip: int = 0, size: int = 20) -> List[Customer]:
        logger.info(f"[{self.index_name}] -- Search by phone number")
        return await self._search(FuzzyQuery("phone_number", phone_number), skip, size, SortSpec("phone_number"))

    async def search_by_hobby(self, hobby: str, skip: int = 0, size: int = 20) -> List[Customer]:
        logger.info(f"[{self.index_name}] -- Search by hobby")
        return await self._search(MatchQuery("hobbies", hobby), skip, size, SortSpec("created_at"))

    async def count_by_hobby(self, hobby: str) -> int:
        logger.info(f"[{self.index_name}] -- Count customers by hobby")
        return await self.executor.count(self.index_name, MatchQuery("hobbies", hobby))


class ProductsSearchService(EntitySearchService[Product]):
    """상품 검색 및 카테고리 집계"""

    definition = PRODUCTS_INDEX
    model = Product

    BY_CATEGORY = TermsSpec(
        name="by-category",
        field="category",
        metrics=(
            MetricSpec(PRODUCTS_COUNT, MetricKind.CARDINALITY, "id", ValueType.INTEGER),
            MetricSpec(AVG_PRICE, MetricKind.AVG, "price", ValueType.CURRENCY),
        ),
    )

    async def search_by_name(self, name: str, skip: int = 0, size: int = 20) -> List[Product]:
        logger.info(f"[{self.index_name}] -- Search by name")
        query = MatchQuery("name", name, fuzziness="AUTO")
        return await self._search(query, skip, size, SortSpec("created_at", SortOrder.DESC))

    async def search_by_category(self, category: str, skip: int = 0, size: int = 20) -> List[Product]:
        logger.info(f"[{self.index_name}] -- Search by category")
        query = MatchQuery("category", category, fuzziness="AUTO", fuzzy_transpositions=True)
        return await self._search(query, skip, size, SortSpec("created_at"))

    async def aggregate_by_categories(self) -> List[CategoryBucket]:
        logger.info(f"[{self.index_name}] -- Aggregate by categories")
        return await self.aggregations.aggregate(
            self.index_name, self.BY_CATEGORY, decoder=CategoryBucket.from_bucket
        )


class OrderItemsSearchService(EntitySearchService[OrderItem]):
    """주문 항목 기간별 집계"""

    definition = ORDER_ITEMS_INDEX
    model = OrderItem

    INTERVAL_METRICS = (
        MetricSpec(UNIQUE_CUSTOMERS, MetricKind.CARDINALITY, "customer_id", ValueType.INTEGER),
        MetricSpec(QUANTITY_SUM, MetricKind.SUM, "quantity", ValueType.DOUBLE),
        MetricSpec(PRICE_SUM, MetricKind.SUM, "order_price", ValueType.CURRENCY),
    )

    def by_interval(self, interval: CalendarInterval) -> DateHistogramSpec:
        return DateHistogramSpec(
            name="by-interval",
            field="created_at",
            interval=interval,
            metrics=self.INTERVAL_METRICS,
            format="yyyy-MM-dd",
        )

    async def _aggregate(self, interval: CalendarInterval, query=None) -> List[IntervalBucket]:
        return await self.aggregations.aggregate(
            self.index_name, self.by_interval(interval), query=query, decoder=IntervalBucket.from_bucket
        )

    async def aggregate_by_interval(self, interval: CalendarInterval) -> List[IntervalBucket]:
        logger.info(f"[{self.index_name}] -- Aggregate by interval")
        return await self._aggregate(interval)

    async def aggregate_for_product_by_interval(
        self,
        product_id: str,
        interval: CalendarInterval,
    ) -> List[IntervalBucket]:
        logger.info(f"[{self.index_name}] -- Aggregate for product id by interval")
        return await self._aggregate(interval, MatchQuery("product_id", product_id))

    async def aggregate_for_product_and_customer_by_interval(
        self,
        product_id: str,
        customer_id: str,
        interval: CalendarInterval,
    ) -> List[IntervalBucket]:
        logger.info(f"[{self.index_name}] -- Aggregate for product id and customer id by interval")
        query = BoolMustQuery((
            MatchQuery("product_id", product_id),
            MatchQuery("customer_id", customer_id),
        ))
        return await self._aggregate(interval, query)
