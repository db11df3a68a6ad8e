# Storefront Elasticsearch Search Module
"""
Elasticsearch 기반 스토어 검색 모듈

고객/상품/주문 항목을 인덱싱하고 검색 및 다단계 집계를 제공합니다.

주요 컴포넌트:
- es_client: 공유 Elasticsearch 클라이언트 (커넥션 풀, 인증, 요청 시간 기록)
- es_indices: 인덱스 정의 및 생성/삭제
- es_bulk: 배치 병렬 벌크 인덱싱 (재시도, 실패 문서 보고)
- es_search: 쿼리 디스크립터 기반 검색
- es_aggregations: 중첩 집계 및 버킷 디코딩
- services: 엔티티별 검색 서비스
"""

from .config import ESSettings
from .es_client import ESClient
from .es_indices import ESIndexManager, IndexStatus
from .es_bulk import BulkConfig, BulkOutcome, DroppedDocument, ESBulkLoader
from .es_search import ESSearchExecutor
from .es_aggregations import ESAggregationEngine
from .services import CustomersSearchService, OrderItemsSearchService, ProductsSearchService

__all__ = [
    "ESSettings",
    "ESClient",
    "ESIndexManager",
    "IndexStatus",
    "BulkConfig",
    "BulkOutcome",
    "DroppedDocument",
    "ESBulkLoader",
    "ESSearchExecutor",
    "ESAggregationEngine",
    "CustomersSearchService",
    "ProductsSearchService",
    "OrderItemsSearchService",
]
