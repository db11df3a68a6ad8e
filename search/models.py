"""
검색 문서 및 집계 버킷 모델
- SearchDocument: 인덱싱 대상 문서 (Customer, Product, OrderItem)
- Bucket: 집계 결과 (IntervalBucket, CategoryBucket)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Union

from pydantic import BaseModel, Field, field_serializer


# === 문서 ===

class SearchDocument(BaseModel):
    """인덱스 문서 공통 필드"""
    id: str = Field(..., min_length=1, description="문서 ID (원본 저장소 식별자)")
    created_at: datetime = Field(..., description="생성 시각")

    def to_source(self) -> Dict[str, Any]:
        """ES _source 본문으로 직렬화"""
        return self.model_dump(mode="json")


class Customer(SearchDocument):
    """고객"""
    name: str = ""
    surname: str = ""
    phone_number: str = ""
    hobbies: str = ""


class CategoryType(str, Enum):
    """상품 카테고리"""
    FOOD = "Food"
    ELECTRONICS = "Electronics"
    CLOTHING = "Clothing"


class Product(SearchDocument):
    """상품"""
    name: str = ""
    category: CategoryType
    price: Decimal

    @field_serializer("price")
    def _serialize_price(self, price: Decimal) -> float:
        return float(price)


class OrderItem(SearchDocument):
    """주문 항목"""
    customer_id: str
    product_id: str
    order_price: Decimal
    quantity: int

    @field_serializer("order_price")
    def _serialize_order_price(self, order_price: Decimal) -> float:
        return float(order_price)


DocumentLike = Union[SearchDocument, Mapping[str, Any]]


def document_id(document: DocumentLike) -> str:
    """문서 ID 추출"""
    if isinstance(document, SearchDocument):
        return document.id
    doc_id = document.get("id")
    if doc_id is None or doc_id == "":
        raise ValueError("Document has no 'id' field")
    return str(doc_id)


def document_source(document: DocumentLike) -> Dict[str, Any]:
    """문서를 _source dict로 변환"""
    if isinstance(document, SearchDocument):
        return document.to_source()
    return dict(document)


# === 집계 버킷 ===

# 버킷 메트릭 이름
UNIQUE_CUSTOMERS = "unique-customers"
QUANTITY_SUM = "quantity-sum"
PRICE_SUM = "price-sum"
PRODUCTS_COUNT = "products-count"
AVG_PRICE = "avg-price"


@dataclass
class Bucket:
    """집계 버킷 (키 + 이름별 메트릭 값)"""
    key: Union[int, str]
    doc_count: int = 0
    metrics: Dict[str, Union[int, float, Decimal]] = field(default_factory=dict)


@dataclass
class IntervalBucket:
    """주문 항목 기간별 버킷"""
    key: int
    timestamp: datetime
    unique_customers: int
    quantity_sum: float
    order_price_sum: Decimal
    doc_count: int = 0

    @classmethod
    def from_bucket(cls, bucket: Bucket) -> "IntervalBucket":
        key = int(bucket.key)
        return cls(
            key=key,
            timestamp=epoch_millis_to_datetime(key),
            unique_customers=bucket.metrics.get(UNIQUE_CUSTOMERS, 0),
            quantity_sum=bucket.metrics.get(QUANTITY_SUM, 0.0),
            order_price_sum=bucket.metrics.get(PRICE_SUM, Decimal("0.00")),
            doc_count=bucket.doc_count,
        )


@dataclass
class CategoryBucket:
    """상품 카테고리별 버킷"""
    key: str
    category: str
    total_products_count: int
    avg_price: Decimal
    doc_count: int = 0

    @classmethod
    def from_bucket(cls, bucket: Bucket) -> "CategoryBucket":
        key = str(bucket.key)
        return cls(
            key=key,
            category=key,
            total_products_count=bucket.metrics.get(PRODUCTS_COUNT, 0),
            avg_price=bucket.metrics.get(AVG_PRICE, Decimal("0.00")),
            doc_count=bucket.doc_count,
        )


def epoch_millis_to_datetime(millis: int) -> datetime:
    """epoch 밀리초 → UTC datetime"""
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
