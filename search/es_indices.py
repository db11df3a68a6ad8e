"""
Elasticsearch 인덱스 관리

엔티티별 인덱스 정의(매핑/설정)와 생성, 삭제, 새로고침을 담당합니다.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from elasticsearch import ApiError, ConnectionError, ConnectionTimeout, NotFoundError, TransportError

from search.errors import (
    BackendUnavailableError,
    IndexCreationError,
    SearchBackendError,
    SearchError,
    reason_from_exception,
)
from search.es_client import ESClient, response_body

logger = logging.getLogger(__name__)


class FieldType(Enum):
    """매핑 필드 타입"""
    KEYWORD = "keyword"
    TEXT = "text"
    DATE = "date"
    INTEGER = "integer"
    DOUBLE = "double"


class IndexStatus(Enum):
    """인덱스 생성/삭제 결과"""
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    DELETED = "deleted"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class IndexSettings:
    number_of_shards: int = 1
    number_of_replicas: int = 1

    def to_body(self) -> Dict[str, Any]:
        return {
            "number_of_shards": self.number_of_shards,
            "number_of_replicas": self.number_of_replicas,
        }


@dataclass(frozen=True)
class IndexDefinition:
    """
    인덱스 정의

    Attributes:
        name: 인덱스명 (엔티티 타입당 하나)
        mapping: 필드명 → 필드 타입 (선언 순서 유지)
        settings: 샤드/레플리카 설정
    """
    name: str
    mapping: Dict[str, FieldType]
    settings: IndexSettings = field(default_factory=IndexSettings)

    def mappings_body(self) -> Dict[str, Any]:
        return {
            "properties": {
                field_name: {"type": field_type.value}
                for field_name, field_type in self.mapping.items()
            }
        }


CUSTOMERS_INDEX = IndexDefinition(
    name="customers-data-index",
    mapping={
        "id": FieldType.KEYWORD,
        "name": FieldType.KEYWORD,
        "surname": FieldType.KEYWORD,
        "phone_number": FieldType.KEYWORD,
        "hobbies": FieldType.TEXT,
        "created_at": FieldType.DATE,
    },
)

PRODUCTS_INDEX = IndexDefinition(
    name="products-data-index",
    mapping={
        "id": FieldType.KEYWORD,
        "category": FieldType.KEYWORD,
        "name": FieldType.TEXT,
        "price": FieldType.DOUBLE,
        "created_at": FieldType.DATE,
    },
)

ORDER_ITEMS_INDEX = IndexDefinition(
    name="orderitems-data-index",
    mapping={
        "id": FieldType.KEYWORD,
        "customer_id": FieldType.KEYWORD,
        "product_id": FieldType.KEYWORD,
        "quantity": FieldType.INTEGER,
        "order_price": FieldType.DOUBLE,
        "created_at": FieldType.DATE,
    },
)

INDICES: Dict[str, IndexDefinition] = {
    definition.name: definition
    for definition in (CUSTOMERS_INDEX, PRODUCTS_INDEX, ORDER_ITEMS_INDEX)
}


class ESIndexManager:
    """
    Elasticsearch 인덱스 관리자

    인덱스 존재 확인, 생성, 삭제, 새로고침 기능을 제공합니다.
    호출 사이에 로컬 상태를 유지하지 않습니다.

    사용 예:
        manager = ESIndexManager(client)
        status = await manager.ensure_index(PRODUCTS_INDEX)
    """

    def __init__(self, client: ESClient):
        self.client = client

    async def exists(self, index_name: str) -> bool:
        try:
            return bool(await self.client.using_client(
                lambda es: es.indices.exists(index=index_name),
                operation="indices.exists",
                index=index_name,
            ))
        except (ApiError, TransportError) as e:
            raise _backend_error(e, index_name, f"Failed to check index {index_name}") from e

    async def ensure_index(self, definition: IndexDefinition) -> IndexStatus:
        """
        인덱스가 없을 때만 생성

        Args:
            definition: 인덱스 정의

        Returns:
            CREATED 또는 ALREADY_EXISTS

        Raises:
            IndexCreationError: 생성 실패 또는 미승인 응답
            BackendUnavailableError: 연결 불가
        """
        index_name = definition.name
        logger.info(f"[{index_name}] -- Create index")

        if await self.exists(index_name):
            logger.info(f"[{index_name}] -- Index exists.")
            return IndexStatus.ALREADY_EXISTS

        try:
            response = await self.client.using_client(
                lambda es: es.indices.create(
                    index=index_name,
                    mappings=definition.mappings_body(),
                    settings=definition.settings.to_body(),
                ),
                operation="indices.create",
                index=index_name,
            )
        except (ApiError, TransportError) as e:
            # 동시 생성 경합: 다른 호출자가 먼저 생성함
            if isinstance(e, ApiError) and _error_type(e) == "resource_already_exists_exception":
                logger.info(f"[{index_name}] -- Index exists.")
                return IndexStatus.ALREADY_EXISTS
            raise _backend_error(e, index_name, f"Failed to create index {index_name}", IndexCreationError) from e

        if not response_body(response).get("acknowledged"):
            logger.error(f"[{index_name}] -- Index creation was not acknowledged")
            raise IndexCreationError(
                f"Index creation not acknowledged: {index_name}",
                index=index_name,
                reason="index creation not acknowledged",
            )

        logger.info(f"[{index_name}] -- Index created.")
        return IndexStatus.CREATED

    async def delete_index(self, index_name: str) -> IndexStatus:
        """
        인덱스 삭제

        Returns:
            DELETED 또는 NOT_FOUND

        Raises:
            SearchBackendError: 그 외 실패
            BackendUnavailableError: 연결 불가
        """
        logger.info(f"[{index_name}] -- Delete index")
        try:
            response = await self.client.using_client(
                lambda es: es.indices.delete(index=index_name),
                operation="indices.delete",
                index=index_name,
            )
        except NotFoundError:
            logger.warning(f"[{index_name}] -- Index does not exist.")
            return IndexStatus.NOT_FOUND
        except (ApiError, TransportError) as e:
            raise _backend_error(e, index_name, f"Failed to delete index {index_name}") from e

        if not response_body(response).get("acknowledged"):
            raise SearchBackendError(
                f"Index deletion not acknowledged: {index_name}",
                index=index_name,
                reason="index deletion not acknowledged",
            )

        logger.info(f"[{index_name}] -- Delete index succeeded.")
        return IndexStatus.DELETED

    async def reset_index(self, definition: IndexDefinition) -> IndexStatus:
        """전체 재인덱싱 전 인덱스 삭제 후 재생성"""
        await self.delete_index(definition.name)
        return await self.ensure_index(definition)

    async def ensure_all(
        self,
        definitions: Optional[List[IndexDefinition]] = None,
    ) -> Dict[str, IndexStatus]:
        """모든 인덱스 생성"""
        results = {}
        for definition in definitions or list(INDICES.values()):
            results[definition.name] = await self.ensure_index(definition)
        return results

    async def delete_all(
        self,
        definitions: Optional[List[IndexDefinition]] = None,
    ) -> Dict[str, IndexStatus]:
        """모든 인덱스 삭제"""
        results = {}
        for definition in definitions or list(INDICES.values()):
            results[definition.name] = await self.delete_index(definition.name)
        return results

    async def refresh_index(self, index_name: str) -> None:
        """
        인덱스 새로고침

        인덱싱된 문서를 즉시 검색 가능하게 만듭니다.
        """
        try:
            await self.client.using_client(
                lambda es: es.indices.refresh(index=index_name),
                operation="indices.refresh",
                index=index_name,
            )
        except (ApiError, TransportError) as e:
            raise _backend_error(e, index_name, f"Failed to refresh index {index_name}") from e
        logger.info(f"[{index_name}] -- Index refreshed.")

    async def get_indices_status(self) -> Dict[str, Dict[str, Any]]:
        """
        모든 인덱스 상태 조회

        Returns:
            인덱스별 존재 여부와 문서 수
        """
        status = {}
        for index_name in INDICES:
            if not await self.exists(index_name):
                status[index_name] = {"exists": False, "docs_count": 0}
                continue
            try:
                response = await self.client.using_client(
                    lambda es: es.count(index=index_name),
                    operation="count",
                    index=index_name,
                )
            except (ApiError, TransportError) as e:
                raise _backend_error(e, index_name, f"Failed to count documents in {index_name}") from e
            status[index_name] = {"exists": True, "docs_count": response_body(response)["count"]}
        return status


def _backend_error(error: Exception, index_name: str, message: str, error_cls=SearchBackendError) -> SearchError:
    """ES 예외를 검색 모듈 예외로 변환 (연결 오류는 BackendUnavailableError)"""
    reason = reason_from_exception(error)
    logger.error(f"[{index_name}] -- {message}: {reason}")
    if isinstance(error, (ConnectionError, ConnectionTimeout)):
        return BackendUnavailableError(index=index_name, details={"reason": reason})
    return error_cls(message, index=index_name, reason=reason)


def _error_type(error: ApiError) -> Optional[str]:
    body = error.body
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("type")
    return None


# CLI 인터페이스
async def main(argv: Optional[List[str]] = None):
    """CLI 진입점"""
    import argparse

    from search.config import ESSettings

    parser = argparse.ArgumentParser(description="Storefront ES Index Manager")
    parser.add_argument("action", choices=["create", "delete", "status", "refresh"])
    parser.add_argument("--index", "-i", choices=sorted(INDICES), help="Target index (default: all)")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    client = ESClient.from_settings(ESSettings.from_env())
    manager = ESIndexManager(client)
    targets = [INDICES[args.index]] if args.index else list(INDICES.values())

    try:
        if args.action == "create":
            results = await manager.ensure_all(targets)
            for idx, result in results.items():
                print(f"  {idx}: {result.value}")

        elif args.action == "delete":
            results = await manager.delete_all(targets)
            for idx, result in results.items():
                print(f"  {idx}: {result.value}")

        elif args.action == "status":
            status = await manager.get_indices_status()
            print("\n=== ES Index Status ===")
            for idx, info in status.items():
                if info["exists"]:
                    print(f"  {idx}: {info['docs_count']:,} docs")
                else:
                    print(f"  {idx}: NOT EXISTS")

        elif args.action == "refresh":
            for definition in targets:
                await manager.refresh_index(definition.name)
                print(f"  {definition.name}: OK")

    finally:
        await client.close()


def run():
    """콘솔 스크립트 진입점"""
    import asyncio
    asyncio.run(main())


if __name__ == "__main__":
    run()
