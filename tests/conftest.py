"""
pytest 공통 fixture 정의
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from unittest.mock import AsyncMock, MagicMock

from elasticsearch import ApiError

from search.es_client import ESClient


def make_api_error(cls=ApiError, status: int = 400, error_type: str = "illegal_argument_exception", reason: str = "bad request"):
    """ES ApiError 계열 예외 생성"""
    body = {"error": {"type": error_type, "reason": reason}, "status": status}
    return cls(error_type, meta=MagicMock(status=status), body=body)


@pytest.fixture
def es():
    """AsyncElasticsearch 모킹"""
    mock = MagicMock()
    mock.ping = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    mock.indices.exists = AsyncMock(return_value=False)
    mock.indices.create = AsyncMock(return_value={"acknowledged": True, "index": "test"})
    mock.indices.delete = AsyncMock(return_value={"acknowledged": True})
    mock.indices.refresh = AsyncMock(return_value={"_shards": {"failed": 0}})
    mock.search = AsyncMock(return_value={"timed_out": False, "hits": {"total": {"value": 0}, "hits": []}})
    mock.index = AsyncMock(return_value={"result": "created"})
    mock.count = AsyncMock(return_value={"count": 0})
    return mock


@pytest.fixture
def client(es):
    """모킹된 AsyncElasticsearch를 사용하는 ESClient"""
    client = ESClient(["http://localhost:9200"], request_timeout=5)
    client._client = es
    return client
