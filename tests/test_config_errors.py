"""
설정, 예외, 클라이언트 초기화 테스트
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from elasticsearch import ConnectionError, NotFoundError

from conftest import make_api_error
from search import config
from search.config import ESSettings
from search.errors import (
    BackendUnavailableError,
    DocumentRejectedError,
    SearchBackendError,
    SearchConfigError,
    reason_from_error_body,
    reason_from_exception,
)
from search.es_bulk import BulkConfig
from search.es_client import ESClient, response_body


class TestESSettings:
    """환경 변수 설정"""

    def test_defaults(self):
        settings = ESSettings()

        assert settings.nodes == ["http://localhost:9200"]
        assert settings.basic_auth is None
        assert settings.bulk_batch_size == 1000
        assert settings.bulk_parallelism == 4

    def test_from_env(self, monkeypatch):
        monkeypatch.setattr(config, "ES_NODES", "http://es1:9200, http://es2:9200")
        monkeypatch.setattr(config, "ES_USERNAME", "elastic")
        monkeypatch.setattr(config, "ES_PASSWORD", "changeme")
        monkeypatch.setattr(config, "ES_BULK_BATCH_SIZE", "500")

        settings = ESSettings.from_env()

        assert settings.nodes == ["http://es1:9200", "http://es2:9200"]
        assert settings.basic_auth == ("elastic", "changeme")
        assert settings.bulk_batch_size == 500

    @pytest.mark.parametrize("name,value", [
        ("ES_BULK_BATCH_SIZE", "many"),
        ("ES_BULK_PARALLELISM", "0"),
        ("ES_TIMEOUT", "-1"),
        ("ES_NODES", " , "),
    ])
    def test_invalid_value(self, monkeypatch, name, value):
        monkeypatch.setattr(config, name, value)

        with pytest.raises(SearchConfigError) as exc_info:
            ESSettings.from_env()

        assert exc_info.value.key == name

    def test_bulk_config_from_settings(self):
        bulk = BulkConfig.from_settings(ESSettings(bulk_batch_size=200, bulk_backoff_seconds=1))

        assert bulk.batch_size == 200
        assert bulk.backoff_seconds == 1
        assert bulk.parallelism == 4


class TestErrors:
    """예외 클래스"""

    def test_to_dict(self):
        error = SearchBackendError("Search failed", index="products-data-index", reason="bad sort")

        assert error.to_dict() == {
            "error_type": "SearchBackendError",
            "message": "Search failed",
            "index": "products-data-index",
            "details": {},
            "reason": "bad sort",
        }

    def test_default_reason(self):
        assert SearchBackendError("failed").reason == "unknown error"

    def test_document_rejected_details(self):
        error = DocumentRejectedError("rejected", reason="bad price", doc_id="p-1")

        assert error.details == {"doc_id": "p-1"}

    def test_backend_unavailable_default_message(self):
        assert "unreachable" in str(BackendUnavailableError())

    def test_reason_from_error_body(self):
        assert reason_from_error_body({"type": "x_exception", "reason": "broken"}) == "x_exception: broken"
        assert reason_from_error_body({"type": "x", "root_cause": [{"reason": "root"}]}) == "x: root"
        assert reason_from_error_body(None) == "unknown error"

    def test_reason_from_api_error(self):
        error = make_api_error(NotFoundError, 404, "index_not_found_exception", "no such index [x]")

        assert reason_from_exception(error) == "index_not_found_exception: no such index [x]"

    def test_reason_from_transport_error(self):
        assert reason_from_exception(ConnectionError("refused")) == "refused"

    def test_reason_from_transport_error_with_cause(self):
        error = ConnectionError("Connection error caused by", errors=(OSError("Connection refused"),))

        assert reason_from_exception(error) == "Connection error caused by (Connection refused)"


class TestESClient:
    """클라이언트 초기화"""

    def test_requires_node(self):
        with pytest.raises(ValueError):
            ESClient([])

    def test_basic_auth_passed(self):
        with patch("search.es_client.AsyncElasticsearch") as factory:
            client = ESClient(["http://es:9200"], basic_auth=("elastic", "pw"), request_timeout=30, max_retries=1)
            client.client

        factory.assert_called_once_with(
            hosts=["http://es:9200"],
            request_timeout=30,
            retry_on_timeout=True,
            max_retries=1,
            basic_auth=("elastic", "pw"),
        )

    def test_no_auth_when_username_empty(self):
        with patch("search.es_client.AsyncElasticsearch") as factory:
            ESClient.from_settings(ESSettings()).client

        assert "basic_auth" not in factory.call_args.kwargs

    def test_client_reused(self):
        with patch("search.es_client.AsyncElasticsearch") as factory:
            client = ESClient(["http://es:9200"])
            assert client.client is client.client

        assert factory.call_count == 1

    def test_ping_connection_error_is_false(self, client, es):
        es.ping.side_effect = ConnectionError("refused")

        assert asyncio.run(client.ping()) is False

    def test_using_client_propagates(self, client, es):
        es.indices.exists.side_effect = ConnectionError("refused")

        with pytest.raises(ConnectionError):
            asyncio.run(client.using_client(lambda c: c.indices.exists(index="x"), operation="exists"))

    def test_close(self, client, es):
        asyncio.run(client.close())

        es.close.assert_awaited_once()
        assert client._client is None

    def test_context_manager_closes(self, client, es):
        async def scenario():
            async with client as c:
                return await c.ping()

        assert asyncio.run(scenario()) is True
        es.close.assert_awaited_once()

    def test_response_body_unwraps(self):
        wrapped = MagicMock(body={"ok": True})

        assert response_body(wrapped) == {"ok": True}
        assert response_body({"ok": True}) == {"ok": True}
