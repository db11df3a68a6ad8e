"""
Elasticsearch 벌크 인덱서

문서 시퀀스(무한 스트림 포함)를 고정 크기 배치로 나누어
병렬 워커로 인덱싱합니다. 일시적 오류는 지수 백오프로 재시도하고,
매핑 위반 등 영구 오류 문서는 DroppedDocument로 보고합니다.

재시도 정책:
    n번째 재시도(1부터) 전 대기 시간 =
        min(max_backoff_seconds, backoff_seconds * 2 ** (n - 1))
    같은 값이 async_bulk에 전달되어 429(문서 단위 및 요청 전체)는
    async_bulk 안에서만 재시도되고, 연결 오류와 408/502/503/504는
    배치 루프에서 재시도됩니다.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, List, Optional, Union

from elasticsearch import ApiError, BadRequestError, ConnectionError, ConnectionTimeout, TransportError
from elasticsearch.helpers import async_bulk

from search.config import ESSettings
from search.errors import (
    BackendUnavailableError,
    DocumentRejectedError,
    SearchBackendError,
    reason_from_error_body,
    reason_from_exception,
)
from search.es_client import ESClient, response_body
from search.models import DocumentLike, document_id, document_source

logger = logging.getLogger(__name__)

# 재시도 대상 HTTP 상태 코드
TRANSIENT_STATUS_CODES = (408, 429, 502, 503, 504)

Documents = Union[Iterable[DocumentLike], AsyncIterable[DocumentLike]]


@dataclass(frozen=True)
class BulkConfig:
    """벌크 인덱싱 설정"""
    batch_size: int = 1000
    parallelism: int = 4
    max_retries: int = 2
    backoff_seconds: float = 30.0
    max_backoff_seconds: float = 600.0
    timeout_seconds: float = 600.0

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.parallelism < 1:
            raise ValueError(f"parallelism must be >= 1, got {self.parallelism}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff_seconds < 0 or self.max_backoff_seconds < 0:
            raise ValueError("backoff durations must be >= 0")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")

    @classmethod
    def from_settings(cls, settings: ESSettings) -> "BulkConfig":
        return cls(
            batch_size=settings.bulk_batch_size,
            parallelism=settings.bulk_parallelism,
            max_retries=settings.bulk_max_retries,
            backoff_seconds=settings.bulk_backoff_seconds,
            timeout_seconds=settings.bulk_timeout_seconds,
        )

    def backoff_delay(self, attempt: int) -> float:
        """attempt번째 재시도 전 대기 시간 (초)"""
        return min(self.max_backoff_seconds, self.backoff_seconds * (2 ** (attempt - 1)))


@dataclass
class DroppedDocument:
    """영구 실패로 제외된 문서"""
    document: Any
    doc_id: Optional[str]
    reason: str
    status: Optional[int] = None


@dataclass
class BulkOutcome:
    """벌크 인덱싱 결과"""
    index: str
    total_submitted: int = 0
    total_batches: int = 0
    indexed: int = 0
    batches_with_dropped: int = 0
    failed_batches: int = 0
    incomplete_batches: int = 0
    dropped: List[DroppedDocument] = field(default_factory=list)
    timed_out: bool = False
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return not (
            self.dropped
            or self.failed_batches
            or self.incomplete_batches
            or self.timed_out
            or self.cancelled
        )

    def __str__(self) -> str:
        return (
            f"{self.index}: {self.indexed:,}/{self.total_submitted:,} indexed "
            f"in {self.total_batches:,} batches "
            f"(dropped={len(self.dropped)}, failed_batches={self.failed_batches}, "
            f"incomplete_batches={self.incomplete_batches}) "
            f"in {self.elapsed_seconds:.1f}s"
        )


def is_transient_error(exc: Exception) -> bool:
    """재시도 가능한 트랜스포트 오류인지 판별"""
    if isinstance(exc, ApiError):
        return exc.meta.status in TRANSIENT_STATUS_CODES
    return isinstance(exc, (ConnectionError, ConnectionTimeout))


def _retried_by_helper(exc: Exception) -> bool:
    """async_bulk가 이미 자체 재시도한 429 응답"""
    return isinstance(exc, ApiError) and exc.meta.status == 429


async def _iterate(documents: Documents) -> AsyncIterator[DocumentLike]:
    if hasattr(documents, "__aiter__"):
        async for document in documents:
            yield document
    else:
        for document in documents:
            yield document


async def iter_batches(documents: Documents, batch_size: int) -> AsyncIterator[List[DocumentLike]]:
    """입력 순서를 유지하며 batch_size 단위로 분할"""
    batch: List[DocumentLike] = []
    async for document in _iterate(documents):
        batch.append(document)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


class _BulkJob:
    """index_all 호출 1회의 진행 상태"""

    def __init__(self, index: str, config: BulkConfig, cancel_event: Optional[asyncio.Event]):
        self.index = index
        self.config = config
        self.cancel_event = cancel_event
        self.outcome = BulkOutcome(index=index)
        self.queue: "asyncio.Queue[List[DocumentLike]]" = asyncio.Queue(maxsize=config.parallelism)
        self.completed_batches = 0
        self.connection_failures = 0

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class ESBulkLoader:
    """
    Elasticsearch 벌크 로더

    배치 단위로 문서를 병렬 인덱싱합니다.
    배치 간 순서는 보장하지 않으며 배치 내부 순서는 유지됩니다.

    사용 예:
        loader = ESBulkLoader(client, BulkConfig(batch_size=1000, parallelism=4))
        outcome = await loader.index_all("products-data-index", products)
        for dropped in outcome.dropped:
            print(dropped.doc_id, dropped.reason)
    """

    def __init__(self, client: ESClient, config: Optional[BulkConfig] = None):
        self.client = client
        self.config = config or BulkConfig()

    async def index_all(
        self,
        index: str,
        documents: Documents,
        config: Optional[BulkConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BulkOutcome:
        """
        문서 전체 벌크 인덱싱

        Args:
            index: 대상 인덱스명
            documents: 문서 iterable 또는 async iterable
            config: 호출별 설정 (기본값: 로더 설정)
            cancel_event: set되면 새 배치 전송을 중단하고 진행 중 요청을 취소

        Returns:
            BulkOutcome

        Raises:
            BackendUnavailableError: 백엔드에 전혀 연결할 수 없음
        """
        config = config or self.config
        logger.info(f"[{index}] -- Index all documents")
        started = time.perf_counter()

        deadline = started + config.timeout_seconds
        job = _BulkJob(index, config, cancel_event)

        try:
            reachable = await asyncio.wait_for(self.client.ping(), timeout=config.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"[{index}] -- Bulk indexing timed out after {config.timeout_seconds}s (ping)")
            job.outcome.timed_out = True
            job.outcome.elapsed_seconds = time.perf_counter() - started
            return job.outcome
        if not reachable:
            logger.error(f"[{index}] -- Elasticsearch is unreachable, bulk indexing aborted")
            raise BackendUnavailableError(index=index)

        producer = asyncio.create_task(self._produce(job, documents))
        workers = [asyncio.create_task(self._worker(job)) for _ in range(config.parallelism)]
        drain = asyncio.create_task(self._drain(job, producer))
        waiters = {drain, *workers}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=max(0.0, deadline - time.perf_counter()),
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not done:
                job.outcome.timed_out = True
                logger.warning(f"[{index}] -- Bulk indexing timed out after {config.timeout_seconds}s")
            else:
                for task in done:
                    if task is not cancel_waiter and task.exception() is not None:
                        raise task.exception()
                if job.cancel_requested:
                    job.outcome.cancelled = True
                    logger.warning(f"[{index}] -- Bulk indexing cancelled")
        finally:
            pending = [producer, drain, *workers]
            if cancel_waiter is not None:
                pending.append(cancel_waiter)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        outcome = job.outcome
        outcome.incomplete_batches = outcome.total_batches - job.completed_batches
        outcome.elapsed_seconds = time.perf_counter() - started

        if outcome.total_batches and outcome.indexed == 0 and job.connection_failures == outcome.total_batches:
            logger.error(f"[{index}] -- Every batch failed to reach Elasticsearch")
            raise BackendUnavailableError(index=index, details={"failed_batches": outcome.failed_batches})

        if outcome.failed_batches == 0 and outcome.batches_with_dropped == 0 and outcome.incomplete_batches == 0:
            logger.info(f"[{index}] -- \"index_all\" completed with no failed batches: {outcome}")
        else:
            logger.warning(
                f"[{index}] -- \"index_all\" completed with [{outcome.failed_batches}] failed batches, "
                f"[{outcome.batches_with_dropped}] batches with dropped documents: {outcome}"
            )
        return outcome

    async def _produce(self, job: _BulkJob, documents: Documents):
        async for batch in iter_batches(documents, job.config.batch_size):
            if job.cancel_requested:
                break
            await job.queue.put(batch)
            job.outcome.total_submitted += len(batch)
            job.outcome.total_batches += 1

    async def _drain(self, job: _BulkJob, producer: "asyncio.Task"):
        await producer
        await job.queue.join()

    async def _worker(self, job: _BulkJob):
        while True:
            batch = await job.queue.get()
            try:
                await self._send_batch(job, batch)
            finally:
                job.queue.task_done()

    async def _send_batch(self, job: _BulkJob, batch: List[DocumentLike]):
        """배치 1건 전송 (일시적 오류 재시도)"""
        index, config, outcome = job.index, job.config, job.outcome

        actions = []
        by_id: Dict[str, DocumentLike] = {}
        dropped: List[DroppedDocument] = []
        for document in batch:
            try:
                doc_id = document_id(document)
                source = document_source(document)
            except (ValueError, TypeError) as e:
                dropped.append(DroppedDocument(document=document, doc_id=None, reason=str(e)))
                continue
            by_id[doc_id] = document
            actions.append({"_index": index, "_id": doc_id, "_source": source})

        attempt = 0
        errors: List[Dict[str, Any]] = []
        while actions:
            if job.cancel_requested:
                logger.warning(f"[{index}] -- Batch of {len(batch)} documents left incomplete (cancelled)")
                return
            try:
                success, errors = await self.client.using_client(
                    lambda es: async_bulk(
                        es,
                        actions,
                        chunk_size=len(actions),
                        max_retries=config.max_retries,
                        initial_backoff=config.backoff_seconds,
                        max_backoff=config.max_backoff_seconds,
                        raise_on_error=False,
                    ),
                    operation="bulk",
                    index=index,
                )
                outcome.indexed += success
                break
            except (ApiError, TransportError) as e:
                if not is_transient_error(e) or _retried_by_helper(e) or attempt >= config.max_retries:
                    reason = reason_from_exception(e)
                    logger.error(f"[{index}] -- Batch of {len(actions)} documents failed after {attempt + 1} attempts: {reason}")
                    outcome.failed_batches += 1
                    if isinstance(e, (ConnectionError, ConnectionTimeout)):
                        job.connection_failures += 1
                    job.completed_batches += 1
                    return
                attempt += 1
                delay = config.backoff_delay(attempt)
                logger.warning(
                    f"[{index}] -- Bulk request failed ({reason_from_exception(e)}), "
                    f"retry {attempt}/{config.max_retries} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        for error in errors:
            op = next(iter(error.values()), {})
            doc_id = op.get("_id")
            dropped.append(DroppedDocument(
                document=by_id.get(doc_id),
                doc_id=doc_id,
                reason=reason_from_error_body(op.get("error")),
                status=op.get("status"),
            ))

        if dropped:
            outcome.batches_with_dropped += 1
            outcome.dropped.extend(dropped)
            for item in dropped[:3]:  # 처음 3개만 로깅
                logger.error(f"[{index}] -- Document dropped: id={item.doc_id}, reason={item.reason}")
        job.completed_batches += 1

    async def index_document(self, index: str, document: DocumentLike) -> str:
        """
        단일 문서 인덱싱

        Returns:
            ES 응답의 result ("created" 또는 "updated")

        Raises:
            DocumentRejectedError: 매핑 위반 등으로 거부됨
            SearchBackendError: 그 외 실패
        """
        logger.info(f"[{index}] -- Index document")
        doc_id = document_id(document)
        try:
            response = await self.client.using_client(
                lambda es: es.index(index=index, id=doc_id, document=document_source(document)),
                operation="index",
                index=index,
            )
        except BadRequestError as e:
            raise DocumentRejectedError(
                f"Document {doc_id} rejected by {index}",
                index=index,
                reason=reason_from_exception(e),
                doc_id=doc_id,
            ) from e
        except (ApiError, TransportError) as e:
            raise SearchBackendError(
                f"Failed to index document {doc_id}",
                index=index,
                reason=reason_from_exception(e),
            ) from e

        result = response_body(response).get("result")
        if result not in ("created", "updated"):
            raise SearchBackendError(
                f"Unexpected index response for document {doc_id}",
                index=index,
                reason=f"unexpected result: {result}",
            )
        return result
