"""
검색 모듈 커스텀 예외 클래스
- 표준화된 에러 핸들링
- Elasticsearch 응답에서 진단 사유 추출
"""

from elasticsearch import ApiError, TransportError

UNKNOWN_ERROR = "unknown error"


class SearchError(Exception):
    """검색 모듈 기본 예외"""

    def __init__(self, message: str, index: str = None, details: dict = None):
        self.message = message
        self.index = index
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "index": self.index,
            "details": self.details
        }


class SearchConfigError(SearchError):
    """설정 값 오류"""

    def __init__(self, message: str, key: str = None):
        super().__init__(message, details={"key": key} if key else None)
        self.key = key


class BackendUnavailableError(SearchError):
    """Elasticsearch 연결 불가"""

    def __init__(self, message: str = "Elasticsearch backend is unreachable", index: str = None, details: dict = None):
        super().__init__(message, index=index, details=details)


class SearchBackendError(SearchError):
    """백엔드가 요청을 거부하거나 유효하지 않은 응답을 반환"""

    def __init__(self, message: str, index: str = None, reason: str = None, details: dict = None):
        super().__init__(message, index=index, details=details)
        self.reason = reason or UNKNOWN_ERROR

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class IndexCreationError(SearchBackendError):
    """인덱스 생성 실패 또는 미승인(acknowledged=false)"""


class SearchRequestError(SearchBackendError):
    """검색/집계 요청 실패"""


class DocumentRejectedError(SearchBackendError):
    """매핑 위반 등으로 문서가 거부됨"""

    def __init__(self, message: str, index: str = None, reason: str = None, doc_id: str = None):
        super().__init__(message, index=index, reason=reason, details={"doc_id": doc_id})
        self.doc_id = doc_id


def reason_from_error_body(error) -> str:
    """ES 에러 객체(dict 또는 문자열)에서 사유 문자열 추출"""
    if isinstance(error, dict):
        root_causes = error.get("root_cause") or []
        reason = error.get("reason")
        if not reason and root_causes:
            reason = root_causes[0].get("reason")
        if reason:
            error_type = error.get("type")
            return f"{error_type}: {reason}" if error_type else reason
        return error.get("type") or UNKNOWN_ERROR
    if isinstance(error, str) and error:
        return error
    return UNKNOWN_ERROR


def reason_from_exception(exc: Exception) -> str:
    """
    예외에서 백엔드 진단 사유 추출

    ApiError는 응답 body의 error.reason을 사용하고,
    TransportError는 message와 첫 번째 하위 오류를 사용합니다.
    그 외 예외는 메시지를 사용합니다. 모두 없으면 "unknown error".
    """
    if isinstance(exc, ApiError):
        body = exc.body
        if isinstance(body, dict) and "error" in body:
            return reason_from_error_body(body["error"])
        if exc.message:
            return str(exc.message)
    if isinstance(exc, TransportError):
        reason = str(exc.message) if exc.message else ""
        if exc.errors:
            cause = str(exc.errors[0])
            reason = f"{reason} ({cause})" if reason else cause
        return reason or UNKNOWN_ERROR
    text = str(exc)
    return text if text else UNKNOWN_ERROR
