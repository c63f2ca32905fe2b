from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(EngineError):
    status_code = 404


class ValidationError(EngineError):
    status_code = 400


class MalformedDocument(ValidationError):
    def __init__(self, collection: str, doc_id: str, problem: str) -> None:
        super().__init__(f"Malformed {collection} document {doc_id!r}: {problem}")
        self.collection = collection
        self.doc_id = doc_id


class Conflict(EngineError):
    status_code = 409


class Unauthorized(EngineError):
    status_code = 401


class Forbidden(EngineError):
    status_code = 403


class ExternalServiceFailure(EngineError):
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.details = details or message
        self.execution_id = execution_id
