import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

REQUEST_ID_HEADER = "X-Request-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger()


class CorrelationIdMiddleware:
    """Tag every log line of a request with one correlation id.

    The id comes from the ``X-Request-ID`` header or is a fresh UUID4.  It
    is bound into structlog's contextvars, so ``order.*`` and ``stock.*``
    events logged by the services carry it, and it is echoed back on the
    response.  Side effects staged during the request pass the id on to
    their outbox delivery task.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = correlation_id_var.set(cid)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)

        path = request.get_full_path()
        logger.info("request_started", method=request.method, path=path)
        try:
            response = self.get_response(request)
        finally:
            correlation_id_var.reset(token)
        logger.info(
            "request_finished",
            method=request.method,
            path=path,
            status_code=response.status_code,
        )

        response[REQUEST_ID_HEADER] = cid
        return response
