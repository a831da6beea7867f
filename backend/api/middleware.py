import logging
import time
import uuid

logger = logging.getLogger("bookbazaar.request")

API_PREFIX = "/api/"


def _client_ip(request) -> str | None:
    # First X-Forwarded-For hop when behind the platform proxy; not trusted, logging only.
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return str(forwarded).split(",")[0].strip() or None
    remote = request.META.get("REMOTE_ADDR")
    return str(remote).strip() if remote else None


class RequestIdAndLoggingMiddleware:
    """Tag every request with an id and log one structured line per API call.

    The id comes from an incoming ``X-Request-ID`` header or is generated, is
    echoed back in the response header and is stamped into API error bodies
    (together with ``message``) when a view built the error response itself.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        started = time.perf_counter()
        request.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        response = self.get_response(request)

        is_api = request.path.startswith(API_PREFIX)
        if is_api and response.status_code >= 400:
            self._complete_error_body(response, request.request_id)

        if not getattr(response, "streaming", False):
            response["X-Request-ID"] = request.request_id

        if is_api:
            self._log(request, response, (time.perf_counter() - started) * 1000.0)
        return response

    @staticmethod
    def _complete_error_body(response, request_id: str) -> None:
        data = getattr(response, "data", None)
        if not isinstance(data, dict):
            return

        missing = {}
        if "message" not in data and "detail" in data:
            missing["message"] = str(data["detail"])
        if "request_id" not in data:
            missing["request_id"] = request_id
        if not missing:
            return

        data.update(missing)
        # Already rendered by the time it gets here.
        if hasattr(response, "rendered_content"):
            response.content = response.rendered_content

    @staticmethod
    def _log(request, response, duration_ms: float) -> None:
        user = getattr(request, "user", None)
        match = getattr(request, "resolver_match", None)
        logger.info(
            "request",
            extra={
                "request_id": request.request_id,
                "user_id": user.id if user is not None and user.is_authenticated else None,
                "client_ip": _client_ip(request),
                "method": request.method,
                "path": request.path,
                "view": getattr(match, "view_name", None),
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
