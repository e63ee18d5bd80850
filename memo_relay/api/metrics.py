"""
Prometheus-style metrics endpoint.
"""
import time
from typing import Callable, Dict, List, Tuple

from fastapi import APIRouter, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from memo_relay.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Metrics"])

QUEUE_EVENTS = {
    "enqueued": "Queue writes since startup; a re-delivered event overwrites its key and is counted again",
    "pulled": "Messages returned by pull since startup",
    "acked": "Queue entries deleted by ack since startup",
}
MAX_DURATIONS = 1000
UNMATCHED_PATH = "unmatched"
KNOWN_METHODS = {"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"}

# Per-process counters; reset on restart
_requests: Dict[Tuple[str, str, int], int] = {}
_durations: Dict[Tuple[str, str], List[float]] = {}
_queue: Dict[str, int] = {name: 0 for name in QUEUE_EVENTS}
_startup_time = None


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record an HTTP request metric."""
    key = (method, path, status_code)
    _requests[key] = _requests.get(key, 0) + 1
    
    durations = _durations.setdefault((method, path), [])
    durations.append(duration)
    if len(durations) > MAX_DURATIONS:
        del durations[:-MAX_DURATIONS]


def record_queue_event(name: str, count: int = 1) -> None:
    """Add `count` to one of the queue counters (enqueued, pulled, acked)."""
    _queue[name] = _queue.get(name, 0) + count


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"").replace("\n", "\\n")


def route_label(request: Request) -> str:
    """Route template of the request, so arbitrary URLs cannot add label values."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_PATH


def set_startup_time() -> None:
    global _startup_time
    _startup_time = time.time()


def reset_metrics() -> None:
    _requests.clear()
    _durations.clear()
    for name in QUEUE_EVENTS:
        _queue[name] = 0


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)
        
        start_time = time.time()
        response = await call_next(request)
        
        record_request(
            method=request.method if request.method in KNOWN_METHODS else "OTHER",
            path=route_label(request),
            status_code=response.status_code,
            duration=time.time() - start_time,
        )
        
        return response


def generate_prometheus_metrics(app_version: str = "1.0.0") -> str:
    """Generate Prometheus-format metrics output."""
    lines = [
        "# HELP relay_info Relay build information",
        "# TYPE relay_info gauge",
        f'relay_info{{version="{app_version}"}} 1',
        "",
    ]
    
    if _startup_time:
        lines += [
            "# HELP relay_start_time_seconds Unix timestamp when the relay started",
            "# TYPE relay_start_time_seconds gauge",
            f"relay_start_time_seconds {_startup_time:.3f}",
            "",
        ]
    
    for name, help_text in QUEUE_EVENTS.items():
        metric = f"relay_messages_{name}_total"
        lines += [
            f"# HELP {metric} {help_text}",
            f"# TYPE {metric} counter",
            f"{metric} {_queue[name]}",
            "",
        ]
    
    lines.append("# HELP http_requests_total Total number of HTTP requests")
    lines.append("# TYPE http_requests_total counter")
    for (method, path, status), count in sorted(_requests.items()):
        labels = f'method="{_escape_label(method)}",path="{_escape_label(path)}",status="{status}"'
        lines.append(f"http_requests_total{{{labels}}} {count}")
    lines.append("")
    
    lines.append("# HELP http_request_duration_seconds HTTP request duration in seconds")
    lines.append("# TYPE http_request_duration_seconds summary")
    for (method, path), durations in sorted(_durations.items()):
        if durations:
            labels = f'method="{_escape_label(method)}",path="{_escape_label(path)}"'
            lines.append(f"http_request_duration_seconds_sum{{{labels}}} {sum(durations):.6f}")
            lines.append(f"http_request_duration_seconds_count{{{labels}}} {len(durations)}")
    
    return "\n".join(lines) + "\n"


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Returns metrics in Prometheus exposition format.",
    response_class=Response,
)
async def metrics(request: Request) -> Response:
    content = generate_prometheus_metrics(request.app.version)
    return Response(
        content=content,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
