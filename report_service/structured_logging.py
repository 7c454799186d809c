"""
Logging for the report relay.

Every log line is one JSON object. A per-request ID travels in a ContextVar,
so the OCR and Gemini calls made for one request share it. Failures carry
their error code (and the upstream HTTP status, when OCR or Gemini gave one)
as top-level fields, so a failed request can be traced without parsing the
message text.

    log_event(logger, logging.INFO, "OCR done", lines=12)
    logger.warning("analyze-report failed", extra=error_fields(exc))
"""
import ipaddress
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from .errors import ReportServiceError

SERVICE_NAME = "report-relay"

# Paths that would drown the access log (health checks, docs).
QUIET_PATHS = frozenset({"/health", "/docs", "/openapi.json"})

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

access_logger = logging.getLogger("report_service.access")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request ID to the current context; a blank one is replaced."""
    request_id = (request_id or "").strip()[:64] or new_request_id()
    request_id_var.set(request_id)
    return request_id


def error_fields(exc: BaseException) -> dict:
    """`extra=` payload describing exc: its code, HTTP status and upstream status."""
    if isinstance(exc, ReportServiceError):
        fields = {"error_code": exc.code, "status_code": exc.status_code}
        upstream_status = getattr(exc, "upstream_status", None)
        if upstream_status is not None:
            fields["upstream_status"] = upstream_status
    else:
        fields = {"error_type": type(exc).__name__}
    return {"fields": fields}


def log_event(logger: logging.Logger, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
    """Log message with keyword fields attached as top-level JSON keys."""
    logger.log(level, message, exc_info=exc_info, extra={"fields": fields})


class ReportLogFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Fields passed through `extra={"fields": ...}` are merged at the top level;
    None values are dropped. When the record carries a ReportServiceError in
    exc_info, its code is added even if the caller did not pass it.
    """

    RESERVED = ("ts", "level", "logger", "msg", "service")

    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "service": self.service_name,
        }

        request_id = get_request_id()
        if request_id:
            entry["request_id"] = request_id

        fields = dict(getattr(record, "fields", None) or {})
        if record.exc_info and record.exc_info[1] is not None:
            for key, value in error_fields(record.exc_info[1])["fields"].items():
                fields.setdefault(key, value)
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in fields.items():
            if value is None:
                continue
            entry[f"field_{key}" if key in self.RESERVED else key] = value

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", use_json: bool = True, service_name: str = SERVICE_NAME) -> None:
    """Install one stderr handler on the root logger, replacing any others."""
    handler = logging.StreamHandler(sys.stderr)
    if use_json:
        handler.setFormatter(ReportLogFormatter(service_name))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    # httpx logs full request URLs at INFO, and the Gemini URL carries the API key.
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: Optional[str] = None,
    error_code: Optional[str] = None,
) -> None:
    """Access-log one finished request. Failed requests log at warning/error with their code."""
    if path in QUIET_PATHS:
        return

    if status_code >= 500:
        level = logging.ERROR
    elif status_code >= 400:
        level = logging.WARNING
    else:
        level = logging.INFO

    message = f"{method} {path} -> {status_code}"
    if error_code:
        message += f" ({error_code})"

    log_event(
        access_logger,
        level,
        message,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        client_ip=mask_ip(client_ip) if client_ip else None,
        error_code=error_code,
    )


def mask_ip(ip: str) -> str:
    """Truncate a client address to its network (/16 for IPv4, /48 for IPv6)."""
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return "unknown"
    prefix = 16 if address.version == 4 else 48
    return str(ipaddress.ip_network(f"{address}/{prefix}", strict=False))
