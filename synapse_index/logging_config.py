"""Structured logging configuration for SynapseIndex."""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from functools import wraps
from typing import Any, Callable, Dict

# Context variable for request tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

# Record attributes copied into structured output when an engine call sets them
ENGINE_FIELDS = (
    'operation',
    'outcome',
    'duration_ms',
    'source',
    'chunk_count',
    'link_count',
    'result_count',
)


class StructuredFormatter(logging.Formatter):
    """JSON log lines carrying the engine's per-operation fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(''),
        }

        for field in ENGINE_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["error"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _result_fields(result: Any) -> Dict[str, Any]:
    """Size of an engine result: result lists or index status dicts."""
    if isinstance(result, list):
        return {'result_count': len(result)}
    if isinstance(result, dict) and 'chunks' in result:
        return {
            'chunk_count': len(result['chunks']),
            'link_count': len(result.get('links', [])),
        }
    return {}


def with_request_id(func: Callable) -> Callable:
    """Tag an engine coroutine with a request id and log its timing and result size."""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        token = request_id_var.set(uuid.uuid4().hex[:8])
        start = time.perf_counter()
        fields: Dict[str, Any] = {'operation': func.__name__, 'outcome': 'error'}

        try:
            result = await func(*args, **kwargs)
            fields['outcome'] = 'ok'
            fields.update(_result_fields(result))
            return result
        finally:
            fields['duration_ms'] = round((time.perf_counter() - start) * 1000, 2)
            logging.getLogger(func.__module__).debug(
                f"{func.__name__} finished ({fields['outcome']})", extra=fields
            )
            request_id_var.reset(token)

    return wrapper


def setup_logging(level: str = "INFO", structured: bool = False) -> None:
    """Configure the package logger to write to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger("synapse_index")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
