"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_worker_id: ContextVar[str] = ContextVar("worker_id", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_domain: ContextVar[str] = ContextVar("domain", default="")
_event_id: ContextVar[str] = ContextVar("event_id", default="")


def set_log_context(
    worker_id: Optional[str] = None,
    stage: Optional[str] = None,
    domain: Optional[str] = None,
    event_id: Optional[str] = None,
) -> None:
    if worker_id is not None:
        _worker_id.set(worker_id)
    if stage is not None:
        _stage_name.set(stage)
    if domain is not None:
        _domain.set(domain)
    if event_id is not None:
        _event_id.set(event_id)


def get_log_context() -> Dict[str, str]:
    return {
        "worker_id": _worker_id.get(),
        "stage": _stage_name.get(),
        "domain": _domain.get(),
        "event_id": _event_id.get(),
    }


def clear_log_context() -> None:
    _worker_id.set("")
    _stage_name.set("")
    _domain.set("")
    _event_id.set("")
