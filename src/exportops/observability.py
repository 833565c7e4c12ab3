"""Run-scoped log correlation for reconciliation and batch folds."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

_run_id_ctx: ContextVar[Optional[str]] = ContextVar("exportops_run_id", default=None)


def current_run_id() -> Optional[str]:
    return _run_id_ctx.get()


def bind_run_id(value: Optional[str] = None) -> Token:
    """Bind ``value`` (or a fresh uuid4) as the active run id."""

    return _run_id_ctx.set(value or str(uuid.uuid4()))


def reset_run_id(token: Optional[Token]) -> None:
    if token is not None:
        _run_id_ctx.reset(token)


@contextmanager
def run_scope(run_id: Optional[str] = None) -> Iterator[str]:
    """Bind a run id for the duration of the block, reusing an outer one if set."""

    outer = current_run_id()
    if outer is not None and run_id is None:
        yield outer
        return
    run_id = run_id or str(uuid.uuid4())
    token = bind_run_id(run_id)
    try:
        yield run_id
    finally:
        reset_run_id(token)


def log_event(message: str, *, level: int = logging.INFO, log: Optional[logging.Logger] = None, **extra: object) -> None:
    """Log ``message`` with the active run id and ``extra`` under the ``payload`` attribute."""

    payload = {"run_id": current_run_id(), **extra}
    (log or logger).log(level, message, extra={"payload": payload})
