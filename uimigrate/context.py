"""Per-run context threaded through every pipeline component."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import ERROR_HISTORY_SIZE
from .config_manager import MigrationConfig
from .errors import ErrorContext, ErrorHandler, RetryPolicy
from .tasks import BatchRunner, CancellationToken


@dataclass
class RunContext:
    """Logger, error handler, cancellation token and config for one run.

    Built once by the orchestrator (or the CLI) and handed to each engine's
    constructor; engines never look these up globally.
    """

    config: MigrationConfig
    log: logging.LoggerAdapter
    errors: ErrorHandler
    token: CancellationToken = field(default_factory=CancellationToken)
    run_id: str = ""

    @classmethod
    def create(
        cls,
        config: Optional[MigrationConfig] = None,
        run_id: Optional[str] = None,
        logger_name: str = "uimigrate",
        sleep: Callable[[float], None] = time.sleep,
    ) -> "RunContext":
        cfg = config or MigrationConfig()
        rid = run_id or uuid.uuid4().hex[:12]
        log = logging.LoggerAdapter(logging.getLogger(logger_name), {"run_id": rid})
        policy = RetryPolicy(
            max_attempts=cfg.retry.max_attempts,
            base_delay=cfg.retry.base_delay,
            max_delay=cfg.retry.max_delay,
        )
        handler = ErrorHandler(log=log, history_size=ERROR_HISTORY_SIZE, retry_policy=policy, sleep=sleep)
        return cls(config=cfg, log=log, errors=handler, run_id=rid)

    def error_context(self, **kwargs) -> ErrorContext:
        kwargs.setdefault("correlation_id", self.run_id)
        return ErrorContext(**kwargs)

    def child_logger(self, name: str) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(logging.getLogger(name), {"run_id": self.run_id})

    def batch_runner(
        self,
        parallel: bool,
        max_concurrency: int,
        batch_size: int,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> BatchRunner:
        return BatchRunner(
            self.errors,
            parallel=parallel,
            max_concurrency=max_concurrency,
            batch_size=batch_size,
            checkpoint=checkpoint or self.token.raise_if_cancelled,
        )
