"""Error taxonomy and recovery strategies for the migration pipeline.

Every failure inside the pipeline is converted into a :class:`PipelineError`
carrying a category, a severity, a generated error code and enough context
to render a human-readable explanation.  An :class:`ErrorHandler` is created
once per run; it classifies raw exceptions, keeps a bounded history, and
tries registered :class:`RecoveryStrategy` objects in priority order.
"""

from __future__ import annotations

import errno
import logging
import re
import time
from abc import ABC, abstractmethod
from collections import Counter, deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, FrozenSet, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    FILE_SYSTEM = "file-system"
    PARSING = "parsing"
    VALIDATION = "validation"
    TRANSFORMATION = "transformation"
    GENERATION = "generation"
    MEMORY = "memory"
    TIMEOUT = "timeout"
    DEPENDENCY = "dependency"
    BUSINESS_LOGIC = "business-logic"
    RUNTIME = "runtime"
    NETWORK = "network"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Where an error happened."""

    unit: Optional[str] = None
    operation: Optional[str] = None
    correlation_id: Optional[str] = None
    file_path: Optional[str] = None
    phase: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UserErrorInfo:
    title: str
    explanation: str
    suggestions: List[str]
    workaround: Optional[str] = None
    is_known_issue: bool = False


_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_error_code(category: ErrorCategory, severity: ErrorSeverity, timestamp: datetime) -> str:
    """Build ``CAT-S-<base36 ms>``, e.g. ``PAR-H-LZ3K9Q1``."""
    millis = int(timestamp.timestamp() * 1000)
    return f"{category.value[:3].upper()}-{severity.value[0].upper()}-{_base36(millis)}"


_USER_INFO: Dict[ErrorCategory, Dict[str, Any]] = {
    ErrorCategory.CONFIGURATION: {
        "title": "Configuration Error",
        "explanation": "The migration configuration is missing or contains invalid values.",
        "suggestions": [
            "Check uimigrate.toml for typos and out-of-range values",
            "Remove the config file to fall back to defaults",
        ],
    },
    ErrorCategory.FILE_SYSTEM: {
        "title": "File System Error",
        "explanation": "A file or directory could not be read or written.",
        "suggestions": [
            "Verify the path exists and is readable",
            "Check permissions on the output directory",
            "Make sure there is free disk space",
        ],
    },
    ErrorCategory.PARSING: {
        "title": "Parsing Error",
        "explanation": "The component source contains syntax the parser could not understand.",
        "suggestions": [
            "Run the project's own compiler or linter on the file",
            "Fix the reported syntax error and re-run discovery",
        ],
        "workaround": "The component is flagged for manual review and excluded from automatic migration.",
    },
    ErrorCategory.VALIDATION: {
        "title": "Validation Error",
        "explanation": "The migrated component does not match the source component.",
        "suggestions": [
            "Review the reported differences",
            "Re-run the migration with --regenerate after fixing the source",
        ],
    },
    ErrorCategory.TRANSFORMATION: {
        "title": "Transformation Error",
        "explanation": "The component could not be converted into the target shape.",
        "suggestions": [
            "Simplify the component or split it into smaller units",
            "Migrate the component manually",
        ],
        "workaround": "The component is marked as requiring manual review.",
    },
    ErrorCategory.GENERATION: {
        "title": "Generation Error",
        "explanation": "Output artifacts or reports could not be produced.",
        "suggestions": ["Check the output directory", "Re-run with --verbose for details"],
    },
    ErrorCategory.MEMORY: {
        "title": "Out of Memory",
        "explanation": "The pipeline ran out of memory while processing the project.",
        "suggestions": [
            "Lower max_workers or batch_size",
            "Narrow the include patterns to a subset of the project",
        ],
    },
    ErrorCategory.TIMEOUT: {
        "title": "Timeout",
        "explanation": "A pipeline phase took longer than its configured time limit.",
        "suggestions": ["Increase pipeline.phase_timeout", "Run a narrower discovery"],
    },
    ErrorCategory.DEPENDENCY: {
        "title": "Dependency Error",
        "explanation": "A dependency of the component could not be resolved.",
        "suggestions": ["Check the import path", "Make sure the dependency is part of the scanned tree"],
    },
    ErrorCategory.BUSINESS_LOGIC: {
        "title": "Business Logic Incomplete",
        "explanation": "Business logic from the source component is missing in the output.",
        "suggestions": ["Compare the generated hook against the source functions"],
        "workaround": "Port the missing functions by hand.",
    },
    ErrorCategory.RUNTIME: {
        "title": "Unexpected Error",
        "explanation": "An unexpected error occurred while running the pipeline.",
        "suggestions": ["Re-run with --verbose", "Report the error code if the problem persists"],
    },
    ErrorCategory.NETWORK: {
        "title": "Network Error",
        "explanation": "A remote resource could not be reached.",
        "suggestions": ["Check connectivity and retry"],
    },
}


# ===================================================================
# Error hierarchy
# ===================================================================

class PipelineError(Exception):
    """Structured error raised or produced anywhere in the pipeline."""

    default_category = ErrorCategory.RUNTIME
    default_severity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        *,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[BaseException] = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)
        self.code = generate_error_code(self.category, self.severity, self.timestamp)

    def user_info(self) -> UserErrorInfo:
        info = _USER_INFO[self.category]
        explanation = info["explanation"]
        if self.context.unit:
            explanation = f"{explanation} (component: {self.context.unit})"
        return UserErrorInfo(
            title=info["title"],
            explanation=explanation,
            suggestions=list(info["suggestions"]),
            workaround=info.get("workaround"),
            is_known_issue=self.category in (ErrorCategory.PARSING, ErrorCategory.TRANSFORMATION),
        )

    def to_dict(self) -> Dict[str, Any]:
        info = self.user_info()
        return {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "unit": self.context.unit,
            "operation": self.context.operation,
            "phase": self.context.phase,
            "file_path": self.context.file_path,
            "title": info.title,
            "suggestions": info.suggestions,
            "cause": repr(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigurationError(PipelineError):
    default_category = ErrorCategory.CONFIGURATION
    default_severity = ErrorSeverity.HIGH


class FileSystemError(PipelineError):
    default_category = ErrorCategory.FILE_SYSTEM
    default_severity = ErrorSeverity.MEDIUM


class ParsingError(PipelineError):
    default_category = ErrorCategory.PARSING
    default_severity = ErrorSeverity.HIGH


class ValidationError(PipelineError):
    default_category = ErrorCategory.VALIDATION
    default_severity = ErrorSeverity.MEDIUM


class TransformationError(PipelineError):
    default_category = ErrorCategory.TRANSFORMATION
    default_severity = ErrorSeverity.HIGH


class GenerationError(PipelineError):
    default_category = ErrorCategory.GENERATION
    default_severity = ErrorSeverity.MEDIUM


class BusinessLogicError(PipelineError):
    default_category = ErrorCategory.BUSINESS_LOGIC
    default_severity = ErrorSeverity.HIGH


class ResourceExhaustedError(PipelineError):
    default_category = ErrorCategory.MEMORY
    default_severity = ErrorSeverity.CRITICAL


class PhaseTimeoutError(PipelineError):
    default_category = ErrorCategory.TIMEOUT
    default_severity = ErrorSeverity.MEDIUM


class CancelledError(PipelineError):
    default_category = ErrorCategory.RUNTIME
    default_severity = ErrorSeverity.HIGH

    def __init__(self, message: str = "cancelled", context: Optional[ErrorContext] = None) -> None:
        super().__init__(message, context, recoverable=False)


# ===================================================================
# Retry policy + recovery strategies
# ===================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a bounded attempt count (delays in seconds)."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


@dataclass
class RecoveryResult:
    success: bool
    action: str
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    requires_manual_review: bool = False


class RecoveryStrategy(ABC):
    """A way of getting past a classified error."""

    name: str = "strategy"
    priority: int = 100
    auto_recoverable: bool = False
    categories: FrozenSet[ErrorCategory] = frozenset()

    def can_handle(self, error: PipelineError) -> bool:
        return error.category in self.categories

    @abstractmethod
    def recover(self, error: PipelineError) -> RecoveryResult:
        ...


class RetryStrategy(RecoveryStrategy):
    name = "retry"
    priority = 10
    auto_recoverable = True
    categories = frozenset({ErrorCategory.FILE_SYSTEM, ErrorCategory.NETWORK, ErrorCategory.TIMEOUT})

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def recover(self, error: PipelineError) -> RecoveryResult:
        attempt = int(error.context.data.get("attempt", 1))
        if not self.policy.should_retry(attempt):
            return RecoveryResult(
                success=False,
                action="retry",
                message=f"Retry attempts exhausted ({attempt}/{self.policy.max_attempts})",
            )
        delay = self.policy.delay_for(attempt)
        self._sleep(delay)
        return RecoveryResult(
            success=True,
            action="retry",
            message=f"Retrying after {delay:.2f}s (attempt {attempt + 1}/{self.policy.max_attempts})",
            data={"attempt": attempt + 1, "delay": delay},
        )


class FallbackStrategy(RecoveryStrategy):
    name = "fallback"
    priority = 50
    categories = frozenset(
        {ErrorCategory.PARSING, ErrorCategory.TRANSFORMATION, ErrorCategory.BUSINESS_LOGIC}
    )

    def recover(self, error: PipelineError) -> RecoveryResult:
        return RecoveryResult(
            success=True,
            action="fallback",
            message=f"Marked for manual review: {error.message}",
            data={"fallback": True},
            requires_manual_review=True,
        )


class SkipStrategy(RecoveryStrategy):
    name = "skip"
    priority = 90
    categories = frozenset({ErrorCategory.VALIDATION, ErrorCategory.GENERATION})

    def can_handle(self, error: PipelineError) -> bool:
        return super().can_handle(error) and error.severity is not ErrorSeverity.CRITICAL

    def recover(self, error: PipelineError) -> RecoveryResult:
        return RecoveryResult(success=True, action="skip", message=f"Skipped: {error.message}")


# ===================================================================
# Handler
# ===================================================================

ErrorObserver = Callable[[PipelineError], None]


class ErrorHandler:
    """Per-run error classifier, history, and strategy dispatcher."""

    def __init__(
        self,
        log: Optional[logging.LoggerAdapter] = None,
        history_size: int = 100,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        observers: Optional[List[ErrorObserver]] = None,
    ) -> None:
        self.log = log or logging.LoggerAdapter(logger, {})
        self.history: Deque[PipelineError] = deque(maxlen=history_size)
        self.total = 0
        self._observers: List[ErrorObserver] = list(observers or [])
        self._strategies: List[RecoveryStrategy] = []
        for strategy in (RetryStrategy(retry_policy, sleep), FallbackStrategy(), SkipStrategy()):
            self.register_strategy(strategy)

    def register_strategy(self, strategy: RecoveryStrategy) -> None:
        self._strategies.append(strategy)
        self._strategies.sort(key=lambda s: (not s.auto_recoverable, s.priority))

    def add_observer(self, observer: ErrorObserver) -> None:
        self._observers.append(observer)

    @property
    def strategies(self) -> List[RecoveryStrategy]:
        return list(self._strategies)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, exc: BaseException, context: Optional[ErrorContext] = None) -> PipelineError:
        """Convert *exc* into a :class:`PipelineError`, inferring category/severity."""
        if isinstance(exc, PipelineError):
            if context is not None:
                exc.context = _merge_context(exc.context, context)
            return exc

        message = str(exc) or type(exc).__name__
        lowered = message.lower()
        ctx = context or ErrorContext()

        if isinstance(exc, MemoryError) or "heap" in lowered or "out of memory" in lowered:
            return ResourceExhaustedError(message, ctx, cause=exc)
        if isinstance(exc, TimeoutError) or "timeout" in lowered or "timed out" in lowered:
            return PhaseTimeoutError(message, ctx, cause=exc)
        if isinstance(exc, OSError) or getattr(exc, "errno", None) == errno.ENOENT or "enoent" in lowered:
            return FileSystemError(message, ctx, cause=exc)
        if isinstance(exc, SyntaxError) or "parse" in lowered or "syntax" in lowered:
            return ParsingError(message, ctx, cause=exc)
        if re.search(r"\bfiles?\b", lowered):
            return FileSystemError(message, ctx, cause=exc)
        return PipelineError(message, ctx, cause=exc)

    # ------------------------------------------------------------------
    # Handling
    # ------------------------------------------------------------------

    def record(self, error: PipelineError) -> None:
        self.history.append(error)
        self.total += 1
        level = logging.ERROR if error.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL) else logging.WARNING
        self.log.log(level, "%s (%s/%s)", error, error.category.value, error.severity.value)
        for observer in self._observers:
            observer(error)

    def handle(self, exc: BaseException, context: Optional[ErrorContext] = None) -> Optional[RecoveryResult]:
        """Classify, record and try to recover from *exc*.

        Returns:
            The first successful :class:`RecoveryResult`, or None when every
            applicable strategy is exhausted.
        """
        error = self.classify(exc, context)
        self.record(error)
        return self._recover(error)

    def _recover(self, error: PipelineError) -> Optional[RecoveryResult]:
        if not error.recoverable:
            return None
        for strategy in self._strategies:
            if not strategy.can_handle(error):
                continue
            result = strategy.recover(error)
            self.log.debug("Strategy %s on %s: %s", strategy.name, error.code, result.message)
            if result.success:
                return result
        return None

    def run_with_recovery(
        self,
        operation: Callable[[], T],
        context: Optional[ErrorContext] = None,
        default: Optional[T] = None,
        fallback: Optional[Callable[[PipelineError, RecoveryResult], T]] = None,
    ) -> Optional[T]:
        """Run *operation*, retrying or falling back through registered strategies.

        When a fallback/skip strategy absorbs the failure the result is
        ``fallback(error, recovery)`` if given, else *default*.  Raises the
        recorded error when no strategy recovers.
        """
        base = context or ErrorContext()
        attempt = 1
        while True:
            try:
                return operation()
            except CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - every failure is classified
                error = self.classify(exc, replace(base, data={**base.data, "attempt": attempt}))
                self.record(error)
                result = self._recover(error)
                if result is None:
                    if error is exc:
                        raise
                    raise error from exc
                if result.action == "retry":
                    attempt = int(result.data["attempt"])
                    continue
                return fallback(error, result) if fallback is not None else default

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        by_category = Counter(e.category.value for e in self.history)
        by_severity = Counter(e.severity.value for e in self.history)
        recent = list(self.history)[-10:]
        return {
            "total": self.total,
            "retained": len(self.history),
            "by_category": dict(by_category),
            "by_severity": dict(by_severity),
            "recent": [e.to_dict() for e in recent],
        }

    def clear(self) -> None:
        self.history.clear()
        self.total = 0


def _merge_context(existing: ErrorContext, incoming: ErrorContext) -> ErrorContext:
    return ErrorContext(
        unit=existing.unit or incoming.unit,
        operation=existing.operation or incoming.operation,
        correlation_id=existing.correlation_id or incoming.correlation_id,
        file_path=existing.file_path or incoming.file_path,
        phase=existing.phase or incoming.phase,
        data={**existing.data, **incoming.data},
    )
