"""Logging configuration using structlog."""

import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

import structlog

if TYPE_CHECKING:
    from structlog.typing import EventDict, WrappedLogger

# =============================================================================
# Job Context Infrastructure
# =============================================================================

_job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)
_source_context_var: ContextVar[str | None] = ContextVar("source_context", default=None)


def generate_job_id() -> str:
    """Generate a unique 8-character job ID for tracing.

    Returns:
        A short UUID string (8 characters) for log correlation.
    """
    return str(uuid.uuid4())[:8]


def set_job_context(job_id: str | None = None, source: str | None = None) -> None:
    """Set job context variables for logging.

    These context variables are injected into all log messages
    via the _inject_job_context processor.

    Args:
        job_id: Identifier of the running conversion job
        source: Display name of the source archive being processed
    """
    if job_id is not None:
        _job_id_var.set(job_id)
    if source is not None:
        _source_context_var.set(source)


def get_job_id() -> str | None:
    """Get the current job ID from context."""
    return _job_id_var.get()


@contextmanager
def job_context(
    job_id: str | None = None,
    source: str | None = None,
) -> Generator[str, None, None]:
    """Context manager for job tracing.

    Sets the context for the duration of the block and restores the previous
    values afterwards. A job ID is generated when none is given and none is
    already active.

    Example:
        >>> with job_context(source="Vol 01.cbz") as job_id:
        ...     log.info("Source opened")  # Auto-includes source=Vol 01.cbz
    """
    old_job_id = _job_id_var.get()
    old_source = _source_context_var.get()

    new_job_id = job_id or old_job_id or generate_job_id()
    set_job_context(job_id=new_job_id, source=source)

    try:
        yield new_job_id
    finally:
        _job_id_var.set(old_job_id)
        _source_context_var.set(old_source)


def _inject_job_context(
    _logger: "WrappedLogger", _method_name: str, event_dict: "EventDict"
) -> "EventDict":
    """Inject job_id and source into log messages when set and not already present."""
    job_id = _job_id_var.get()
    if job_id and "job_id" not in event_dict:
        event_dict["job_id"] = job_id

    source = _source_context_var.get()
    if source and "source" not in event_dict:
        event_dict["source"] = source

    return event_dict


# =============================================================================
# Logging Configuration
# =============================================================================


class SafeStreamHandler(logging.StreamHandler):
    """A StreamHandler that handles encoding errors gracefully.

    Archive and entry names are frequently CJK; consoles using a legacy
    codepage cannot display them, so unencodable characters are replaced.
    """

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a record, handling encoding errors gracefully."""
        try:
            msg = self.format(record)
            stream = self.stream
            try:
                stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                safe_msg = msg.encode(stream.encoding or "utf-8", errors="replace").decode(
                    stream.encoding or "utf-8", errors="replace"
                )
                stream.write(safe_msg + self.terminator)
            self.flush()
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


# Console log stream
_log_output: TextIO = sys.stderr

# Noisy third-party loggers to suppress at DEBUG level
_NOISY_LOGGERS = [
    "PIL",
    "fitz",
    "pymupdf",
]


def _filter_event_dict(
    _logger: "WrappedLogger", _method_name: str, event_dict: "EventDict"
) -> "EventDict":
    """Filter out excessively long values from event dict."""
    max_value_length = 500
    for key, value in list(event_dict.items()):
        if isinstance(value, str) and len(value) > max_value_length:
            event_dict[key] = value[:max_value_length] + f"... [{len(value)} chars total]"
        elif isinstance(value, (bytes, bytearray)) and len(value) > max_value_length:
            event_dict[key] = f"[BINARY DATA: {len(value)} bytes]"
    return event_dict


# Keys that are handled specially by ConsoleRenderer (not user context)
_INTERNAL_KEYS = {"event", "level", "timestamp", "_record", "_from_structlog"}


def _add_separator(
    _logger: "WrappedLogger", _method_name: str, event_dict: "EventDict"
) -> "EventDict":
    """Add a visual separator between event message and context variables."""
    has_context = any(k not in _INTERNAL_KEYS for k in event_dict)

    if has_context and "event" in event_dict:
        event_dict["event"] = f"{event_dict['event']} |"

    return event_dict


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_format: bool = False,
    console_level: str | None = None,
    file_level: str | None = None,
) -> None:
    """Configure structlog for the application.

    Args:
        level: Root Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging output (logs to both console and file)
                  Rotated daily with 7-day retention.
        json_format: If True, output JSON format
        console_level: Optional override for console handler level
        file_level: Optional override for file handler level
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    for logger_name in _NOISY_LOGGERS:
        third_party_logger = logging.getLogger(logger_name)
        third_party_logger.setLevel(max(log_level, logging.WARNING))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _inject_job_context,
        _filter_event_dict,
        _add_separator,
    ]

    if json_format:
        final_processor: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
            pad_event_to=0,
            pad_level=False,
            sort_keys=False,
        )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_processor,
        ],
    )

    console_handler = SafeStreamHandler(_log_output)
    c_level = getattr(logging, console_level.upper(), log_level) if console_level else log_level
    console_handler.setLevel(c_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        if json_format:
            file_formatter = structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(),
                ],
            )
        else:
            file_formatter = structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.dev.ConsoleRenderer(
                        colors=False,
                        exception_formatter=structlog.dev.plain_traceback,
                        pad_event_to=0,
                        pad_level=False,
                        sort_keys=False,
                    ),
                ],
            )

        file_handler = TimedRotatingFileHandler(
            log_file,
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"

        f_level = getattr(logging, file_level.upper(), log_level) if file_level else log_level
        file_handler.setLevel(f_level)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,  # Allow reconfiguration
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)


def create_task_log_path(log_dir: str | Path, prefix: str = "task") -> tuple[str, Path]:
    """Create a unique task log file path with timestamp and UUID.

    Example:
        >>> task_id, log_path = create_task_log_path(".logs", "convert")
        >>> print(log_path)  # .logs/convert_20260109_143052_a1b2c3d4.log
    """
    log_dir_path = Path(log_dir)
    log_dir_path.mkdir(parents=True, exist_ok=True)

    task_id = str(uuid.uuid4())[:8]
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir_path / f"{prefix}_{timestamp}_{task_id}.log"

    return task_id, log_file


def setup_task_logging(
    log_dir: str | Path,
    prefix: str = "task",
    verbose: bool = False,
) -> tuple[str, Path]:
    """Setup logging for a task with unified behavior.

    Console shows WARNING and above unless ``verbose`` is set (then DEBUG);
    the task log file always captures DEBUG.

    Returns:
        Tuple of (task_id, log_file_path)
    """
    task_id, log_path = create_task_log_path(log_dir, prefix)

    console_level = "DEBUG" if verbose else "WARNING"

    setup_logging(
        level="DEBUG",
        log_file=str(log_path),
        console_level=console_level,
        file_level="DEBUG",
    )

    return task_id, log_path
