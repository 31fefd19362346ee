"""Logging helpers used throughout the package, and by scripts.

Loggers returned from :py:func:`get_logger` accept ``str.format()`` style messages::

    LOGGER.warning('Level "{}" has no cluster!', level.name)

While a :py:func:`context` block is active, its name is added to each message. The parser uses this
to mark which lump the message relates to.
"""
from typing import (
    TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Type,
    Union, cast,
)
from pathlib import Path
from types import TracebackType
import contextlib
import contextvars
import logging
import os
import sys
import traceback

from levelinfo import StringPath


__all__ = ['LoggerAdapter', 'get_handler', 'get_logger', 'init_logging', 'context']
ROOT_NAME = 'levelinfo'
#: The number of previous log files kept by :py:func:`get_handler`.
KEPT_LOGS = 5
#: Frames from these modules are hidden at the start of tracebacks.
HIDDEN_FRAMES = ('importlib', 'runpy')

_CONTEXT: 'contextvars.ContextVar[Tuple[str, ...]]' = contextvars.ContextVar(
    'levelinfo_log_context', default=(),
)

_ExcInfo = Union[
    Tuple[Type[BaseException], BaseException, Optional[TracebackType]],
    Tuple[None, None, None],
]
if TYPE_CHECKING:
    _AdapterBase = logging.LoggerAdapter[logging.Logger]
else:
    _AdapterBase = logging.LoggerAdapter


class LogMessage:
    """Wraps a log message, applying ``str.format()`` only when it is actually output."""
    __slots__ = ['fmt', 'args', 'kwargs', '_text']
    fmt: str
    args: Tuple[object, ...]
    kwargs: Dict[str, object]
    _text: Optional[str]

    def __init__(self, fmt: str, args: Tuple[object, ...], kwargs: Dict[str, object]) -> None:
        self.fmt = fmt
        self.args = args
        self.kwargs = kwargs
        self._text = None

    def format_msg(self) -> str:
        """Produce the message text.

        Without any arguments the text is left alone, so braces can be logged directly.
        """
        if self._text is None:
            if self.args or self.kwargs:
                self._text = self.fmt.format(*self.args, **self.kwargs)
            else:
                self._text = self.fmt
            # The arguments aren't needed any more.
            self.args = ()
            self.kwargs = {}
        return self._text

    def __str__(self) -> str:
        """Multi-line messages are indented, and finished with a closing line."""
        text = self.format_msg()
        if '\n' not in text:
            return text
        lines = text.rstrip('\n').split('\n')
        return '\n | '.join(lines) + '\n |___\n'


class LoggerAdapter(_AdapterBase):
    """Adds ``str.format()`` support to a logger, and includes the current context."""
    logger: logging.Logger
    alias: Optional[str]
    """If set, this is shown in messages in place of the module name."""

    def __init__(self, logger: logging.Logger, alias: Optional[str] = None) -> None:
        super().__init__(logger, {})
        self.alias = alias

    def log(
        self,
        level: int,
        msg: Any,
        *args: Any,
        exc_info: Union[None, bool, _ExcInfo, BaseException] = None,
        stack_info: bool = False,
        extra: Optional[Mapping[str, object]] = None,
        stacklevel: int = 0,
        **kwargs: Any,
    ) -> None:
        """Log a message. Extra positional and keyword arguments are passed to ``str.format()``."""
        if not self.isEnabledFor(level):
            return
        ctx = _CONTEXT.get()
        record_extra = dict(extra or ())
        record_extra['_levelinfo_alias'] = self.alias
        record_extra['levelinfo_context'] = f' ({", ".join(ctx)})' if ctx else ''
        if sys.version_info >= (3, 10):
            # Skip over this method and the LoggerAdapter.info() etc call.
            stacklevel += 2
        # noinspection PyProtectedMember
        self.logger._log(
            level,
            LogMessage(str(msg), args, kwargs),
            (),
            exc_info=exc_info,
            extra=record_extra,
            stack_info=stack_info,
            stacklevel=stacklevel,
        )

    def __getattr__(self, attr: str) -> Any:
        return getattr(self.logger, attr)


class Formatter(logging.Formatter):
    """Shortens tracebacks, and provides a default for the context."""

    def formatException(self, ei: _ExcInfo) -> str:
        """Format a traceback, without the import machinery frames at the start."""
        exc_type, exc_value, tb = ei
        if exc_type is None or exc_value is None:
            return ''
        start = tb
        while start is not None and any(
            name in start.tb_frame.f_code.co_filename.casefold()
            for name in HIDDEN_FRAMES
        ):
            start = start.tb_next
        # If everything is hidden, the problem is the import itself.
        lines = traceback.format_exception(exc_type, exc_value, start if start is not None else tb)
        return ''.join(lines).rstrip('\n')

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, 'levelinfo_context'):
            record.levelinfo_context = ''
        return super().format(record)


class NewLogRecord(logging.LogRecord):
    """Log record which allows the module to be overridden."""
    _levelinfo_alias: Optional[str] = None
    levelinfo_context: str = ''

    def getMessage(self) -> str:
        # This is called right before formatting, so it's the place to swap the module.
        if self._levelinfo_alias is not None:
            self.module = self._levelinfo_alias
        return super().getMessage()


def get_handler(filename: StringPath) -> logging.FileHandler:
    """Open a new log file, renaming previous logs to ``name.1.log``, ``name.2.log`` etc.

    If the file can't be replaced (held open by another process), numbered names are tried
    instead until one is free.
    """
    path = Path(filename)
    ext = ''.join(path.suffixes)

    def numbered(num: int) -> Path:
        return path.with_suffix(f'.{num}{ext}' if num else ext)

    try:
        numbered(KEPT_LOGS).unlink(missing_ok=True)
        for num in reversed(range(KEPT_LOGS)):
            if numbered(num).exists():
                numbered(num).rename(numbered(num + 1))
        return logging.FileHandler(path, mode='x', encoding='utf8')
    except (FileExistsError, PermissionError):
        pass

    num = 1
    while True:
        try:
            return logging.FileHandler(numbered(num), mode='x', encoding='utf8')
        except (FileExistsError, PermissionError):
            num += 1


def _console_handlers(formatter: logging.Formatter) -> List[logging.Handler]:
    """Produce handlers writing to stdout and stderr.

    Warnings and errors go to stderr, everything else to stdout. If ``LEVELINFO_DEBUG`` is ``1``,
    debug messages are shown too.
    """
    handlers: List[logging.Handler] = []
    if sys.stdout is not None:
        stdout = logging.StreamHandler(sys.stdout)
        stdout.setFormatter(formatter)
        if os.environ.get('LEVELINFO_DEBUG', '0') == '1':
            stdout.setLevel(logging.DEBUG)
        else:
            stdout.setLevel(logging.INFO)
        if sys.stderr is not None:
            stdout.addFilter(lambda record: record.levelno < logging.WARNING)
        handlers.append(stdout)
    if sys.stderr is not None:
        stderr = logging.StreamHandler(sys.stderr)
        stderr.setFormatter(formatter)
        stderr.setLevel(logging.WARNING)
        handlers.append(stderr)
    return handlers


def init_logging(
    filename: Optional[StringPath] = None,
    main_logger: str = '',
    *,
    error: Optional[Callable[[BaseException], object]] = None,
) -> logging.Logger:
    """Configure the root logger to write to the console, and optionally a file.

    An exception hook is also installed, so uncaught exceptions are logged.

    :param filename: If set, all messages including debug are also written here.
    :param main_logger: The name of the logger to return, placed under ``levelinfo``.
    :param error: Called with any uncaught exception.
    """
    factory = logging.getLogRecordFactory()
    if factory is logging.LogRecord:
        logging.setLogRecordFactory(NewLogRecord)
    elif factory is not NewLogRecord:
        raise ValueError(f'Unknown record factory: {factory!r}')

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for handler in _console_handlers(Formatter(
        '[{levelname[0]}]{levelinfo_context} {module}.{funcName}(): {message}',
        style='{',
    )):
        root.addHandler(handler)

    if filename is not None:
        os.makedirs(os.path.dirname(os.path.abspath(filename)), exist_ok=True)
        file_handler = get_handler(filename)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(Formatter(
            '{asctime} [{levelname}]{levelinfo_context} {module}.{funcName}(): {message}',
            style='{',
        ))
        root.addHandler(file_handler)

    prev_hook = sys.excepthook

    def log_uncaught(
        exc_type: Type[BaseException],
        exc_value: BaseException,
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Log uncaught exceptions, then pass them to the previous hook."""
        if isinstance(exc_value, SystemExit):
            return
        root.error('Uncaught Exception:', exc_info=(exc_type, exc_value, exc_tb))
        if error is not None:
            error(exc_value)
        # The default hook just prints again.
        if prev_hook is not sys.__excepthook__:
            prev_hook(exc_type, exc_value, exc_tb)

    sys.excepthook = log_uncaught

    if main_logger:
        return get_logger(main_logger)
    return cast(logging.Logger, LoggerAdapter(root))


def get_logger(name: str = '', alias: Optional[str] = None) -> logging.Logger:
    """Get a logger in the ``levelinfo`` namespace, using ``str.format()`` for messages.

    Module names already inside the package, like ``__name__``, are used unchanged.

    :param alias: If set, this is displayed instead of the module name.
    """
    if not name or name == ROOT_NAME:
        full_name = ROOT_NAME
    elif name.startswith(ROOT_NAME + '.'):
        full_name = name
    else:
        full_name = f'{ROOT_NAME}.{name}'
    return cast(logging.Logger, LoggerAdapter(logging.getLogger(full_name), alias))


@contextlib.contextmanager
def context(name: str) -> Iterator[str]:
    """Add ``name`` to all messages logged inside this block. These can be nested."""
    token = _CONTEXT.set(_CONTEXT.get() + (name, ))
    try:
        yield name
    finally:
        _CONTEXT.reset(token)
