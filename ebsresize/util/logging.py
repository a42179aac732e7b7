# This file is dual licensed under the terms of the Apache License, Version
# 2.0, and the MIT License.  See the LICENSE file in the root of this
# repository for complete details.

import io
import os
import string
import sys
import traceback
from pathlib import Path

import colorama
import structlog

_EVENT_WIDTH = 30  # pad the event name to so many characters
LOG_FILE_NAME = "ebs-autoresize.log"

if sys.stdout.isatty():
    RESET_ALL = colorama.Style.RESET_ALL
    BRIGHT = colorama.Style.BRIGHT
    DIM = colorama.Style.DIM
    RED = colorama.Fore.RED
    BACKRED = colorama.Back.RED
    BLUE = colorama.Fore.BLUE
    CYAN = colorama.Fore.CYAN
    MAGENTA = colorama.Fore.MAGENTA
    YELLOW = colorama.Fore.YELLOW
    GREEN = colorama.Fore.GREEN
else:
    RESET_ALL = ""
    BRIGHT = ""
    DIM = ""
    RED = ""
    BACKRED = ""
    BLUE = ""
    CYAN = ""
    MAGENTA = ""
    YELLOW = ""
    GREEN = ""

COLORS = [
    RESET_ALL,
    BRIGHT,
    DIM,
    RED,
    BACKRED,
    BLUE,
    CYAN,
    MAGENTA,
    YELLOW,
    GREEN,
]


class PartialFormatter(string.Formatter):
    """
    A string formatter that doesn't break if values are missing or formats
    are wrong. Missing values and bad formats are replaced by a fixed string.

    formatter = PartialFormatter(missing='?', bad_format='<bad format>')
    formatted_str = formatter.format("{exists} {missing}", exists=1)
    formatted_str == "1 ?"
    """

    def __init__(self, missing="<missing>", bad_format="<bad format>"):
        self.missing = missing
        self.bad_format = bad_format

    def get_field(self, field_name, args, kwargs):
        try:
            val = super().get_field(field_name, args, kwargs)
        except (KeyError, AttributeError):
            val = (None, field_name)
        return val

    def format_field(self, value, format_spec):
        if value is None:
            return self.missing
        try:
            return super().format_field(value, format_spec)
        except ValueError:
            return self.bad_format


class MultiOptimisticLoggerFactory:
    def __init__(self, **factories):
        self.factories = factories

    def __call__(self, *args):
        loggers = {k: f() for k, f in self.factories.items()}
        return MultiOptimisticLogger(loggers)


class MultiOptimisticLogger:
    """
    A logger which distributes messages to multiple loggers.
    The keys of the logger dict correspond to the keys of the message dict
    produced by MultiRenderer. Loggers without a message are skipped.
    Errors in sub loggers are ignored silently.
    """

    def __init__(self, loggers):
        self.loggers = loggers

    def __repr__(self):
        return "<MultiOptimisticLogger {}>".format(
            [repr(l) for l in self.loggers]
        )

    def msg(self, **messages):
        for name, logger in self.loggers.items():
            try:
                line = messages.get(name)
                if line:
                    logger.msg(line)
            except Exception:
                # Logging trouble must never stop a resize half-way.
                pass

    def __getattr__(self, name):
        return self.msg


def prefix(prefix, line):
    return "{}>\t".format(prefix) + line.replace(
        "\n", "\n{}>\t".format(prefix)
    )


def _pad(s, l):
    """
    Pads *s* to length *l*.
    """
    missing = l - len(s)
    return s + " " * (missing if missing > 0 else 0)


class ConsoleFileRenderer:
    """
    Render `event_dict` nicely aligned, in colors for the console and
    without colors for the log file.
    """

    LEVELS = [
        "alert",
        "critical",
        "error",
        "warn",
        "warning",
        "info",
        "debug",
        "trace",
    ]

    def __init__(
        self, min_level, show_caller_info=False, pad_event=_EVENT_WIDTH
    ):
        self.min_level = self.LEVELS.index(min_level.lower())
        self.show_caller_info = show_caller_info
        if sys.stdout.isatty():
            colorama.init()

        self._pad_event = pad_event
        self._level_to_color = {
            "alert": RED,
            "critical": RED,
            "error": RED,
            "warn": YELLOW,
            "warning": YELLOW,
            "info": GREEN,
            "debug": GREEN,
            "trace": GREEN,
            "notset": BACKRED,
        }
        for key in self._level_to_color.keys():
            self._level_to_color[key] += BRIGHT

    def __call__(self, logger, method_name, event_dict):
        console_io = io.StringIO()
        log_io = io.StringIO()

        def write(line):
            console_io.write(line)
            if RESET_ALL:
                for symbol in COLORS:
                    line = line.replace(symbol, "")
            log_io.write(line)

        replace_msg = event_dict.pop("_replace_msg", None)
        if replace_msg:
            formatter = PartialFormatter()
            formatted_replace_msg = formatter.format(replace_msg, **event_dict)
        else:
            formatted_replace_msg = None

        if not self.show_caller_info:
            event_dict.pop("code_file", None)
            event_dict.pop("code_func", None)
            event_dict.pop("code_lineno", None)
            event_dict.pop("code_module", None)

        ts = event_dict.pop("timestamp", None)
        if ts is not None:
            write(DIM + str(ts) + RESET_ALL + " ")

        event_dict.pop("pid", None)

        level = event_dict.pop("level", None)
        if level is not None:
            write(
                self._level_to_color[level]
                + level[0].upper()
                + RESET_ALL
                + " "
            )

        event = event_dict.pop("event")
        write(BRIGHT + _pad(event, self._pad_event) + RESET_ALL + " ")

        stdout = event_dict.pop("stdout", None)
        stderr = event_dict.pop("stderr", None)
        stack = event_dict.pop("stack", None)
        exception_traceback = event_dict.pop("exception_traceback", None)

        if formatted_replace_msg:
            write(formatted_replace_msg)
        else:
            write(
                " ".join(
                    CYAN
                    + key
                    + RESET_ALL
                    + "="
                    + MAGENTA
                    + repr(event_dict[key])
                    + RESET_ALL
                    for key in sorted(event_dict.keys())
                )
            )

        if stdout:
            write("\n" + DIM + prefix("out", "\n" + stdout + "\n") + RESET_ALL)

        if stderr:
            write("\n" + prefix("err", "\n" + stderr + "\n") + RESET_ALL)

        if stack is not None:
            write("\n" + prefix("stack", stack))
            if exception_traceback is not None:
                write("\n" + "=" * 79 + "\n")

        if exception_traceback is not None:
            write("\n" + prefix("exception", exception_traceback))

        # Filter according to the --verbose switch when outputting to the
        # console.
        if self.LEVELS.index(method_name.lower()) > self.min_level:
            console_io.seek(0)
            console_io.truncate()

        return {"console": console_io.getvalue(), "file": log_io.getvalue()}


class MultiRenderer:
    """
    Calls multiple renderers with a shallow copy of the event dict and
    collects their messages in a dict with the logger names as keys.
    Normally, this should be placed last in the processors chain.
    Errors in renderers are ignored silently.
    """

    def __init__(self, **renderers):
        self.renderers = renderers

    def __repr__(self):
        return "<MultiRenderer {}>".format([repr(l) for l in self.renderers])

    def __call__(self, logger, method_name, event_dict):
        merged_messages = {}
        for renderer in self.renderers.values():
            try:
                messages = renderer(logger, method_name, event_dict.copy())
                merged_messages.update(messages)
            except Exception:
                pass

        return merged_messages


def add_pid(logger, method_name, event_dict):
    event_dict["pid"] = os.getpid()
    return event_dict


def add_caller_info(logger, method_name, event_dict):
    frame, module_str = structlog._frames._find_first_app_frame_and_name(
        additional_ignores=[__name__]
    )
    event_dict["code_file"] = frame.f_code.co_filename
    event_dict["code_func"] = frame.f_code.co_name
    event_dict["code_lineno"] = frame.f_lineno
    event_dict["code_module"] = module_str
    return event_dict


def process_exc_info(logger, name, event_dict):
    """Transforms exc_info to the exception tuple format returned by
    sys.exc_info() without rendering it yet.
    """
    exc_info = event_dict.get("exc_info", None)

    if isinstance(exc_info, BaseException):
        event_dict["exc_info"] = (
            exc_info.__class__,
            exc_info,
            exc_info.__traceback__,
        )
    elif isinstance(exc_info, tuple):
        pass
    elif exc_info:
        event_dict["exc_info"] = sys.exc_info()

    return event_dict


def format_exc_info(logger, name, event_dict):
    """Renders exc_info if it's present.
    Compared to structlog's format_exc_info(), this renders the exception
    information into separate keys.
    """
    exc_info = event_dict.pop("exc_info", None)
    if exc_info is not None and exc_info[0] is not None:
        exception_class = exc_info[0]
        event_dict["exception_traceback"] = "".join(
            traceback.format_exception(*exc_info)
        )
        event_dict["exception_msg"] = str(exc_info[1])
        event_dict["exception_class"] = (
            exception_class.__module__ + "." + exception_class.__name__
        )

    return event_dict


_initialized = False


def logging_initialized():
    return _initialized


def init_logging(verbose, logdir=None, log_to_console=True):
    global _initialized

    multi_renderer = MultiRenderer(
        text=ConsoleFileRenderer(
            min_level="debug" if verbose else "info",
            show_caller_info=verbose,
        )
    )

    processors = [
        add_pid,
        structlog.processors.add_log_level,
        process_exc_info,
        format_exc_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso", utc=False),
        add_caller_info,
        multi_renderer,
    ]

    loggers = {}

    if logdir:
        main_log_file = open(Path(logdir) / LOG_FILE_NAME, "a")
        loggers["file"] = structlog.PrintLoggerFactory(main_log_file)
    if log_to_console:
        loggers["console"] = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.BoundLogger,
        logger_factory=MultiOptimisticLoggerFactory(**loggers),
    )
    _initialized = True
