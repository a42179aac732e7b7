"""Grow EBS volumes running out of space, including partition and filesystem.

Meant to be run periodically, e.g. from a systemd timer. Each invocation
does a single pass over all mounted EBS volumes.
"""

import signal
import threading
from pathlib import Path
from typing import Optional

import ebsresize.resize
import structlog
from ebsresize.config import DEFAULT_CONFIG_FILE, load_config
from ebsresize.errors import ConfigError, ResizeError
from ebsresize.util.lock import locked
from ebsresize.util.logging import init_logging
from ebsresize.util.typer_utils import ResizeTyperApp, requires_root
from typer import Exit, Option

app = ResizeTyperApp("ebs-autoresize")


def install_cancel_handlers(cancel: threading.Event, log):
    def handler(signum, frame):
        log.warning("resize-cancel-requested", signal=signal.strsignal(signum))
        cancel.set()

    signal.signal(signal.SIGTERM, handler)
    signal.signal(signal.SIGINT, handler)


@app.command()
@requires_root
def resize(
    increase_percent: Optional[float] = Option(
        None, help="Grow volumes by this percentage (default: 20)."
    ),
    threshold: Optional[float] = Option(
        None,
        help="Grow volumes used at least this many percent (default: 85).",
    ),
    config_file: Path = Option(
        DEFAULT_CONFIG_FILE, dir_okay=False, help="INI file, [resize] section."
    ),
    continue_on_error: Optional[bool] = Option(
        None,
        "--continue-on-error/--abort-on-error",
        help="Process remaining disks after a disk failed.",
    ),
    verbose: bool = False,
    logdir: Path = Option(
        "/var/log", exists=True, file_okay=False, writable=True
    ),
    lock_dir: Path = Option(
        "/run/lock", exists=True, file_okay=False, writable=True
    ),
):
    init_logging(verbose, logdir)
    log = structlog.get_logger()

    try:
        config = load_config(
            config_file,
            log,
            increase_percent=increase_percent,
            threshold_percent=threshold,
            continue_on_error=continue_on_error,
        )
    except ConfigError as e:
        log.error("resize-config-invalid", error=str(e))
        raise Exit(2)

    cancel = threading.Event()
    install_cancel_handlers(cancel, log)

    log.info(
        "resize-disk-start",
        increase_percent=config.increase_percent,
        threshold=config.threshold_percent,
    )
    try:
        with locked(log, lock_dir):
            results = ebsresize.resize.run(config, cancel=cancel, log=log)
    except ResizeError:
        log.error("resize-disk-exception", exc_info=True)
        raise Exit(1)

    failed = [r for r in results if r.status == ebsresize.resize.FAILED]
    if failed:
        log.error(
            "resize-disk-failed-disks",
            devices=[r.record.device_name for r in failed],
        )
        raise Exit(1)

    log.info("resize-disk-finished")
