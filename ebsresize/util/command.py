"""Helpers for running the external partition and filesystem tools."""

import subprocess

import structlog
from ebsresize.errors import LocalToolError

_log = structlog.get_logger()


def run_command(cmd, log=_log):
    """Runs `cmd` to completion and returns its stripped stdout.

    A non-zero exit raises LocalToolError which carries the output of the
    tool. A tool that cannot be found is reported the same way, using the
    shell convention of exit code 127.
    """
    log.debug("run-command", cmd=" ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as e:
        log.error("run-command-not-found", cmd=" ".join(cmd))
        raise LocalToolError(cmd, 127, stderr=str(e)) from e

    if proc.returncode != 0:
        log.error(
            "run-command-failed",
            cmd=" ".join(cmd),
            returncode=proc.returncode,
            stdout=proc.stdout.strip(),
            stderr=proc.stderr.strip(),
        )
        raise LocalToolError(
            cmd, proc.returncode, proc.stdout.strip(), proc.stderr.strip()
        )

    return proc.stdout.strip()
