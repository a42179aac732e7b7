import os
from functools import wraps

import ebsresize.util.logging
import rich
import structlog
import typer


class ResizeTyperApp(typer.Typer):
    def __init__(self, command_name):
        # Showing local variables may leak credentials, don't do it.
        super().__init__(pretty_exceptions_show_locals=False)
        self.command_name = command_name

    def __call__(self):
        try:
            super().__call__()
        except Exception as e:
            if ebsresize.util.logging.logging_initialized():
                try:
                    log = structlog.get_logger()
                    log.error(
                        "unhandled-exception",
                        exc_info=True,
                        command=self.command_name,
                    )
                except Exception:
                    print("WARNING: logging an unhandled exception failed.")
                    raise e
            else:
                print(
                    "WARNING: could not log an unhandled exception because "
                    "structured logging has not been initialized."
                )
                raise e

            # Outside of a systemd unit, let typer pretty-print the
            # exception for interactive use.
            if not os.environ.get("INVOCATION_ID"):
                raise e
            raise SystemExit(1)


def requires_root(func):
    @wraps(func)
    def root_only(*args, **kwargs):
        if os.getuid() != 0:
            rich.print(
                "[bold red]Error:[/bold red] Only root can resize disks."
            )
            raise typer.Exit(77)

        return func(*args, **kwargs)

    return root_only
