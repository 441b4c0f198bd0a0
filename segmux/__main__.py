"""
Main entry point for the segmux application.
This module handles top-level setup, exception handling, and CLI invocation.
"""

import logging
import os
import sys

import typer
from click.exceptions import ClickException
from rich.console import Console

from segmux.cli.app import app
from segmux.cli.formatters import format_error_with_suggestions
from segmux.exceptions import SegmuxError


def main() -> None:
    """Main entry point function."""
    if os.name == "nt":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    log = logging.getLogger("segmux")
    console = Console(stderr=True)

    # Without standalone mode click hands Ctrl-C back as Abort instead of exiting.
    try:
        exit_code = app(standalone_mode=False)
    except typer.Abort as e:
        if isinstance(e.__cause__, KeyboardInterrupt):
            # the job's own cleanup already ran while asyncio.run unwound
            console.print("\n[yellow]⚠️  Operation cancelled by user.[/yellow]")
            sys.exit(130)
        console.print("[yellow]Aborted.[/yellow]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Operation cancelled by user.[/yellow]")
        sys.exit(130)
    except ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except SegmuxError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, {'type': 'Unexpected'})}")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)
    sys.exit(exit_code if isinstance(exit_code, int) else 0)


if __name__ == "__main__":
    main()
