"""Console logging for the trench CLI.

Every module logs through ``logging.getLogger(__name__)``; those loggers sit
under the ``trench`` logger configured here, so one rich handler on stderr
renders all of them. Stdout is left for paths, JSON and porcelain output.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "trench"

console = Console(stderr=True)

_MARKERS = {
    logging.WARNING: "[yellow]⚠[/yellow] ",
    logging.ERROR: "[red]✗[/red] ",
}


class CliLogger:
    """The ``trench`` logger plus the status markers the CLI prints."""

    def __init__(self, name: str = ROOT_LOGGER):
        self.logger = logging.getLogger(name)
        self.logger.handlers.clear()
        self.logger.propagate = False

        handler = RichHandler(console=console, show_time=False, show_path=False, markup=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(handler)
        self.logger.setLevel(logging.INFO)

    def configure(
        self,
        level: str | int = logging.INFO,
        verbose: bool = False,
        quiet: bool = False,
    ) -> None:
        """Apply the configured level, then the ``-v``/``-q`` overrides.

        ``quiet`` wins when both flags are given.
        """
        if isinstance(level, str):
            level = level.upper()
        if verbose:
            level = logging.DEBUG
        if quiet:
            level = logging.WARNING
        self.logger.setLevel(level)

    def _log(self, level: int, message: str) -> None:
        self.logger.log(level, _MARKERS.get(level, "") + message)

    def info(self, message: str) -> None:
        self._log(logging.INFO, message)

    def warning(self, message: str) -> None:
        self._log(logging.WARNING, message)

    def error(self, message: str) -> None:
        self._log(logging.ERROR, message)

    def success(self, message: str) -> None:
        self.logger.info(f"[green]✓[/green] {message}")


logger = CliLogger()
