"""Library for formatting output."""

from abc import ABC, abstractmethod
from typing import Generator, Any

import sys
from typing import TextIO
import yaml
import json


PADDING = 4
RULE = "=" * 48

_COLORS = {
    "green": "\033[0;32m",
    "yellow": "\033[1;33m",
    "blue": "\033[0;34m",
}
_RESET = "\033[0m"


def column_format_string(rows: list[list[str]]) -> str:
    """Produce a format string based on max width of columns."""
    num_cols = len(rows[0])
    widths = [0] * num_cols
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(str(value)))
    return "".join([f"{{:{w+PADDING}}}" for w in widths])


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Print the specified output rows in a column format."""
    data = [headers] + rows
    format_string = column_format_string(data)
    if format_string:
        for row in data:
            yield format_string.format(*[str(x) for x in row]).rstrip()


class PrintFormatter:
    """A formatter that prints human readable console output."""

    def __init__(self, keys: list[str] | None = None):
        """Initialize the PrintFormatter with optional keys to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the data objects."""
        if not data:
            return
        keys = self._keys if self._keys is not None else list(data[0])
        rows = []
        for row in data:
            rows.append([str(row[key]) for key in keys])
        cols = [col.upper() for col in keys]
        for result in format_columns(cols, rows):
            yield result

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        """Output the data objects."""
        for result in self.format(data):
            print(result, file=file)


class StructFormatter(ABC):
    """A formatter that prints objects."""

    @abstractmethod
    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        """Print the data objects."""


class YamlFormatter(StructFormatter):
    """A formatter that prints yaml output."""

    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        """Format the data objects."""
        print(
            yaml.dump_all(data, sort_keys=False, explicit_start=True), end="", file=file
        )


class JsonFormatter(StructFormatter):
    """A formatter that prints json output."""

    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        """Format the data objects."""
        json.dump(data, sort_keys=False, indent=4, fp=file)
        print(file=file)


def colorize(text: str, color: str, file: TextIO = sys.stdout) -> str:
    """Wrap the text in a terminal color when writing to a terminal."""
    if not file.isatty():
        return text
    return f"{_COLORS[color]}{text}{_RESET}"


def header(title: str, file: TextIO = sys.stdout) -> None:
    """Print a section header."""
    print(file=file)
    print(colorize(RULE, "blue", file), file=file)
    print(colorize(f" {title}", "blue", file), file=file)
    print(colorize(RULE, "blue", file), file=file)


def success(message: str, file: TextIO = sys.stdout) -> None:
    print(colorize(f"[OK] {message}", "green", file), file=file)


def warn(message: str, file: TextIO = sys.stdout) -> None:
    print(colorize(f"[WARN] {message}", "yellow", file), file=file)
