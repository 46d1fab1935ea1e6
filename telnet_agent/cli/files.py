"""File handling for command scripts and session transcripts."""

from __future__ import annotations

from collections.abc import Iterable
from csv import DictReader as CSVReader, DictWriter as CSVWriter
from dataclasses import dataclass, field
from json import dump as json_dump, loads as json_loads
from typing import TYPE_CHECKING, Literal

from openpyxl import load_workbook as openpyxl_load_workbook
from openpyxl.workbook import Workbook as OpenPyXLWorkbook

if TYPE_CHECKING:
    from pathlib import Path

    from telnet_agent.types import JSON_TYPE

# Column holding the line to send when a script is tabular
COMMAND_COLUMN = "command"


@dataclass(slots=True)
class FileReader:
    """Read a command script from a file."""

    path: Path
    type: Literal["csv", "json", "plain", "xlsx"]
    data: JSON_TYPE = field(init=False)

    def __post_init__(self) -> None:
        """Load the file according to its type.

        Raises:
            ValueError: If the file type is invalid.
        """
        match self.type:
            case "csv":
                self._read_csv()
            case "json":
                self._read_json()
            case "plain":
                self._read_plain()
            case "xlsx":
                self._read_xlsx()
            case _:
                msg = f"Invalid file type: {self.type}"
                raise ValueError(msg)

    def _read_csv(self) -> None:
        """Read rows from a CSV file with a header line."""
        self.data = list(CSVReader(self.path.read_text().splitlines()))

    def _read_json(self) -> None:
        """Read data from a JSON file."""
        self.data = json_loads(self.path.read_text())

    def _read_plain(self) -> None:
        """Read one command per line; blank lines are kept and sent as-is."""
        self.data = self.path.read_text().splitlines()

    def _read_xlsx(self) -> None:
        """Read rows from the active worksheet of an Excel XLSX file."""
        worksheet = openpyxl_load_workbook(filename=self.path, data_only=True, read_only=True).active
        rows = list(worksheet.rows)
        if not rows:
            self.data = []
            return
        headers = [cell.value for cell in rows[0]]
        self.data = [
            {header: cell.value for header, cell in zip(headers, row, strict=False)} for row in rows[1:]
        ]

    def commands(self) -> list[str]:
        """Flatten the loaded data into the lines to send.

        Tabular rows use their ``command`` column, or their first column when
        there is none. Plain values are sent as their string form and ``None``
        as an empty line.

        Returns:
            The lines in file order
        """
        items = self.data if isinstance(self.data, list) else [self.data]
        lines: list[str] = []
        for item in items:
            value = item
            if isinstance(item, dict):
                value = item.get(COMMAND_COLUMN, next(iter(item.values()), None))
            lines.append("" if value is None else str(value))
        return lines


@dataclass(slots=True)
class FileWriter:
    """Write data to a file in various formats."""

    path: Path
    type: Literal["csv", "json", "plain", "xlsx"]
    data: dict[str, JSON_TYPE] | list[JSON_TYPE]

    def __post_init__(self) -> None:
        """Write the data according to the file type.

        Raises:
            ValueError: If the file type is invalid.
        """
        match self.type:
            case "csv":
                self._write_csv()
            case "json":
                self._write_json()
            case "plain":
                self._write_plain()
            case "xlsx":
                self._write_xlsx()
            case _:
                msg = f"Invalid file type: {self.type}"
                raise ValueError(msg)

    def _write_csv(self) -> None:
        """Write a list of dictionaries to a CSV file."""
        with self.path.open("w", newline="") as handle:
            writer = CSVWriter(handle, fieldnames=list(self.data[0].keys()) if self.data else [])
            writer.writeheader()
            for row in self.data:
                writer.writerow(row)

    def _write_json(self) -> None:
        """Write data to a JSON file."""
        with self.path.open("w") as handle:
            json_dump(self.data, handle, indent=2)

    def _write_plain(self) -> None:
        """Write data to a plain text file."""
        content: str
        if isinstance(self.data, list):
            content = "\n".join(str(item) for item in self.data)
        elif isinstance(self.data, dict):
            content = "\n".join(f"{key}: {value}" for key, value in self.data.items())
        else:
            content = str(self.data)
        self.path.write_text(content)

    def _write_xlsx(self) -> None:
        """Write data to an Excel XLSX file.

        Raises:
            ValueError: If the data is empty.
        """
        if not self.data:
            msg = "No data to write to file"
            raise ValueError(msg)
        workbook = OpenPyXLWorkbook()
        worksheet = workbook.active
        if isinstance(self.data, dict):
            worksheet.append(["Key", "Value"])
            for key, value in self.data.items():
                worksheet.append([key, value])
        elif isinstance(self.data[0], dict):
            headers = list(self.data[0].keys())
            worksheet.append(headers)
            for row in self.data:
                worksheet.append([row.get(header) for header in headers])
        else:
            for value in self.data:
                worksheet.append(
                    list(value) if isinstance(value, Iterable) and not isinstance(value, str) else [value]
                )
        workbook.save(self.path)
