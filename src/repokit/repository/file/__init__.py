"""File-backed repository contexts (JSON, XML and CSV)."""

from repokit.repository.file.context import FileContext
from repokit.repository.file.csv import CsvContext
from repokit.repository.file.json import JsonContext
from repokit.repository.file.xml import XmlContext

__all__ = ["CsvContext", "FileContext", "JsonContext", "XmlContext"]
