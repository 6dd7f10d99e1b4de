"""
File boundary for the AutoInsight CSV analysis system.
Reads CSV files as text and writes row collections in the export formats.
This is the only layer that raises for bad input.
"""

import logging
import psutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union, Dict, Any, Iterable, List, Sequence

import pandas as pd

from .config import (
    MAX_FILE_SIZE, MEMORY_THRESHOLD, SUPPORTED_FORMATS, EXPORT_FORMATS,
    CSV_ENCODING, PANDAS_OPTIONS
)
from .csv_parser import parse_records
from .exceptions import (
    FileHandlingError, UnsupportedFileFormatError, FileSizeError,
    FileReadError, ExportError, InsufficientMemoryError, CsvAnalysisError
)
from .exporters import to_csv_text, to_html_text, to_json_text, write_excel
from .models import Row

# Configure pandas display for exports and console previews
for option, value in PANDAS_OPTIONS.items():
    pd.set_option(option, value)


@dataclass
class LoadedDataset:
    """Parsed content of one CSV file."""
    headers: List[str]
    rows: List[Row]
    file_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.file_info.get('name', 'data')


class FileHandler:
    """
    File handler for CSV input and CSV/JSON/HTML/Excel output, with size and
    memory checks.
    """

    def __init__(self, memory_threshold: float = MEMORY_THRESHOLD):
        """
        Initialize FileHandler with memory monitoring.

        Args:
            memory_threshold: Maximum memory usage threshold (0.0 to 1.0)
        """
        self.memory_threshold = memory_threshold
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        """Set up logging for file operations."""
        logger = logging.getLogger(__name__)
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(logging.INFO)
        return logger

    def _check_memory_usage(self) -> None:
        """Check current memory usage and raise exception if threshold exceeded."""
        memory_percent = psutil.virtual_memory().percent / 100
        if memory_percent > self.memory_threshold:
            raise InsufficientMemoryError(
                f"Memory usage ({memory_percent:.1%}) exceeds threshold "
                f"({self.memory_threshold:.1%})"
            )

    def _validate_file(self, file_path: Path) -> None:
        """
        Validate file exists, size, and format.

        Args:
            file_path: Path to the file to validate

        Raises:
            FileHandlingError: If file doesn't exist or is inaccessible
            UnsupportedFileFormatError: If file format is not supported
            FileSizeError: If file size exceeds maximum allowed size
        """
        if not file_path.exists():
            raise FileHandlingError("File not found", str(file_path))

        if not file_path.is_file():
            raise FileHandlingError("Path is not a file", str(file_path))

        file_extension = file_path.suffix.lower()
        if file_extension not in SUPPORTED_FORMATS:
            raise UnsupportedFileFormatError(
                f"Unsupported file format: {file_extension}. "
                f"Supported formats: {', '.join(sorted(SUPPORTED_FORMATS))}",
                str(file_path)
            )

        file_size = file_path.stat().st_size
        if file_size > MAX_FILE_SIZE:
            raise FileSizeError(
                f"File size ({file_size / (1024**3):.2f} GB) exceeds "
                f"maximum allowed size ({MAX_FILE_SIZE / (1024**3):.2f} GB)",
                str(file_path)
            )

        self.logger.info(f"File validation passed: {file_path.name} "
                         f"({file_size / (1024**2):.2f} MB)")

    def get_file_info(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        """
        Get file information.

        Args:
            file_path: Path to the file

        Returns:
            Dictionary with name, path, size, extension and estimated rows
        """
        file_path = Path(file_path)
        self._validate_file(file_path)

        file_stat = file_path.stat()
        return {
            'name': file_path.name,
            'path': str(file_path),
            'size_bytes': file_stat.st_size,
            'size_mb': file_stat.st_size / (1024 ** 2),
            'extension': file_path.suffix.lower(),
            'modified_time': file_stat.st_mtime,
            'estimated_rows': self._estimate_csv_rows(file_path),
        }

    def _estimate_csv_rows(self, file_path: Path) -> int:
        """Estimate number of data rows by sampling the first megabyte."""
        total_size = file_path.stat().st_size
        sample_size = min(1024 * 1024, total_size)
        if sample_size == 0:
            return 0

        try:
            with open(file_path, 'r', encoding=CSV_ENCODING, errors='ignore') as f:
                sample = f.read(sample_size)
        except OSError:
            return -1  # Unknown

        sample_rows = sample.count('\n')
        if sample_rows == 0:
            return 0
        estimated_rows = int((total_size / sample_size) * sample_rows)
        return max(0, estimated_rows - 1)  # Subtract header row

    def read_text(self, file_path: Union[str, Path]) -> str:
        """
        Read the whole file as UTF-8 text (a leading BOM is dropped).

        Raises:
            FileHandlingError: If the file is missing, unsupported or too large
            FileReadError: If the file cannot be read or decoded
            InsufficientMemoryError: If memory usage is above the threshold
        """
        file_path = Path(file_path)
        self._validate_file(file_path)
        self._check_memory_usage()

        try:
            with open(file_path, 'r', encoding=CSV_ENCODING, newline='') as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise FileReadError(f"File is not valid UTF-8 text: {e.reason}", str(file_path)) from e
        except OSError as e:
            raise FileReadError(f"Failed to read file: {e}", str(file_path)) from e

    def load_csv(self, file_path: Union[str, Path]) -> LoadedDataset:
        """
        Read and parse a CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            LoadedDataset with headers, records and file information

        Raises:
            CsvAnalysisError: If the file cannot be read or has no header row
        """
        file_path = Path(file_path)
        try:
            file_info = self.get_file_info(file_path)
            text = self.read_text(file_path)
        except (FileHandlingError, InsufficientMemoryError) as e:
            self.logger.error(f"Could not load {file_path}: {e}")
            raise CsvAnalysisError(str(file_path)) from e

        headers, rows = parse_records(text)
        if not headers:
            self.logger.error(f"No header row found in {file_path.name}")
            raise CsvAnalysisError(str(file_path))

        self.logger.info(f"Loaded {file_path.name}: {len(rows):,} rows, {len(headers)} columns")
        return LoadedDataset(headers=headers, rows=rows, file_info=file_info)

    def save_rows(self,
                  rows: Sequence[Row],
                  headers: Sequence[str],
                  output_path: Union[str, Path],
                  comments: Optional[Iterable[str]] = None) -> Path:
        """
        Save rows with the format taken from the file extension.

        Args:
            rows: Records to save
            headers: Column order
            output_path: Destination (.csv, .json, .html or .xlsx)
            comments: Trailing comment lines for CSV output

        Returns:
            The written path
        """
        output_path = Path(output_path)
        format_type = output_path.suffix.lower()
        if format_type not in EXPORT_FORMATS:
            raise UnsupportedFileFormatError(
                f"Unsupported output format: {format_type}",
                str(output_path)
            )

        self.logger.info(f"Saving {len(rows):,} rows to {output_path.name}")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            if format_type == '.csv':
                output_path.write_text(to_csv_text(rows, headers, comments), encoding='utf-8')
            elif format_type == '.json':
                output_path.write_text(to_json_text(rows, headers), encoding='utf-8')
            elif format_type == '.html':
                output_path.write_text(to_html_text(rows, headers, output_path.stem), encoding='utf-8')
            else:
                write_excel(rows, headers, output_path)
        except (OSError, ValueError) as e:
            raise ExportError(f"Failed to save file: {e}", str(output_path)) from e

        return output_path
