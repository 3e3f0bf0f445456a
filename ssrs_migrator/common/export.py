"""
Packaging helpers for operator output: CSV metadata exports, ZIP bundles of
downloaded definitions, and reading/writing .rdl files on disk.
"""

import csv
import io
import logging
import os
import zipfile
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .catalog import CatalogItem
from .operations import UploadDocument

logger = logging.getLogger(__name__)

METADATA_COLUMNS = ["Report Name", "Path", "Data Source Path", "Created Date", "Modified Date"]


def timestamped_filename(prefix: str, extension: str, now: Optional[datetime] = None) -> str:
    """e.g. timestamped_filename("SSRSReports", "csv") -> "SSRSReports_202610181530.csv" """
    now = now or datetime.now()
    return f"{prefix}_{now:%Y%m%d%H%M}.{extension.lstrip('.')}"


def metadata_to_csv(items: Iterable[CatalogItem]) -> bytes:
    """
    Render report metadata as CSV (UTF-8, all fields quoted).

    Args:
        items: Catalog items (typically from get_report_metadata)

    Returns:
        CSV document bytes with a header row
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(METADATA_COLUMNS)
    for item in items:
        writer.writerow([
            item.name,
            item.path,
            item.data_source_path or "",
            item.created_at or "",
            item.modified_at or "",
        ])
    return buffer.getvalue().encode("utf-8")


def bundle_zip(files: Dict[str, bytes]) -> bytes:
    """
    Pack downloaded definitions into an in-memory ZIP archive.

    Args:
        files: Mapping of file name -> content

    Returns:
        ZIP archive bytes
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def write_files(files: Dict[str, bytes], directory: str) -> List[str]:
    """
    Write downloaded definitions into a directory (created if missing).

    Returns:
        List of written file paths
    """
    os.makedirs(directory, exist_ok=True)
    written = []
    for name, content in files.items():
        path = os.path.join(directory, os.path.basename(name))
        with open(path, "wb") as f:
            f.write(content)
        written.append(path)
    logger.info(f"Wrote {len(written)} files to {directory}")
    return written


def read_documents(paths: Iterable[str]) -> List[UploadDocument]:
    """Read .rdl files for upload, in the given order."""
    return [UploadDocument.from_file(path) for path in paths]
