"""
Tests for CSV/ZIP packaging and file helpers.
"""

import csv
import io
import zipfile
from datetime import datetime

from ssrs_migrator.common.catalog import CatalogItem, ItemType
from ssrs_migrator.common.export import (
    METADATA_COLUMNS,
    bundle_zip,
    metadata_to_csv,
    read_documents,
    timestamped_filename,
    write_files,
)


def test_timestamped_filename():
    now = datetime(2026, 10, 18, 15, 30)

    assert timestamped_filename("SSRSReports", "csv", now) == "SSRSReports_202610181530.csv"
    assert timestamped_filename("SSRSReports", ".zip", now) == "SSRSReports_202610181530.zip"


def test_metadata_to_csv():
    items = [
        CatalogItem(name="Q1, \"Draft\"", path="/Finance/Q1", item_type=ItemType.REPORT,
                    created_at="2024-01-15T10:00:00", modified_at=None),
    ]

    content = metadata_to_csv(items)

    assert content.startswith(b'"Report Name","Path"')
    rows = list(csv.reader(io.StringIO(content.decode("utf-8"))))
    assert rows[0] == METADATA_COLUMNS
    assert rows[1] == ["Q1, \"Draft\"", "/Finance/Q1", "", "2024-01-15T10:00:00", ""]


def test_metadata_to_csv_header_only_when_empty():
    assert metadata_to_csv([]).decode("utf-8").count("\n") == 1


def test_bundle_zip():
    files = {"A.rdl": b"<Report/>", "B.rdl": b"<Report>b</Report>"}

    with zipfile.ZipFile(io.BytesIO(bundle_zip(files))) as archive:
        assert sorted(archive.namelist()) == ["A.rdl", "B.rdl"]
        assert archive.read("B.rdl") == b"<Report>b</Report>"


def test_write_and_read_files(tmp_path):
    target = tmp_path / "out"

    written = write_files({"Quarterly.rdl": b"<Report/>"}, str(target))

    assert written == [str(target / "Quarterly.rdl")]
    documents = read_documents(written)
    assert [(d.name, d.content) for d in documents] == [("Quarterly", b"<Report/>")]
