"""
Report server operations keyed by connection context.

Each function opens its own SOAP client for the duration of one operation and
closes it afterwards, so callers (CLI, web front-ends) only deal with a
ConnectionContext.

Example Usage:
    from ssrs_migrator.common import ConnectionContext, services

    context = ConnectionContext("http://reports.example.com/ReportServer", "svc", "secret")

    if services.check_connection(context):
        outcome = services.upload_batch(context, "/Finance", documents, "/Data Sources/Warehouse")
        print(outcome.summary())
"""

from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

from .catalog import CatalogItem, CatalogNavigator
from .config import DEFAULT_MAX_UPLOAD_ITEMS, DEFAULT_TIMEOUT, ConnectionContext
from .observability import EventSink
from .operations import BatchOperations, BatchOutcome, UploadDocument
from .soap_client import SOAPClient


@contextmanager
def open_operations(
    context: ConnectionContext,
    timeout: int = DEFAULT_TIMEOUT,
    sink: Optional[EventSink] = None,
    max_upload_items: int = DEFAULT_MAX_UPLOAD_ITEMS
) -> Iterator[BatchOperations]:
    """
    Open a client for one operation and yield batch operations bound to it.

    Args:
        context: Connection details
        timeout: HTTP timeout in seconds
        sink: Event sink (default: LoggingSink)
        max_upload_items: Upload batch cap
    """
    with SOAPClient(context, timeout=timeout, sink=sink) as client:
        yield BatchOperations(client, CatalogNavigator(client), max_upload_items=max_upload_items)


def check_connection(context: ConnectionContext, **kwargs) -> bool:
    """True if the catalog root lists at least one item (see CatalogNavigator.check_connection)."""
    with open_operations(context, **kwargs) as ops:
        return ops.navigator.check_connection()


def list_children(context: ConnectionContext, path: str = "/", recursive: bool = False, **kwargs) -> List[CatalogItem]:
    with open_operations(context, **kwargs) as ops:
        return ops.navigator.list_children(path, recursive=recursive)


def list_data_sources(context: ConnectionContext, path: str = "/", **kwargs) -> List[CatalogItem]:
    with open_operations(context, **kwargs) as ops:
        return ops.navigator.list_data_sources(path)


def list_reports(context: ConnectionContext, folder: str, **kwargs) -> List[CatalogItem]:
    with open_operations(context, **kwargs) as ops:
        return ops.navigator.list_reports(folder)


def upload_batch(
    context: ConnectionContext,
    folder: str,
    documents: List[UploadDocument],
    data_source_path: Optional[str] = None,
    overwrite: bool = True,
    **kwargs
) -> BatchOutcome:
    with open_operations(context, **kwargs) as ops:
        return ops.upload_batch(folder, documents, data_source_path=data_source_path, overwrite=overwrite)


def download_all(context: ConnectionContext, folder: str, **kwargs) -> Dict[str, bytes]:
    with open_operations(context, **kwargs) as ops:
        return ops.download_all(folder)


def download_selected(context: ConnectionContext, folder: str, names: Iterable[str], **kwargs) -> Dict[str, bytes]:
    with open_operations(context, **kwargs) as ops:
        return ops.download_selected(folder, names)


def get_report_metadata(context: ConnectionContext, folder: str, **kwargs) -> List[CatalogItem]:
    with open_operations(context, **kwargs) as ops:
        return ops.get_report_metadata(folder)
