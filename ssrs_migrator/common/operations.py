"""
Batch operations against the report server: upload, download and metadata export.

Every batch follows the same failure isolation rule: each item is processed,
caught and recorded on its own, and a failing item never aborts its siblings,
including when its request times out or the connection is reset. Only a
credential rejection or a failed initial listing aborts the whole operation.
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from .catalog import CatalogItem, CatalogNavigator, join_path
from .config import DEFAULT_MAX_UPLOAD_ITEMS
from .errors import ItemError, ProtocolError, ServiceConnectionError
from .observability import (
    FAILED_REPORT_LOGGER_NAME,
    OUTCOME_FAILURE,
    OUTCOME_SUCCESS,
    OperationEvent,
    emit_event,
    sanitize_error,
)
from .rdl import rebind
from .soap_client import SOAPClient, text_by_local_name


logger = logging.getLogger(__name__)
failed_report_logger = logging.getLogger(FAILED_REPORT_LOGGER_NAME)

T = TypeVar('T')

DEFINITION_EXTENSION = ".rdl"
UNNAMED_REPORT = "UnnamedReport"


@dataclass
class UploadDocument:
    """A report definition to upload, named without its file extension."""
    name: str
    content: bytes

    @classmethod
    def from_file(cls, path: str) -> 'UploadDocument':
        """Read a .rdl file; the report name is the file name without extension."""
        with open(path, 'rb') as f:
            content = f.read()
        return cls(name=os.path.splitext(os.path.basename(path))[0], content=content)


@dataclass
class ItemFailure:
    """One failed batch item: its name, the sanitized error text and the wrapped exception."""
    item: str
    error: str
    exception: Optional[ItemError] = field(default=None, repr=False, compare=False)


@dataclass
class BatchOutcome:
    """
    Aggregate result of a multi-item operation.

    Attributes:
        succeeded: Number of items that completed
        failed: Number of items that raised
        failures: Failed items with their error text, in input order
        skipped: Items dropped before processing (batch cap), not failures
    """
    succeeded: int = 0
    failed: int = 0
    failures: List[ItemFailure] = field(default_factory=list)
    skipped: int = 0

    @property
    def total_attempted(self) -> int:
        return self.succeeded + self.failed

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def failed_items(self) -> List[str]:
        return [f.item for f in self.failures]

    def record_success(self) -> None:
        self.succeeded += 1

    def record_failure(self, item: str, error: str, exception: Optional[ItemError] = None) -> None:
        self.failed += 1
        self.failures.append(ItemFailure(item=item, error=error, exception=exception))

    def summary(self, noun: str = "reports", verb: str = "Uploaded") -> str:
        message = f"{verb} {self.succeeded} {noun} successfully."
        if self.failed:
            message += f" {self.failed} failed (see logs)."
        if self.skipped:
            message += f" {self.skipped} skipped (batch limit)."
        return message


def run_batch(
    items: Iterable[T],
    key: Callable[[T], str],
    action: Callable[[T], None],
    outcome: Optional[BatchOutcome] = None,
    operation: str = "batch",
    sink=None,
    secrets: Iterable[str] = ()
) -> BatchOutcome:
    """
    Apply `action` to each item in order, isolating per-item failures.

    Each item resolves to exactly one of succeeded/failed. Timeouts and
    connection resets are recorded against the item like any other error;
    only a credential rejection (HTTP 401/403) aborts the batch and propagates.

    Args:
        items: Items to process
        key: Callable returning the identifying name of an item
        action: Callable performing the work for one item
        outcome: Accumulator to fold into (a new one by default)
        operation: Operation name for events and logs
        sink: Optional EventSink receiving one event per item
        secrets: Values to mask in recorded error text

    Returns:
        BatchOutcome: The accumulator after all items were processed
    """
    outcome = outcome if outcome is not None else BatchOutcome()

    for item in items:
        name = key(item)
        try:
            action(item)
        except Exception as e:
            if isinstance(e, ServiceConnectionError) and e.credentials_rejected:
                raise
            message = sanitize_error(e, secrets) or type(e).__name__
            outcome.record_failure(name, message, ItemError(name, e))
            failed_report_logger.error(f"Failed to {operation} {name}: {message}")
            emit_event(sink, OperationEvent(
                operation=operation, target=name, outcome=OUTCOME_FAILURE, error_message=message,
            ))
        else:
            outcome.record_success()
            emit_event(sink, OperationEvent(operation=operation, target=name, outcome=OUTCOME_SUCCESS))

    return outcome


def normalize_folder(folder: Optional[str]) -> str:
    """Strip the trailing slash of a catalog folder; the root stays "/"."""
    folder = (folder or "/").strip()
    return folder.rstrip("/") or "/"


class BatchOperations:
    """
    Bulk report operations for one report server connection.

    Features:
    - Upload with optional shared data source rebinding
    - Download of a whole folder tree or of selected reports
    - Report metadata listing for tabular exports
    """

    def __init__(
        self,
        client: SOAPClient,
        navigator: Optional[CatalogNavigator] = None,
        max_upload_items: int = DEFAULT_MAX_UPLOAD_ITEMS
    ):
        """
        Initialize batch operations.

        Args:
            client: SOAP transport for the target server
            navigator: Catalog navigator (built from client if omitted)
            max_upload_items: Upload batch cap; excess items are dropped
        """
        self.client = client
        self.navigator = navigator or CatalogNavigator(client)
        self.max_upload_items = max_upload_items

    # =========================================================================
    # Upload
    # =========================================================================

    def upload_report(
        self,
        folder: str,
        name: str,
        content: bytes,
        data_source_path: Optional[str] = None,
        overwrite: bool = True
    ) -> None:
        """
        Upload one report definition.

        Args:
            folder: Target catalog folder
            name: Report name (without .rdl extension)
            content: RDL document bytes
            data_source_path: Shared data source to bind all data sources to
            overwrite: Replace an existing report of the same name

        Raises:
            DocumentError: If rebinding was requested and the RDL is malformed
            ProtocolError: If the server rejects the item
        """
        parent = normalize_folder(folder)
        name = (name or "").strip() or UNNAMED_REPORT

        if data_source_path and data_source_path.strip():
            content = rebind(content, data_source_path.strip())

        self.client.call("CreateCatalogItem", {
            "ItemType": "Report",
            "Name": name,
            "Parent": parent,
            "Overwrite": overwrite,
            "Definition": content,
            "Properties": None,
        })

        logger.info(f"Uploaded report: {name} to {parent} (Overwrite={overwrite})")

    def upload_batch(
        self,
        folder: str,
        documents: List[UploadDocument],
        data_source_path: Optional[str] = None,
        overwrite: bool = True
    ) -> BatchOutcome:
        """
        Upload many report definitions, isolating per-item failures.

        Only the first `max_upload_items` documents are processed; the rest are
        counted as skipped, not failed.

        Args:
            folder: Target catalog folder
            documents: Documents to upload, in order
            data_source_path: Optional shared data source path for rebinding
            overwrite: Replace existing reports

        Returns:
            BatchOutcome: succeeded/failed counts and failure details
        """
        outcome = BatchOutcome()

        if len(documents) > self.max_upload_items:
            outcome.skipped = len(documents) - self.max_upload_items
            logger.warning(
                f"Upload batch of {len(documents)} exceeds limit of {self.max_upload_items}; "
                f"{outcome.skipped} items dropped"
            )
            documents = documents[:self.max_upload_items]

        logger.info(f"Uploading {len(documents)} reports to {normalize_folder(folder)}")

        run_batch(
            documents,
            key=lambda doc: doc.name,
            action=lambda doc: self.upload_report(folder, doc.name, doc.content, data_source_path, overwrite),
            outcome=outcome,
            operation="upload",
            sink=self.client.sink,
            secrets=self.client.secrets,
        )

        logger.info(outcome.summary())
        return outcome

    # =========================================================================
    # Download
    # =========================================================================

    def get_definition(self, path: str) -> bytes:
        """
        Fetch and decode the definition of one catalog item.

        Args:
            path: Full catalog path of the report

        Returns:
            RDL document bytes

        Raises:
            ProtocolError: If the response has no Definition or it is not valid base64
        """
        root = self.client.call("GetItemDefinition", {"ItemPath": path})

        definition = text_by_local_name(root, "Definition")
        if definition is None:
            raise ProtocolError(f"No definition returned for {path}")

        try:
            return base64.b64decode(definition)
        except (binascii.Error, ValueError) as e:
            raise ProtocolError(f"Invalid definition payload for {path}: {e}") from e

    def _download(self, targets: List[Tuple[str, str]], operation: str) -> Tuple[Dict[str, bytes], BatchOutcome]:
        """
        Fetch definitions for (name, path) pairs.

        Returns:
            (filename -> bytes for successful items, outcome)
        """
        files: Dict[str, bytes] = {}

        def fetch(target: Tuple[str, str]) -> None:
            name, path = target
            content = self.get_definition(path)
            filename = f"{name}{DEFINITION_EXTENSION}"
            if filename in files:
                logger.warning(f"Duplicate report name {name}; {path} replaces the earlier download")
            files[filename] = content

        outcome = run_batch(
            targets,
            key=lambda target: target[0],
            action=fetch,
            operation=operation,
            sink=self.client.sink,
            secrets=self.client.secrets,
        )
        return files, outcome

    def download_all_with_outcome(self, folder: str) -> Tuple[Dict[str, bytes], BatchOutcome]:
        """download_all() that also returns the per-item outcome."""
        reports = self.navigator.get_report_metadata(folder)
        logger.info(f"Preparing to download {len(reports)} reports from {folder}")

        files, outcome = self._download([(r.name, r.path) for r in reports], "download")

        logger.info(f"Downloaded {len(files)} report definitions from {folder}")
        return files, outcome

    def download_all(self, folder: str) -> Dict[str, bytes]:
        """
        Download every report below a folder (recursive).

        Failed items are logged and left out of the result. Only a failure of
        the initial listing aborts.

        Args:
            folder: Catalog folder

        Returns:
            Mapping of "<name>.rdl" -> definition bytes
        """
        files, _ = self.download_all_with_outcome(folder)
        return files

    def download_selected_with_outcome(
        self,
        folder: str,
        names: Iterable[str]
    ) -> Tuple[Dict[str, bytes], BatchOutcome]:
        """download_selected() that also returns the per-item outcome."""
        targets = [(name, join_path(folder, name)) for name in names]
        files, outcome = self._download(targets, "download")
        logger.info(f"Downloaded {len(files)} of {len(targets)} selected reports from {folder}")
        return files, outcome

    def download_selected(self, folder: str, names: Iterable[str]) -> Dict[str, bytes]:
        """
        Download reports by name from one folder.

        Args:
            folder: Catalog folder containing the reports
            names: Report names (joined under folder to form the path)

        Returns:
            Mapping of "<name>.rdl" -> definition bytes for the reports that succeeded
        """
        files, _ = self.download_selected_with_outcome(folder, names)
        return files

    # =========================================================================
    # Metadata
    # =========================================================================

    def get_report_metadata(self, folder: str) -> List[CatalogItem]:
        """Reports below `folder` with timestamps; a single listing call."""
        return self.navigator.get_report_metadata(folder)
