"""
Report Server Migration Module (filesystem <-> SSRS catalog)

A framework-agnostic module for moving report definitions between local files
and a SQL Server Reporting Services catalog over its SOAP interface:
- Browse the catalog (folders, reports, shared data sources)
- Upload .rdl files, optionally rebinding them to a shared data source
- Download report definitions and export report metadata

Example Usage:
    from ssrs_migrator.common import MigratorConfig, SOAPClient, BatchOperations
    from ssrs_migrator.common import read_documents

    config = MigratorConfig.from_env()

    with SOAPClient(config.context(), timeout=config.timeout) as client:
        ops = BatchOperations(client, max_upload_items=config.max_upload_items)
        outcome = ops.upload_batch("/Finance", read_documents(["Quarterly.rdl"]))
        print(outcome.summary())
"""

__version__ = '1.0.0'

# Configuration
from .config import (
    ConnectionContext,
    MigratorConfig,
)

# Errors
from .errors import (
    MigratorError,
    ServiceConnectionError,
    ProtocolError,
    DocumentError,
    ItemError,
)

# Observability
from .observability import (
    OperationEvent,
    EventSink,
    LoggingSink,
    MemorySink,
    NullSink,
    configure_logging,
)

# SOAP transport
from .soap_client import (
    SOAPClient,
    build_envelope,
    extract_fault,
    find_by_local_name,
)

# Catalog
from .catalog import CatalogItem, CatalogNavigator, ItemType, join_path

# RDL rewriting
from .rdl import rebind, data_source_names

# Batch operations
from .operations import (
    BatchOperations,
    BatchOutcome,
    ItemFailure,
    UploadDocument,
    run_batch,
)

# Packaging helpers
from .export import (
    bundle_zip,
    metadata_to_csv,
    read_documents,
    timestamped_filename,
    write_files,
)

from . import services


__all__ = [
    # Version
    '__version__',

    # Configuration
    'ConnectionContext',
    'MigratorConfig',

    # Errors
    'MigratorError',
    'ServiceConnectionError',
    'ProtocolError',
    'DocumentError',
    'ItemError',

    # Observability
    'OperationEvent',
    'EventSink',
    'LoggingSink',
    'MemorySink',
    'NullSink',
    'configure_logging',

    # SOAP
    'SOAPClient',
    'build_envelope',
    'extract_fault',
    'find_by_local_name',

    # Catalog
    'CatalogItem',
    'CatalogNavigator',
    'ItemType',
    'join_path',

    # RDL
    'rebind',
    'data_source_names',

    # Operations
    'BatchOperations',
    'BatchOutcome',
    'ItemFailure',
    'UploadDocument',
    'run_batch',

    # Export
    'bundle_zip',
    'metadata_to_csv',
    'read_documents',
    'timestamped_filename',
    'write_files',

    'services',
]
