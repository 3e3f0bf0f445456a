"""
Catalog navigation for the report server.

Lists folders, reports and shared data sources through the ListChildren
operation and parses the response into CatalogItem records.

Example Usage:
    navigator = CatalogNavigator(client)

    folders = navigator.list_children("/")
    data_sources = navigator.list_data_sources("/")
    reports = navigator.get_report_metadata("/Finance")
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .soap_client import SOAPClient, iter_by_local_name, local_name

logger = logging.getLogger(__name__)


class ItemType(Enum):
    """Catalog item types the migrator distinguishes"""
    REPORT = "Report"
    FOLDER = "Folder"
    DATA_SOURCE = "DataSource"
    OTHER = "Other"

    @classmethod
    def from_type_name(cls, type_name: Optional[str]) -> 'ItemType':
        """Map a service TypeName (e.g., "LinkedReport") to an ItemType."""
        for item_type in (cls.REPORT, cls.FOLDER, cls.DATA_SOURCE):
            if type_name == item_type.value:
                return item_type
        return cls.OTHER


@dataclass
class CatalogItem:
    """
    One entry in the remote catalog.

    Attributes:
        name: Item name as returned by the service (never derived from path)
        path: Fully-qualified catalog path (e.g., "/Finance/Quarterly")
        item_type: Normalized item type
        type_name: Raw TypeName from the service
        created_at: CreationDate in service-native format
        modified_at: ModifiedDate in service-native format
        data_source_path: Shared data source path, only set when explicitly resolved
    """
    name: str
    path: str
    item_type: ItemType = ItemType.OTHER
    type_name: str = ""
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    data_source_path: Optional[str] = None

    @property
    def is_report(self) -> bool:
        return self.item_type is ItemType.REPORT

    @property
    def is_folder(self) -> bool:
        return self.item_type is ItemType.FOLDER

    @property
    def is_data_source(self) -> bool:
        return self.item_type is ItemType.DATA_SOURCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'path': self.path,
            'type': self.item_type.value,
            'data_source_path': self.data_source_path,
            'created_at': self.created_at,
            'modified_at': self.modified_at,
        }


def _child_text(elem: ET.Element, name: str) -> Optional[str]:
    """Text of a direct child by local name (None if absent)."""
    for child in elem:
        if local_name(child.tag) == name:
            return child.text or ""
    return None


def parse_catalog_items(root: ET.Element) -> List[CatalogItem]:
    """
    Parse CatalogItem elements from a ListChildren response.

    Elements are located by local name, so any namespace prefix works.
    Missing Name/Path/TypeName fields default to empty string.

    Args:
        root: Response envelope root element

    Returns:
        List of CatalogItem in response order
    """
    items = []
    for elem in iter_by_local_name(root, "CatalogItem"):
        type_name = _child_text(elem, "TypeName") or ""
        items.append(CatalogItem(
            name=_child_text(elem, "Name") or "",
            path=_child_text(elem, "Path") or "",
            item_type=ItemType.from_type_name(type_name),
            type_name=type_name,
            created_at=_child_text(elem, "CreationDate"),
            modified_at=_child_text(elem, "ModifiedDate"),
        ))
    return items


def join_path(folder: str, name: str) -> str:
    """
    Join an item name under a catalog folder.

    join_path("/", "Sales") -> "/Sales"
    join_path("/Finance/", "Q1") -> "/Finance/Q1"
    """
    folder = (folder or "/").rstrip("/")
    return f"{folder}/{name}"


class CatalogNavigator:
    """
    Walks the report server catalog.

    Recursion is performed server-side: one ListChildren call per listing.
    """

    def __init__(self, client: SOAPClient):
        """
        Initialize navigator.

        Args:
            client: SOAP transport for the target server
        """
        self.client = client

    def list_children(self, path: str = "/", recursive: bool = False) -> List[CatalogItem]:
        """
        List catalog items under a path.

        Args:
            path: Catalog folder path
            recursive: Include items of nested folders

        Returns:
            List of CatalogItem

        Raises:
            ServiceConnectionError: If the server is unreachable
            ProtocolError: On a SOAP fault
        """
        root = self.client.call("ListChildren", {
            "ItemPath": path or "/",
            "Recursive": recursive,
        })
        items = parse_catalog_items(root)
        logger.debug(f"Listed {len(items)} items under {path} (recursive={recursive})")
        return items

    def list_data_sources(self, path: str = "/") -> List[CatalogItem]:
        """Shared data sources anywhere below `path`."""
        data_sources = [i for i in self.list_children(path, recursive=True) if i.is_data_source]
        logger.info(f"Fetched {len(data_sources)} data sources from path {path}")
        return data_sources

    def list_reports(self, folder: str) -> List[CatalogItem]:
        """Reports directly inside `folder` (no subfolders)."""
        reports = [i for i in self.list_children(folder, recursive=False) if i.is_report]
        logger.info(f"Fetched {len(reports)} reports from folder {folder}")
        return reports

    def get_report_metadata(self, folder: str = "/") -> List[CatalogItem]:
        """Reports anywhere below `folder`, with creation/modification timestamps."""
        reports = [i for i in self.list_children(folder, recursive=True) if i.is_report]
        logger.info(f"Fetched {len(reports)} report metadata items from {folder}")
        return reports

    def check_connection(self) -> bool:
        """
        Check that the catalog root can be listed.

        NOTE: returns False for a reachable server whose root folder is empty;
        an empty catalog cannot be told apart from a failed check here.
        Listing errors propagate.

        Returns:
            bool: True if the root listing is non-empty
        """
        items = self.list_children("/")
        logger.info(f"Connection check succeeded to {self.client.endpoint}")
        return len(items) > 0
