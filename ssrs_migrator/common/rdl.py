"""
RDL (Report Definition Language) document rewriting.

Replaces the data source binding of every <DataSource> element in a report
definition with a reference to a shared data source. Embedded
<ConnectionProperties> are removed so no connection strings or credentials
are carried into the new binding. Everything else in the document is kept.

Example Usage:
    from ssrs_migrator.common.rdl import rebind, data_source_names

    with open("Quarterly.rdl", "rb") as f:
        content = f.read()

    data_source_names(content)          # ['DataSource1']
    content = rebind(content, "/Data Sources/Warehouse")
"""

import io
import logging
import xml.etree.ElementTree as ET
from typing import List, Tuple

from .errors import DocumentError

logger = logging.getLogger(__name__)

DATA_SOURCE = "DataSource"
CONNECTION_PROPERTIES = "ConnectionProperties"
DATA_SOURCE_REFERENCE = "DataSourceReference"


def _namespace_of(tag: str) -> str:
    """Namespace URI of a qualified tag ('' if unqualified)."""
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


def _qualified(namespace: str, name: str) -> str:
    return f"{{{namespace}}}{name}" if namespace else name


def _parse(report_bytes: bytes) -> Tuple[ET.Element, List[Tuple[str, str]]]:
    """
    Parse a report definition, keeping comments and processing instructions.

    Returns:
        (root element, list of (prefix, uri) namespace declarations)

    Raises:
        DocumentError: If the document is not well-formed XML
    """
    if not report_bytes:
        raise DocumentError("Report definition is empty")

    try:
        declarations = [
            data for _, data in ET.iterparse(io.BytesIO(report_bytes), events=("start-ns",))
        ]
        parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))
        root = ET.fromstring(report_bytes, parser=parser)
    except ET.ParseError as e:
        raise DocumentError(f"Report definition is not well-formed XML: {e}") from e

    return root, declarations


def find_data_sources(root: ET.Element) -> List[ET.Element]:
    """All <DataSource> elements in the root element's namespace, in document order."""
    namespace = _namespace_of(root.tag)
    return list(root.iter(_qualified(namespace, DATA_SOURCE)))


def data_source_names(report_bytes: bytes) -> List[str]:
    """
    Names of the data sources declared in a report definition.

    Args:
        report_bytes: Raw RDL document

    Returns:
        Distinct non-empty Name attributes in document order

    Raises:
        DocumentError: If the document is not well-formed XML
    """
    root, _ = _parse(report_bytes)
    names = []
    for elem in find_data_sources(root):
        name = elem.get("Name")
        if name and name not in names:
            names.append(name)
    return names


def rebind(report_bytes: bytes, data_source_path: str) -> bytes:
    """
    Point every data source of a report at a shared data source.

    For each <DataSource>: remove <ConnectionProperties>, remove any existing
    <DataSourceReference>, then append <DataSourceReference>data_source_path</...>.

    A document without data sources is returned unchanged. Applying the same
    rebind twice yields an equivalent document.

    Args:
        report_bytes: Raw RDL document
        data_source_path: Catalog path of the shared data source

    Returns:
        Rewritten RDL document as UTF-8 bytes

    Raises:
        DocumentError: If the document is not well-formed XML
    """
    root, declarations = _parse(report_bytes)
    namespace = _namespace_of(root.tag)

    data_sources = find_data_sources(root)
    if not data_sources:
        logger.debug("No data sources found in report definition, leaving it unchanged")
        return report_bytes

    for ds in data_sources:
        for child in list(ds):
            if child.tag in (_qualified(namespace, CONNECTION_PROPERTIES),
                             _qualified(namespace, DATA_SOURCE_REFERENCE)):
                ds.remove(child)

        reference = ET.SubElement(ds, _qualified(namespace, DATA_SOURCE_REFERENCE))
        reference.text = data_source_path

    logger.debug(f"Rebound {len(data_sources)} data source(s) to {data_source_path}")
    return _serialize(root, namespace, declarations)


def _serialize(root: ET.Element, namespace: str, declarations: List[Tuple[str, str]]) -> bytes:
    """Serialize with the root namespace as default and original prefixes kept."""
    # register_namespace writes ElementTree's process-wide prefix map. Each call
    # drops any earlier entry for the same prefix or URI, so this document's own
    # declarations win here; other ElementTree users in the process see them too.
    for prefix, uri in declarations:
        if not prefix or uri == namespace:
            continue
        try:
            ET.register_namespace(prefix, uri)
        except ValueError:
            pass  # reserved ns<N> prefix; ElementTree assigns its own

    try:
        return ET.tostring(
            root,
            encoding="utf-8",
            xml_declaration=True,
            default_namespace=namespace or None,
        )
    except ValueError as e:
        # Unqualified element mixed into a namespaced document
        raise DocumentError(f"Report definition could not be serialized: {e}") from e
