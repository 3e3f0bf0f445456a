"""
Shared fixtures: an in-memory report server standing in for requests.Session.

FakeReportServer understands ListChildren, CreateCatalogItem and
GetItemDefinition and answers with namespace-qualified SOAP responses the way
ReportService2010 does, including SOAP faults with HTTP 500.
"""

import base64
import xml.etree.ElementTree as ET
from typing import Dict, Optional, Set, Tuple

import pytest
import requests

from ssrs_migrator.common.config import ConnectionContext
from ssrs_migrator.common.observability import MemorySink
from ssrs_migrator.common.soap_client import REPORT_SERVER_NAMESPACE, SOAPClient, xml_escape


SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
PASSWORD = "s3cr3t-Pa55"

SAMPLE_RDL = b"""<?xml version="1.0" encoding="utf-8"?>
<Report xmlns="http://schemas.microsoft.com/sqlserver/reporting/2016/01/reportdefinition" xmlns:rd="http://schemas.microsoft.com/SQLServer/reporting/reportdesigner">
  <!-- keep me -->
  <DataSources>
    <DataSource Name="DataSource1">
      <ConnectionProperties>
        <DataProvider>SQL</DataProvider>
        <ConnectString>Data Source=db01;Initial Catalog=Sales;Password=hunter2</ConnectString>
      </ConnectionProperties>
      <rd:SecurityType>None</rd:SecurityType>
      <rd:DataSourceID>5c6f0b1e-1111-4a2b-9c3d-000000000001</rd:DataSourceID>
    </DataSource>
    <DataSource Name="Lookup">
      <DataSourceReference>/Data Sources/Old</DataSourceReference>
    </DataSource>
  </DataSources>
  <DataSets>
    <DataSet Name="Main">
      <Query>
        <DataSourceName>DataSource1</DataSourceName>
        <CommandText>SELECT Region, SUM(Amount) FROM Sales WHERE Amount &gt; 0 GROUP BY Region</CommandText>
      </Query>
    </DataSet>
  </DataSets>
  <Body>
    <Height>2in</Height>
  </Body>
</Report>
"""

NO_DATA_SOURCE_RDL = b"""<?xml version="1.0" encoding="utf-8"?>
<Report xmlns="http://schemas.microsoft.com/sqlserver/reporting/2016/01/reportdefinition">
  <Body><Height>1in</Height></Body>
</Report>
"""


def soap_response(body_xml: str) -> str:
    return (
        f'<?xml version="1.0" encoding="utf-8"?>'
        f'<soap:Envelope xmlns:soap="{SOAP_NS}"><soap:Body>{body_xml}</soap:Body></soap:Envelope>'
    )


def fault_response(message: str) -> str:
    return soap_response(
        f"<soap:Fault><faultcode>soap:Server</faultcode>"
        f"<faultstring>{xml_escape(message)}</faultstring><detail /></soap:Fault>"
    )


class FakeResponse:
    def __init__(self, status_code: int, text: str):
        self.status_code = status_code
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


class FakeReportServer:
    """
    Minimal ReportService2010 stand-in used in place of requests.Session.

    Attributes:
        catalog: path -> item dict (name, type, content, created, modified)
        requests: list of (SOAPAction, parsed body element) received
        fail_paths: (operation, path) pairs answered with a SOAP fault
        timeout_paths: (operation, path) pairs that raise a read timeout
    """

    def __init__(self):
        self.catalog: Dict[str, dict] = {}
        self.requests = []
        self.fail_paths: Set[Tuple[str, str]] = set()
        self.timeout_paths: Set[Tuple[str, str]] = set()
        self.auth = None
        self.closed = False
        self.mounted = []

    # requests.Session surface
    def mount(self, prefix, adapter):
        self.mounted.append(prefix)

    def close(self):
        self.closed = True

    def post(self, url, data=None, headers=None, timeout=None):
        envelope = ET.fromstring(data)
        body = envelope.find(f"{{{SOAP_NS}}}Body")
        request = body[0]
        operation = request.tag.split("}", 1)[-1]
        self.requests.append((headers.get("SOAPAction"), request))

        fields = {child.tag.split("}", 1)[-1]: (child.text or "") for child in request}
        target = fields.get("ItemPath") or f"{fields.get('Parent', '').rstrip('/')}/{fields.get('Name', '')}"
        if (operation, target) in self.timeout_paths:
            raise requests.exceptions.ReadTimeout(f"Read timed out. (read timeout={timeout})")

        handler = getattr(self, f"_op_{operation}", None)
        if handler is None:
            return FakeResponse(500, fault_response(f"Unknown operation {operation}"))
        return handler(fields)

    # catalog helpers
    def add(self, path: str, type_name: str, content: Optional[bytes] = None,
            created: str = "2024-01-15T10:00:00.000", modified: str = "2024-03-01T08:30:00.000"):
        self.catalog[path] = {
            "name": path.rsplit("/", 1)[-1],
            "type": type_name,
            "content": content,
            "created": created,
            "modified": modified,
        }

    def calls(self, operation: str):
        return [r for action, r in self.requests if action.endswith("/" + operation)]

    @staticmethod
    def _parent(path: str) -> str:
        return path.rsplit("/", 1)[0] or "/"

    def _is_fault(self, operation: str, path: str) -> bool:
        return (operation, path) in self.fail_paths

    # operations
    def _op_ListChildren(self, fields):
        path = fields.get("ItemPath") or "/"
        recursive = fields.get("Recursive") == "true"
        if self._is_fault("ListChildren", path):
            return FakeResponse(500, fault_response(f"The item '{path}' cannot be found."))

        prefix = path.rstrip("/") + "/"
        items = []
        for item_path, item in self.catalog.items():
            if recursive:
                matches = item_path.startswith(prefix)
            else:
                matches = self._parent(item_path) == (path.rstrip("/") or "/")
            if matches:
                items.append(
                    f"<CatalogItem><ID>{abs(hash(item_path))}</ID>"
                    f"<Name>{xml_escape(item['name'])}</Name><Path>{xml_escape(item_path)}</Path>"
                    f"<TypeName>{item['type']}</TypeName>"
                    f"<CreationDate>{item['created']}</CreationDate>"
                    f"<ModifiedDate>{item['modified']}</ModifiedDate></CatalogItem>"
                )
        return FakeResponse(200, soap_response(
            f'<ListChildrenResponse xmlns="{REPORT_SERVER_NAMESPACE}">'
            f'<CatalogItems>{"".join(items)}</CatalogItems></ListChildrenResponse>'
        ))

    def _op_CreateCatalogItem(self, fields):
        parent = fields["Parent"]
        name = fields["Name"]
        path = f"{parent.rstrip('/')}/{name}"
        if self._is_fault("CreateCatalogItem", path):
            return FakeResponse(500, fault_response(f"The report '{path}' could not be created."))
        if parent != "/" and parent not in self.catalog:
            return FakeResponse(500, fault_response(f"The item '{parent}' cannot be found."))
        if path in self.catalog and fields["Overwrite"] != "true":
            return FakeResponse(500, fault_response(f"The item '{path}' already exists."))

        self.add(path, fields["ItemType"], base64.b64decode(fields["Definition"]))
        return FakeResponse(200, soap_response(
            f'<CreateCatalogItemResponse xmlns="{REPORT_SERVER_NAMESPACE}">'
            f'<ItemInfo><Name>{xml_escape(name)}</Name><Path>{xml_escape(path)}</Path>'
            f'<TypeName>Report</TypeName></ItemInfo></CreateCatalogItemResponse>'
        ))

    def _op_GetItemDefinition(self, fields):
        path = fields["ItemPath"]
        item = self.catalog.get(path)
        if item is None or self._is_fault("GetItemDefinition", path):
            return FakeResponse(500, fault_response(f"The item '{path}' cannot be found."))
        definition = base64.b64encode(item["content"] or b"").decode("ascii")
        return FakeResponse(200, soap_response(
            f'<GetItemDefinitionResponse xmlns="{REPORT_SERVER_NAMESPACE}">'
            f'<Definition>{definition}</Definition></GetItemDefinitionResponse>'
        ))


@pytest.fixture
def context():
    return ConnectionContext(
        server_url="http://reports.example.com/ReportServer/",
        username="svc_reports",
        password=PASSWORD,
    )


@pytest.fixture
def server():
    """Report server seeded with two folders, three reports and one shared data source."""
    fake = FakeReportServer()
    fake.add("/Finance", "Folder")
    fake.add("/Finance/Quarterly", "Report", SAMPLE_RDL)
    fake.add("/Finance/Annual", "Report", NO_DATA_SOURCE_RDL)
    fake.add("/Finance/Archive", "Folder")
    fake.add("/Finance/Archive/Old2019", "Report", SAMPLE_RDL)
    fake.add("/Data Sources", "Folder")
    fake.add("/Data Sources/Warehouse", "DataSource")
    return fake


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def client(context, server, sink):
    with SOAPClient(context, timeout=5, sink=sink, session=server) as soap_client:
        yield soap_client
