"""
SOAP Client Module

Transport for the report server's ReportService2010 SOAP endpoint.

Key Features:
- Pre-emptive HTTP basic authentication on every request
- Typed SOAP 1.1 envelope builder with a single shared escaping routine
- SOAP fault extraction by local name (namespace ignored)
- Exactly one attempt per call (no retries); failures surface immediately
- Every call reported to an EventSink (credentials never included)

Example Usage:
    from ssrs_migrator.common import ConnectionContext, SOAPClient

    context = ConnectionContext(
        server_url="http://reports.example.com/ReportServer",
        username="DOMAIN\\\\svc_reports",
        password="password"
    )

    with SOAPClient(context, timeout=60) as client:
        root = client.call("ListChildren", {"ItemPath": "/", "Recursive": False})
"""

import base64
import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterator, Mapping, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth

from .config import ConnectionContext, DEFAULT_TIMEOUT
from .errors import CREDENTIAL_REJECTED_STATUSES, ProtocolError, ServiceConnectionError
from .observability import EventSink, LoggingSink, sanitize_error, track_operation

logger = logging.getLogger(__name__)

SOAP_ENV_NAMESPACE = "http://schemas.xmlsoap.org/soap/envelope/"
REPORT_SERVER_NAMESPACE = "http://schemas.microsoft.com/sqlserver/reporting/2010/03/01/ReportServer"

_XML_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_.\-]*$')


def xml_escape(value: str) -> str:
    """
    Escape XML special characters for element text.

    Args:
        value: Raw text

    Returns:
        Escaped text safe for use inside an element
    """
    return (value.replace("&", "&amp;")
                 .replace("<", "&lt;")
                 .replace(">", "&gt;")
                 .replace('"', "&quot;")
                 .replace("'", "&apos;"))


def format_value(value: Any) -> str:
    """
    Render a field value as escaped element text.

    bool -> "true"/"false", None -> "", bytes -> base64, anything else -> str().
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return xml_escape(str(value))


def build_envelope(
    operation: str,
    fields: Mapping[str, Any],
    namespace: str = REPORT_SERVER_NAMESPACE
) -> str:
    """
    Build a SOAP 1.1 envelope for one report server operation.

    Args:
        operation: SOAP operation name (e.g., "ListChildren")
        fields: Ordered mapping of child element name -> value
        namespace: XML namespace for the operation element

    Returns:
        SOAP XML envelope as string

    Raises:
        ValueError: If the operation or a field name is not a valid XML name, or a
            value contains characters XML cannot carry
    """
    if not _XML_NAME.match(operation):
        raise ValueError(f"Invalid SOAP operation name: {operation!r}")

    param_xml = ""
    for key, value in fields.items():
        if not _XML_NAME.match(key):
            raise ValueError(f"Invalid SOAP field name: {key!r}")
        text = format_value(value)
        if text:
            param_xml += f"      <{key}>{text}</{key}>\n"
        else:
            param_xml += f"      <{key} />\n"

    envelope = f"""<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="{SOAP_ENV_NAMESPACE}">
  <soap:Body>
    <{operation} xmlns="{xml_escape(namespace)}">
{param_xml}    </{operation}>
  </soap:Body>
</soap:Envelope>"""

    # Validate before anything goes over the wire
    try:
        ET.fromstring(envelope.encode("utf-8"))
    except ET.ParseError as e:
        raise ValueError(f"Cannot build {operation} request: {e}") from e
    return envelope


def local_name(tag: Any) -> str:
    """Return the local part of a (possibly namespace-qualified) tag."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def iter_by_local_name(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yield all descendants (and self) whose local tag name equals `name`."""
    for elem in element.iter():
        if local_name(elem.tag) == name:
            yield elem


def find_by_local_name(element: ET.Element, name: str) -> Optional[ET.Element]:
    """
    Find the first element with the given local name, ignoring namespace.

    Only used where the service's namespace/prefix cannot be relied on
    (fault and definition extraction, catalog item fields).
    """
    return next(iter_by_local_name(element, name), None)


def text_by_local_name(element: ET.Element, name: str, default: Optional[str] = None) -> Optional[str]:
    """Text of the first descendant with the given local name, or default."""
    found = find_by_local_name(element, name)
    if found is None:
        return default
    return found.text if found.text is not None else ""


def extract_fault(body: Union[str, bytes]) -> str:
    """
    Extract the SOAP faultstring from a response body.

    Args:
        body: Raw response body

    Returns:
        Fault text, or the raw body if it cannot be parsed or has no faultstring
    """
    raw = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    try:
        root = ET.fromstring(body if isinstance(body, bytes) else body.encode("utf-8"))
    except ET.ParseError:
        return raw
    fault = text_by_local_name(root, "faultstring")
    return fault if fault is not None else raw


def _action_name(action: str) -> str:
    return str(action).rstrip("/").rsplit("/", 1)[-1]


class SOAPClient:
    """
    SOAP transport for one report server connection.

    One instance owns one HTTP session for the duration of a batch operation.
    """

    def __init__(
        self,
        context: ConnectionContext,
        timeout: int = DEFAULT_TIMEOUT,
        sink: Optional[EventSink] = None,
        namespace: str = REPORT_SERVER_NAMESPACE,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize SOAP client.

        Args:
            context: Connection details (server URL and credentials)
            timeout: Request timeout in seconds (default: 60 for large payloads)
            sink: Event sink for call tracking (default: LoggingSink)
            namespace: ReportServer XML namespace
            session: Pre-built HTTP session (tests inject a fake)
        """
        self.context = context
        self.endpoint = context.endpoint
        self.timeout = timeout
        self.sink = sink if sink is not None else LoggingSink()
        self.namespace = namespace
        self.secrets = (context.password,)

        self.session = session if session is not None else self._create_session()

    def _create_session(self) -> requests.Session:
        """
        Create HTTP session with basic auth and retries disabled.

        Returns:
            Configured requests.Session
        """
        session = requests.Session()

        # requests sends basic credentials on the first request (no challenge round trip)
        session.auth = HTTPBasicAuth(self.context.username, self.context.password)

        adapter = HTTPAdapter(max_retries=0, pool_connections=1, pool_maxsize=4)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def action_uri(self, operation: str) -> str:
        """SOAPAction header value for an operation."""
        return f"{self.namespace}/{operation}"

    def send(self, envelope: str, action: str) -> str:
        """
        Send one SOAP request.

        Args:
            envelope: Complete SOAP envelope XML
            action: SOAPAction header value

        Returns:
            Response body XML as string

        Raises:
            ServiceConnectionError: If the server is unreachable or rejects the credentials
            ProtocolError: On a non-success status or an empty response body
        """
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": action
        }

        try:
            response = self.session.post(
                self.endpoint,
                data=envelope.encode('utf-8'),
                headers=headers,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"SOAP request timeout after {self.timeout}s: {_action_name(action)}")
            raise ServiceConnectionError(f"Request to {self.endpoint} timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"SOAP request failed for {_action_name(action)}: {type(e).__name__}")
            raise ServiceConnectionError(f"Could not reach report server at {self.endpoint}: {e}") from e

        body = response.text or ""

        if response.status_code in CREDENTIAL_REJECTED_STATUSES:
            raise ServiceConnectionError(
                f"Report server rejected credentials for {self.context.username} "
                f"({response.status_code})",
                status_code=response.status_code
            )

        if not response.ok:
            fault = extract_fault(body)
            logger.error(f"SOAP request failed for {_action_name(action)}: SSRS returned {response.status_code}")
            raise ProtocolError(fault, fault=fault, status_code=response.status_code)

        if not body.strip():
            raise ProtocolError(
                f"Empty response from report server for {_action_name(action)}",
                status_code=response.status_code
            )

        logger.debug(f"{_action_name(action)} -> {response.status_code} (size: {len(body)} chars)")
        return body

    @track_operation()
    def call(self, operation: str, fields: Dict[str, Any]) -> ET.Element:
        """
        Call a report server operation and parse the response.

        Each call reports exactly one event to the sink, with the final outcome.

        Args:
            operation: SOAP operation name (e.g., "GetItemDefinition")
            fields: Operation parameters in schema order

        Returns:
            Root element of the response envelope

        Raises:
            ServiceConnectionError: If the server is unreachable
            ProtocolError: On a SOAP fault or an unparsable response
        """
        envelope = build_envelope(operation, fields, self.namespace)
        body = self.send(envelope, self.action_uri(operation))

        try:
            root = ET.fromstring(body.encode('utf-8'))
        except ET.ParseError as e:
            logger.error(f"Unparsable response for {operation}: {e}")
            raise ProtocolError(f"Unparsable response for {operation}: {e}", fault=body) from e

        fault = find_by_local_name(root, "Fault")
        if fault is not None:
            error = ProtocolError(text_by_local_name(fault, "faultstring") or "Unknown error")
            logger.error(f"SOAP fault for {operation}: {sanitize_error(error, self.secrets)}")
            raise error

        return root

    def close(self):
        """Close the HTTP session."""
        if self.session:
            self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
