"""OAI-PMH response envelope built with ElementTree."""

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from xml.sax.saxutils import quoteattr

from ..content.interfaces import Entity
from ..metadata.registry import XSI_NAMESPACE
from ..metadata.registry import MetadataMapPlugin
from ..metadata.registry import WrapperEnvelope
from .dates import SECOND_GRANULARITY
from .dates import format_datestamp
from .errors import OaiError
from .errors import OaiErrorCode

logger = logging.getLogger(__name__)

OAI_NAMESPACE = "http://www.openarchives.org/OAI/2.0/"
OAI_SCHEMA = "http://www.openarchives.org/OAI/2.0/OAI-PMH.xsd"
OAI_IDENTIFIER_NAMESPACE = "http://www.openarchives.org/OAI/2.0/oai-identifier"
OAI_IDENTIFIER_SCHEMA = "http://www.openarchives.org/OAI/2.0/oai-identifier.xsd"

XML_MEDIA_TYPE = "text/xml; charset=utf-8"

ET.register_namespace("", OAI_NAMESPACE)
ET.register_namespace("xsi", XSI_NAMESPACE)
ET.register_namespace("oai-identifier", OAI_IDENTIFIER_NAMESPACE)


def register_envelope_namespaces(envelope: WrapperEnvelope) -> None:
    """Serialize a plugin's namespaces with the plugin's own prefixes."""
    for prefix, uri in envelope.namespaces.items():
        if prefix and uri not in (OAI_NAMESPACE, XSI_NAMESPACE):
            ET.register_namespace(prefix, uri)


def oai_tag(name: str) -> str:
    return f"{{{OAI_NAMESPACE}}}{name}"


def add_element(parent: ET.Element, name: str, text: str | None = None, **attributes: str) -> ET.Element:
    element = ET.SubElement(parent, oai_tag(name), attributes)
    if text is not None:
        element.text = text
    return element


def build_header(identifier: str, datestamp: str, set_specs: list[str]) -> ET.Element:
    header = ET.Element(oai_tag("header"))
    add_element(header, "identifier", identifier)
    add_element(header, "datestamp", datestamp)
    for set_spec in set_specs:
        add_element(header, "setSpec", set_spec)
    return header


def _wrapper_xml(envelope: WrapperEnvelope, fragment: str) -> str:
    declarations = [f"xmlns:{prefix}={quoteattr(uri)}" for prefix, uri in envelope.namespaces.items()]
    attributes = [f"{name}={quoteattr(value)}" for name, value in envelope.attributes.items()]
    opening = " ".join([envelope.tag, *declarations, *attributes])
    return f"<{opening}>{fragment}</{envelope.tag}>"


def build_metadata(plugin: MetadataMapPlugin, entity: Entity) -> ET.Element:
    """Render an entity's metadata inside the plugin's wrapper element.

    Mapping failures and unparseable fragments yield an empty wrapper.
    """
    envelope = plugin.wrapper_envelope()
    try:
        fragment = (plugin.transform(entity) or "").strip()
    except Exception as e:
        logger.warning(
            f"Metadata plugin {plugin.plugin_id} failed for {entity.entity_type}/{entity.entity_id}: {e}"
        )
        fragment = ""

    try:
        wrapper = ET.fromstring(_wrapper_xml(envelope, fragment))
    except ET.ParseError as e:
        logger.warning(
            f"Discarding unparseable {plugin.plugin_id} fragment for {entity.entity_type}/{entity.entity_id}: {e}"
        )
        wrapper = ET.fromstring(_wrapper_xml(envelope, ""))

    metadata = ET.Element(oai_tag("metadata"))
    metadata.append(wrapper)
    return metadata


class OaiResponse:
    """Accumulates the parts of one response and serializes them.

    The verb element is only emitted for requests without errors. A
    resumption token is always serialized as the verb element's last child.
    """

    def __init__(self, base_url: str, response_date: datetime) -> None:
        self.base_url = base_url
        self.response_date = response_date
        self.request_attributes: dict[str, str] = {}
        self.errors: list[OaiError] = []
        self.verb_element: ET.Element | None = None
        self.resumption_token: ET.Element | None = None

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    def add_error(self, code: OaiErrorCode, message: str | None = None) -> None:
        self.errors.append(OaiError.of(code, message))
        if code in (OaiErrorCode.BAD_VERB, OaiErrorCode.BAD_ARGUMENT):
            self.request_attributes.clear()

    def start_verb(self, verb: str) -> ET.Element:
        self.verb_element = ET.Element(oai_tag(verb))
        return self.verb_element

    def drop_verb_element(self) -> None:
        self.verb_element = None
        self.resumption_token = None

    def set_resumption_token(
        self,
        token_id: int | None,
        cursor: int,
        complete_list_size: int,
        expires_at: datetime | None = None,
    ) -> None:
        """Attach a token, or an empty one marking the last page of a resumed listing."""
        attributes = {"completeListSize": str(complete_list_size), "cursor": str(cursor)}
        if expires_at is not None:
            attributes["expirationDate"] = format_datestamp(expires_at, SECOND_GRANULARITY)
        token = ET.Element(oai_tag("resumptionToken"), attributes)
        if token_id is not None:
            token.text = str(token_id)
        self.resumption_token = token

    def render(self) -> bytes:
        root = ET.Element(
            oai_tag("OAI-PMH"),
            {f"{{{XSI_NAMESPACE}}}schemaLocation": f"{OAI_NAMESPACE} {OAI_SCHEMA}"},
        )
        add_element(root, "responseDate", format_datestamp(self.response_date, SECOND_GRANULARITY))
        add_element(root, "request", self.base_url, **self.request_attributes)

        if self.errors:
            for error in self.errors:
                add_element(root, "error", error.message, code=error.code.value)
        elif self.verb_element is not None:
            if self.resumption_token is not None:
                self.verb_element.append(self.resumption_token)
            root.append(self.verb_element)

        return ET.tostring(root, encoding="utf-8", xml_declaration=True)
