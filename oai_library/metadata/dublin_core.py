"""Unqualified Dublin Core (oai_dc) mapping plugin."""

from xml.sax.saxutils import escape

from ..content.interfaces import Entity
from .registry import XSI_NAMESPACE
from .registry import MetadataFormat
from .registry import WrapperEnvelope

OAI_DC_NAMESPACE = "http://www.openarchives.org/OAI/2.0/oai_dc/"
OAI_DC_SCHEMA = "http://www.openarchives.org/OAI/2.0/oai_dc.xsd"
DC_NAMESPACE = "http://purl.org/dc/elements/1.1/"

DC_ELEMENTS = (
    "title",
    "creator",
    "subject",
    "description",
    "publisher",
    "contributor",
    "date",
    "type",
    "format",
    "identifier",
    "source",
    "language",
    "relation",
    "coverage",
    "rights",
)


class DublinCorePlugin:
    """Maps entity fields named after the 15 DC elements to ``dc:*`` elements."""

    plugin_id = "dublin_core"

    def describe_format(self) -> MetadataFormat:
        return MetadataFormat(prefix="oai_dc", schema_url=OAI_DC_SCHEMA, namespace_url=OAI_DC_NAMESPACE)

    def wrapper_envelope(self) -> WrapperEnvelope:
        return WrapperEnvelope(
            tag="oai_dc:dc",
            namespaces={"oai_dc": OAI_DC_NAMESPACE, "dc": DC_NAMESPACE, "xsi": XSI_NAMESPACE},
            attributes={"xsi:schemaLocation": f"{OAI_DC_NAMESPACE} {OAI_DC_SCHEMA}"},
        )

    def transform(self, entity: Entity) -> str:
        fields = entity.fields
        parts = []
        for element in DC_ELEMENTS:
            for value in fields.get(element, []):
                if value:
                    parts.append(f"<dc:{element}>{escape(value)}</dc:{element}>")
        return "".join(parts)
