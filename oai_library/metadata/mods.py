"""MODS 3.7 mapping plugin.

Each MODS element is filled from one configurable entity field
(``mods_field_map``). Elements that need nesting in MODS (title, name,
language, dateIssued) are wrapped in their container elements.
"""

from xml.sax.saxutils import escape

from ..config.settings import DEFAULT_MODS_FIELD_MAP
from ..content.interfaces import Entity
from .registry import XSI_NAMESPACE
from .registry import MetadataFormat
from .registry import WrapperEnvelope

MODS_NAMESPACE = "http://www.loc.gov/mods/v3"
MODS_SCHEMA = "http://www.loc.gov/standards/mods/v3/mods-3-7.xsd"


def _title(value: str) -> str:
    return f"<mods:titleInfo><mods:title>{escape(value)}</mods:title></mods:titleInfo>"


def _name(value: str) -> str:
    return f"<mods:name><mods:namePart>{escape(value)}</mods:namePart></mods:name>"


def _date_issued(value: str) -> str:
    return f"<mods:originInfo><mods:dateIssued>{escape(value)}</mods:dateIssued></mods:originInfo>"


def _language(value: str) -> str:
    return f'<mods:language><mods:languageTerm type="code">{escape(value)}</mods:languageTerm></mods:language>'


NESTED_ELEMENTS = {
    "title": _title,
    "name": _name,
    "dateIssued": _date_issued,
    "language": _language,
}


class ModsPlugin:
    """Maps entity fields to a flat MODS record."""

    plugin_id = "mods"

    def __init__(self, field_map: dict[str, str] | None = None) -> None:
        self.field_map = dict(field_map) if field_map is not None else dict(DEFAULT_MODS_FIELD_MAP)

    def describe_format(self) -> MetadataFormat:
        return MetadataFormat(prefix="mods", schema_url=MODS_SCHEMA, namespace_url=MODS_NAMESPACE)

    def wrapper_envelope(self) -> WrapperEnvelope:
        return WrapperEnvelope(
            tag="mods:mods",
            namespaces={"mods": MODS_NAMESPACE, "xsi": XSI_NAMESPACE},
            attributes={"xsi:schemaLocation": f"{MODS_NAMESPACE} {MODS_SCHEMA}"},
        )

    def transform(self, entity: Entity) -> str:
        fields = entity.fields
        parts = []
        for element, source_field in self.field_map.items():
            render = NESTED_ELEMENTS.get(element)
            for value in fields.get(source_field, []):
                if not value:
                    continue
                if render is not None:
                    parts.append(render(value))
                else:
                    parts.append(f"<mods:{element}>{escape(value)}</mods:{element}>")
        return "".join(parts)
