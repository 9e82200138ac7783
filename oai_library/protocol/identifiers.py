"""OAI identifiers of the form ``oai:<host>:<entityType>-<entityId>``."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ParsedIdentifier:
    entity_type: str
    entity_id: str


def request_host(host: str) -> str:
    """Strip the port from a Host header value.

    Example:
        >>> request_host("example.org:8430")
        'example.org'
        >>> request_host("[::1]:8430")
        '[::1]'
    """
    host = host.strip()
    if host.startswith("["):
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    return host.split(":", 1)[0]


def build_identifier(host: str, entity_type: str, entity_id: str) -> str:
    return f"oai:{host}:{entity_type}-{entity_id}"


def parse_identifier(identifier: str | None, host: str) -> ParsedIdentifier | None:
    """Parse an identifier issued for ``host``.

    Args:
        identifier: Identifier supplied by the harvester
        host: Current request host, without port

    Returns:
        The entity key, or None if the identifier is malformed or names another host
    """
    if not identifier:
        return None
    components = identifier.split(":")
    if len(components) != 3 or components[0] != "oai" or components[1] != host:
        return None
    entity_type, sep, entity_id = components[2].partition("-")
    if not sep or not entity_type or not entity_id:
        return None
    return ParsedIdentifier(entity_type=entity_type, entity_id=entity_id)
