"""OAI-PMH protocol engine.

Validates the verb and its arguments, reads the cache store, renders
records through the metadata registry and assembles the XML envelope.
Semantic failures become ``<error>`` elements; only an unavailable cache
store escapes as an exception.

Contract:
- Inputs: OaiRequest (query/form parameters, host, base URL)
- Outputs: (XML bytes, HTTP status)
- Side Effects: Mints and deletes resumption tokens; may prime an empty cache
"""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import datetime

from ..cache.models import ListedRecord
from ..cache.models import RecordFilter
from ..cache.models import to_timestamp
from ..cache.store import CacheStore
from ..config.settings import OaiSettings
from ..content.interfaces import Entity
from ..content.interfaces import EntityStore
from ..metadata.registry import XSI_NAMESPACE
from ..metadata.registry import MetadataMapPlugin
from ..metadata.registry import MetadataMapRegistry
from ..sync.synchronizer import CacheSynchronizer
from .dates import SECOND_GRANULARITY
from .dates import Datestamp
from .dates import format_datestamp
from .dates import parse_datestamp
from .envelope import OAI_IDENTIFIER_NAMESPACE
from .envelope import OAI_IDENTIFIER_SCHEMA
from .envelope import OaiResponse
from .envelope import add_element
from .envelope import build_header
from .envelope import build_metadata
from .envelope import oai_tag
from .envelope import register_envelope_namespaces
from .errors import OaiErrorCode
from .identifiers import build_identifier
from .identifiers import parse_identifier
from .identifiers import request_host
from .pagination import ListingState
from .pagination import Paginator

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2.0"
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

LISTING_ARGUMENTS = frozenset({"metadataPrefix", "set", "from", "until", "resumptionToken"})

VERB_ARGUMENTS: dict[str, frozenset[str]] = {
    "Identify": frozenset(),
    "ListMetadataFormats": frozenset({"identifier"}),
    "GetRecord": frozenset({"identifier", "metadataPrefix"}),
    "ListIdentifiers": LISTING_ARGUMENTS,
    "ListRecords": LISTING_ARGUMENTS,
    "ListSets": frozenset({"resumptionToken"}),
}

VERBS = tuple(VERB_ARGUMENTS)


@dataclass
class OaiRequest:
    """An incoming protocol request.

    Attributes:
        params: Parameter name to every value supplied for it
        host: Host header of the request (a port is ignored)
        base_url: Endpoint URL echoed in ``<request>``
    """

    params: dict[str, list[str]] = field(default_factory=dict)
    host: str = "localhost"
    base_url: str = "http://localhost/oai/request"


@dataclass
class _Context:
    request: OaiRequest
    response: OaiResponse
    host: str
    now: datetime
    args: dict[str, str] = field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProtocolEngine:
    """Answers OAI-PMH requests from the cache store."""

    def __init__(
        self,
        store: CacheStore,
        registry: MetadataMapRegistry,
        entity_store: EntityStore,
        settings: OaiSettings,
        synchronizer: CacheSynchronizer | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.registry = registry
        self.entity_store = entity_store
        self.settings = settings
        self.synchronizer = synchronizer
        self.clock = clock
        self.paginator = Paginator(store, settings.expiration, settings.default_page_size)

        for prefix in registry.prefixes():
            register_envelope_namespaces(registry.get(prefix).wrapper_envelope())

        self._handlers: dict[str, Callable[[_Context], None]] = {
            "Identify": self._identify,
            "ListMetadataFormats": self._list_metadata_formats,
            "GetRecord": self._get_record,
            "ListIdentifiers": self._list_identifiers,
            "ListRecords": self._list_records,
            "ListSets": self._list_sets,
        }

    def handle(self, request: OaiRequest) -> tuple[bytes, int]:
        """Answer one request.

        Returns:
            Serialized envelope and HTTP status (always 200)

        Raises:
            CacheStoreUnavailable: If the cache store cannot be read or written
        """
        now = self.clock()
        response = OaiResponse(base_url=request.base_url, response_date=now)
        ctx = _Context(request=request, response=response, host=request_host(request.host), now=now)

        verbs = request.params.get("verb", [])
        if len(verbs) != 1 or verbs[0] not in VERB_ARGUMENTS:
            logger.debug(f"Rejecting request with verb {verbs!r}")
            response.add_error(OaiErrorCode.BAD_VERB)
            return response.render(), 200

        verb = verbs[0]
        if self.synchronizer is not None:
            self.synchronizer.ensure_primed()

        response.request_attributes["verb"] = verb
        if self._collect_arguments(ctx, verb):
            self._handlers[verb](ctx)

        logger.debug(f"{verb} answered with {len(response.errors)} errors")
        return response.render(), 200

    # --- Argument validation ---

    def _collect_arguments(self, ctx: _Context, verb: str) -> bool:
        allowed = VERB_ARGUMENTS[verb]
        problems = []
        for name, values in ctx.request.params.items():
            if name == "verb":
                continue
            if name not in allowed:
                problems.append(f"Illegal argument {name} for verb {verb}.")
            elif len(values) > 1:
                problems.append(f"Repeated argument {name}.")
            elif values[0] != "":
                ctx.args[name] = values[0]

        if problems:
            ctx.response.add_error(OaiErrorCode.BAD_ARGUMENT, " ".join(problems))
            return False

        ctx.response.request_attributes.update(ctx.args)
        return True

    def _check_metadata_prefix(self, ctx: _Context, prefix: str | None) -> MetadataMapPlugin | None:
        if not prefix:
            ctx.response.add_error(OaiErrorCode.BAD_ARGUMENT, "Missing required argument metadataPrefix.")
            return None
        plugin = self.registry.get(prefix)
        if plugin is None:
            ctx.response.add_error(OaiErrorCode.CANNOT_DISSEMINATE_FORMAT)
        return plugin

    def _sets_supported(self) -> bool:
        return self.settings.support_sets and bool(self.settings.sets)

    # --- Records ---

    def _load_visible(self, entity_type: str, entity_id: str) -> Entity | None:
        entity = self.entity_store.load(entity_type, entity_id)
        if entity is None or not entity.is_visible():
            return None
        return entity

    def _header(self, ctx: _Context, record: ListedRecord) -> ET.Element:
        return build_header(
            build_identifier(ctx.host, record.entity_type, record.entity_id),
            format_datestamp(record.changed_at, self.settings.granularity),
            record.set_ids if self.settings.support_sets else [],
        )

    def _record(self, ctx: _Context, record: ListedRecord, entity: Entity, plugin: MetadataMapPlugin) -> ET.Element:
        element = ET.Element(oai_tag("record"))
        element.append(self._header(ctx, record))
        element.append(build_metadata(plugin, entity))
        return element

    def _resolve_record(self, ctx: _Context, identifier: str | None) -> tuple[ListedRecord, Entity] | None:
        parsed = parse_identifier(identifier, ctx.host)
        if parsed is None:
            return None
        record = self.store.get_record(parsed.entity_type, parsed.entity_id)
        if record is None:
            return None
        try:
            entity = self._load_visible(parsed.entity_type, parsed.entity_id)
        except Exception as e:
            logger.warning(f"Failed to load {parsed.entity_type}/{parsed.entity_id}: {e}")
            return None
        if entity is None:
            return None
        return record, entity

    # --- Verbs ---

    def _identify(self, ctx: _Context) -> None:
        settings = self.settings
        earliest = self.store.earliest_created() or EPOCH
        element = ctx.response.start_verb("Identify")
        add_element(element, "repositoryName", settings.repository_name)
        add_element(element, "baseURL", ctx.request.base_url)
        add_element(element, "protocolVersion", PROTOCOL_VERSION)
        add_element(element, "adminEmail", settings.repository_email)
        add_element(element, "earliestDatestamp", format_datestamp(earliest, settings.granularity))
        add_element(element, "deletedRecord", "no")
        add_element(element, "granularity", settings.granularity)

        description = add_element(element, "description")
        oai_identifier = ET.SubElement(
            description,
            f"{{{OAI_IDENTIFIER_NAMESPACE}}}oai-identifier",
            {
                f"{{{XSI_NAMESPACE}}}schemaLocation": f"{OAI_IDENTIFIER_NAMESPACE} {OAI_IDENTIFIER_SCHEMA}"
            },
        )
        for name, value in (
            ("scheme", "oai"),
            ("repositoryIdentifier", ctx.host),
            ("delimiter", ":"),
            ("sampleIdentifier", build_identifier(ctx.host, "node", "1")),
        ):
            child = ET.SubElement(oai_identifier, f"{{{OAI_IDENTIFIER_NAMESPACE}}}{name}")
            child.text = value

    def _list_metadata_formats(self, ctx: _Context) -> None:
        identifier = ctx.args.get("identifier")
        if identifier is not None and self._resolve_record(ctx, identifier) is None:
            ctx.response.add_error(OaiErrorCode.ID_DOES_NOT_EXIST)
            return

        element = ctx.response.start_verb("ListMetadataFormats")
        for metadata_format in self.registry.formats():
            format_element = add_element(element, "metadataFormat")
            add_element(format_element, "metadataPrefix", metadata_format.prefix)
            add_element(format_element, "schema", metadata_format.schema_url)
            add_element(format_element, "metadataNamespace", metadata_format.namespace_url)

    def _get_record(self, ctx: _Context) -> None:
        identifier = ctx.args.get("identifier")
        resolved = None
        if not identifier:
            ctx.response.add_error(OaiErrorCode.BAD_ARGUMENT, "Missing required argument identifier.")
        else:
            resolved = self._resolve_record(ctx, identifier)
            if resolved is None:
                ctx.response.add_error(OaiErrorCode.ID_DOES_NOT_EXIST)

        plugin = self._check_metadata_prefix(ctx, ctx.args.get("metadataPrefix"))

        if ctx.response.failed:
            ctx.response.request_attributes.pop("verb", None)
            return

        record, entity = resolved
        element = ctx.response.start_verb("GetRecord")
        element.append(self._record(ctx, record, entity, plugin))

    def _list_identifiers(self, ctx: _Context) -> None:
        self._list(ctx, "ListIdentifiers", with_metadata=False)

    def _list_records(self, ctx: _Context) -> None:
        self._list(ctx, "ListRecords", with_metadata=True)

    def _listing_state(self, ctx: _Context, verb: str) -> ListingState | None:
        token_value = ctx.args.get("resumptionToken")
        if token_value is not None:
            token = self.paginator.redeem(token_value, verb, ctx.now)
            if token is None:
                ctx.response.add_error(OaiErrorCode.BAD_RESUMPTION_TOKEN)
                return None
            return ListingState.from_token(token)

        state = ListingState(
            verb=verb,
            metadata_prefix=ctx.args.get("metadataPrefix"),
            set_spec=ctx.args.get("set"),
            from_date=ctx.args.get("from"),
            until_date=ctx.args.get("until"),
        )
        if state.set_spec is not None and not self._sets_supported():
            ctx.response.add_error(OaiErrorCode.NO_SET_HIERARCHY)
            return None
        return state

    def _record_filter(self, ctx: _Context, state: ListingState) -> RecordFilter | None:
        parsed: dict[str, Datestamp] = {}
        for name, text in (("from", state.from_date), ("until", state.until_date)):
            if text is None:
                continue
            try:
                parsed[name] = parse_datestamp(text)
                # The store compares Unix seconds
                to_timestamp(parsed[name].value)
                to_timestamp(parsed[name].as_until())
            except (ValueError, OverflowError):
                ctx.response.add_error(OaiErrorCode.BAD_ARGUMENT, f"Illegal {name} datestamp: {text}.")
                return None
            too_fine = parsed[name].granularity == SECOND_GRANULARITY and self.settings.granularity != SECOND_GRANULARITY
            if too_fine:
                ctx.response.add_error(
                    OaiErrorCode.BAD_ARGUMENT,
                    f"The {name} argument is finer than the repository granularity {self.settings.granularity}.",
                )
                return None

        if "from" in parsed and "until" in parsed and parsed["from"].granularity != parsed["until"].granularity:
            ctx.response.add_error(OaiErrorCode.BAD_ARGUMENT, "The from and until arguments have different granularities.")
            return None

        return RecordFilter(
            set_spec=state.set_spec,
            changed_from=parsed["from"].value if "from" in parsed else None,
            changed_until=parsed["until"].as_until() if "until" in parsed else None,
        )

    def _list(self, ctx: _Context, verb: str, with_metadata: bool) -> None:
        state = self._listing_state(ctx, verb)
        if state is None:
            return
        plugin = self._check_metadata_prefix(ctx, state.metadata_prefix)
        if plugin is None:
            return
        record_filter = self._record_filter(ctx, state)
        if record_filter is None:
            return

        page = self.paginator.fetch(state, record_filter, ctx.now)

        element = ctx.response.start_verb(verb)
        emitted = 0
        for record in page.records:
            try:
                entity = self._load_visible(record.entity_type, record.entity_id)
            except Exception as e:
                logger.warning(f"Skipping {record.entity_type}/{record.entity_id}: {e}")
                continue
            if entity is None:
                logger.debug(f"Skipping {record.entity_type}/{record.entity_id}: not found or not visible")
                continue
            if with_metadata:
                element.append(self._record(ctx, record, entity, plugin))
            else:
                element.append(self._header(ctx, record))
            emitted += 1

        if emitted == 0:
            ctx.response.add_error(OaiErrorCode.NO_RECORDS_MATCH)
            ctx.response.drop_verb_element()
            return

        if page.next_token is not None:
            ctx.response.set_resumption_token(
                page.next_token.token_id,
                cursor=page.cursor,
                complete_list_size=page.complete_list_size,
                expires_at=page.next_token.expires_at,
            )
        elif page.resumed:
            ctx.response.set_resumption_token(None, cursor=page.cursor, complete_list_size=page.complete_list_size)

    def _list_sets(self, ctx: _Context) -> None:
        if not self._sets_supported():
            ctx.response.add_error(OaiErrorCode.NO_SET_HIERARCHY)
            return
        if "resumptionToken" in ctx.args:
            ctx.response.add_error(OaiErrorCode.BAD_RESUMPTION_TOKEN)
            return

        cached_sets = self.store.list_sets()
        if not cached_sets:
            ctx.response.add_error(OaiErrorCode.NO_SET_HIERARCHY, "No sets are currently cached.")
            return

        element = ctx.response.start_verb("ListSets")
        for cached_set in cached_sets:
            set_element = add_element(element, "set")
            add_element(set_element, "setSpec", cached_set.set_id)
            add_element(set_element, "setName", cached_set.label)
