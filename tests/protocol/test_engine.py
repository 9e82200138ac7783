"""
Tests for the OAI-PMH protocol engine.

Covers every verb against a cache populated from the shared test content:
records 1-5 are articles (odd ids also in "history"), 7 and 8 are pages,
and the smallest set pager limit is 2.
"""

import xml.etree.ElementTree as ET

import pytest

from oai_library.metadata import MetadataMapRegistry
from oai_library.protocol import OAI_NAMESPACE
from oai_library.protocol import OaiRequest
from oai_library.protocol import ProtocolEngine

ALL_IDS = ["1", "2", "3", "4", "5", "7", "8"]


def _identifiers(root, ns, verb="ListIdentifiers"):
    header = "oai:header" if verb == "ListIdentifiers" else "oai:record/oai:header"
    path = f"oai:{verb}/{header}/oai:identifier"
    return [element.text.rsplit("-", 1)[1] for element in root.findall(path, ns)]


@pytest.fixture
def engine_with(populated_store, content, settings, clock):
    """Build an engine over the populated store with changed settings."""

    def _build(**updates) -> ProtocolEngine:
        changed = settings.model_copy(update=updates)
        return ProtocolEngine(
            store=populated_store,
            registry=MetadataMapRegistry.from_settings(changed),
            entity_store=content,
            settings=changed,
            clock=clock,
        )

    return _build


def _ask(engine: ProtocolEngine, **params: str) -> ET.Element:
    body, status = engine.handle(
        OaiRequest(params={k: [v] for k, v in params.items()}, host="example.org", base_url="http://example.org/oai")
    )
    assert status == 200
    return ET.fromstring(body)


@pytest.mark.unit
class TestEnvelope:
    """Test request validation and the common envelope."""

    def test_missing_verb(self, harvest, ns, error_codes):
        """Test a request without a verb is a badVerb."""
        root = harvest()

        assert root.tag == f"{{{OAI_NAMESPACE}}}OAI-PMH"
        assert error_codes(root) == ["badVerb"]
        assert root.find("oai:request", ns).attrib == {}
        assert root.find("oai:responseDate", ns).text == "2024-06-01T12:00:00Z"

    def test_unknown_verb(self, harvest, error_codes):
        """Test an unknown verb is a badVerb."""
        assert error_codes(harvest(verb="Explode")) == ["badVerb"]

    def test_repeated_verb(self, harvest, error_codes):
        """Test a repeated verb is a badVerb."""
        root = harvest(params={"verb": ["Identify", "Identify"]})

        assert error_codes(root) == ["badVerb"]

    def test_illegal_argument_clears_request_attributes(self, harvest, ns, error_codes):
        """Test an illegal argument yields badArgument and a bare request element."""
        root = harvest(verb="Identify", identifier="oai:example.org:node-1")

        assert error_codes(root) == ["badArgument"]
        assert root.find("oai:request", ns).attrib == {}
        assert root.find("oai:Identify", ns) is None

    def test_repeated_argument(self, harvest, error_codes):
        """Test a repeated argument is a badArgument."""
        root = harvest(verb="ListRecords", params={"metadataPrefix": ["oai_dc", "oai_dc"]})

        assert error_codes(root) == ["badArgument"]

    def test_request_echoes_arguments(self, harvest, ns):
        """Test valid arguments are echoed on the request element."""
        request = harvest(verb="ListIdentifiers", metadataPrefix="oai_dc").find("oai:request", ns)

        assert request.attrib == {"verb": "ListIdentifiers", "metadataPrefix": "oai_dc"}
        assert request.text == "http://example.org/oai/request"

    def test_xml_declaration(self, engine):
        """Test responses are UTF-8 XML documents."""
        body, _ = engine.handle(OaiRequest(params={"verb": ["Identify"]}, host="example.org"))

        assert body.startswith(b"<?xml version='1.0' encoding='utf-8'?>")

    def test_empty_cache_is_primed(self, store, synchronizer, content, settings, clock):
        """Test the first request against an empty cache rebuilds it."""
        engine = ProtocolEngine(
            store=store,
            registry=MetadataMapRegistry.from_settings(settings),
            entity_store=content,
            settings=settings,
            synchronizer=synchronizer,
            clock=clock,
        )

        _ask(engine, verb="Identify")

        assert store.count_records() == 7


@pytest.mark.unit
class TestIdentify:
    """Test the Identify verb."""

    def test_identify(self, harvest, ns):
        """Test repository description fields."""
        identify = harvest(verb="Identify").find("oai:Identify", ns)

        assert identify.find("oai:repositoryName", ns).text == "Test Repository"
        assert identify.find("oai:baseURL", ns).text == "http://example.org/oai/request"
        assert identify.find("oai:protocolVersion", ns).text == "2.0"
        assert identify.find("oai:adminEmail", ns).text == "oai@example.org"
        assert identify.find("oai:earliestDatestamp", ns).text == "2024-01-01"
        assert identify.find("oai:deletedRecord", ns).text == "no"
        assert identify.find("oai:granularity", ns).text == "YYYY-MM-DD"

    def test_identifier_description(self, harvest, ns):
        """Test the oai-identifier description names the request host."""
        description = harvest(host="example.org:8430", verb="Identify").find(
            "oai:Identify/oai:description/id:oai-identifier", ns
        )

        assert description.find("id:repositoryIdentifier", ns).text == "example.org"
        assert description.find("id:sampleIdentifier", ns).text == "oai:example.org:node-1"

    def test_second_granularity(self, engine_with, ns):
        """Test datestamps follow the configured granularity."""
        root = _ask(engine_with(granularity="YYYY-MM-DDThh:mm:ssZ"), verb="Identify")

        assert root.find("oai:Identify/oai:earliestDatestamp", ns).text == "2024-01-01T00:00:00Z"

    def test_empty_store_reports_epoch(self, store, content, settings, clock, ns):
        """Test an empty cache reports the epoch as earliest datestamp."""
        engine = ProtocolEngine(
            store=store,
            registry=MetadataMapRegistry.from_settings(settings),
            entity_store=content,
            settings=settings,
            clock=clock,
        )

        root = _ask(engine, verb="Identify")

        assert root.find("oai:Identify/oai:earliestDatestamp", ns).text == "1970-01-01"


@pytest.mark.unit
class TestListMetadataFormats:
    """Test the ListMetadataFormats verb."""

    def test_lists_bound_formats(self, engine_with, ns):
        """Test every bound prefix is listed."""
        root = _ask(engine_with(metadata_map_plugins={"oai_dc": "dublin_core", "mods": "mods"}), verb="ListMetadataFormats")

        prefixes = [e.text for e in root.findall("oai:ListMetadataFormats/oai:metadataFormat/oai:metadataPrefix", ns)]
        assert prefixes == ["oai_dc", "mods"]

    def test_known_identifier(self, harvest, ns):
        """Test formats can be asked for a cached item."""
        root = harvest(verb="ListMetadataFormats", identifier="oai:example.org:node-1")

        assert root.find("oai:ListMetadataFormats/oai:metadataFormat/oai:schema", ns).text.endswith("oai_dc.xsd")

    def test_unknown_identifier(self, harvest, error_codes):
        """Test an unknown identifier is idDoesNotExist."""
        root = harvest(verb="ListMetadataFormats", identifier="oai:example.org:node-99")

        assert error_codes(root) == ["idDoesNotExist"]


@pytest.mark.unit
class TestGetRecord:
    """Test the GetRecord verb."""

    def test_get_record(self, harvest, ns):
        """Test a cached record is rendered with header and metadata."""
        record = harvest(verb="GetRecord", identifier="oai:example.org:node-1", metadataPrefix="oai_dc").find(
            "oai:GetRecord/oai:record", ns
        )

        assert record.find("oai:header/oai:identifier", ns).text == "oai:example.org:node-1"
        assert record.find("oai:header/oai:datestamp", ns).text == "2024-02-01"
        assert [e.text for e in record.findall("oai:header/oai:setSpec", ns)] == ["articles", "history"]
        assert record.find("oai:metadata/oai_dc:dc/dc:title", ns).text == "Article 1"

    def test_port_is_ignored(self, harvest, ns):
        """Test the host port does not change identifiers."""
        root = harvest(host="example.org:8430", verb="GetRecord", identifier="oai:example.org:node-2", metadataPrefix="oai_dc")

        assert root.find("oai:GetRecord/oai:record/oai:header/oai:identifier", ns).text == "oai:example.org:node-2"

    def test_other_host(self, harvest, error_codes):
        """Test identifiers issued for another host do not resolve."""
        root = harvest(verb="GetRecord", identifier="oai:other.org:node-1", metadataPrefix="oai_dc")

        assert error_codes(root) == ["idDoesNotExist"]

    @pytest.mark.parametrize("identifier", ["node-1", "oai:example.org:node", "oai:example.org:node-99"])
    def test_unresolvable_identifier(self, harvest, ns, error_codes, identifier):
        """Test malformed or unknown identifiers are idDoesNotExist."""
        root = harvest(verb="GetRecord", identifier=identifier, metadataPrefix="oai_dc")

        assert error_codes(root) == ["idDoesNotExist"]
        assert "verb" not in root.find("oai:request", ns).attrib

    def test_unpublished_entity(self, populated_store, content, harvest, error_codes):
        """Test a cached record whose entity became invisible is not disseminated."""
        content.load("node", "2").published = False

        root = harvest(verb="GetRecord", identifier="oai:example.org:node-2", metadataPrefix="oai_dc")

        assert error_codes(root) == ["idDoesNotExist"]

    def test_missing_metadata_prefix(self, harvest, ns, error_codes):
        """Test a missing metadataPrefix is a badArgument."""
        root = harvest(verb="GetRecord", identifier="oai:example.org:node-1")

        assert error_codes(root) == ["badArgument"]
        assert root.find("oai:request", ns).attrib == {}

    def test_unknown_metadata_prefix(self, harvest, ns, error_codes):
        """Test an unsupported prefix keeps the other echoed arguments."""
        root = harvest(verb="GetRecord", identifier="oai:example.org:node-1", metadataPrefix="marc")

        assert error_codes(root) == ["cannotDisseminateFormat"]
        assert root.find("oai:request", ns).attrib == {"identifier": "oai:example.org:node-1", "metadataPrefix": "marc"}

    def test_errors_accumulate(self, harvest, error_codes):
        """Test an unknown identifier and an unknown prefix are both reported."""
        root = harvest(verb="GetRecord", identifier="oai:example.org:node-99", metadataPrefix="marc")

        assert error_codes(root) == ["idDoesNotExist", "cannotDisseminateFormat"]


@pytest.mark.unit
class TestListing:
    """Test ListIdentifiers and ListRecords."""

    def test_list_records(self, harvest, ns):
        """Test the first page of records and its resumption token."""
        root = harvest(verb="ListRecords", metadataPrefix="oai_dc")

        assert _identifiers(root, ns, "ListRecords") == ["1", "2"]
        token = root.find("oai:ListRecords/oai:resumptionToken", ns)
        assert token.text == "1"
        assert token.get("cursor") == "0"
        assert token.get("completeListSize") == "7"
        assert token.get("expirationDate") == "2024-06-01T13:00:00Z"

    def test_paging_through_listing(self, harvest, ns):
        """Test cursors advance by the page size until an empty token ends the listing."""
        root = harvest(verb="ListIdentifiers", metadataPrefix="oai_dc")
        seen = _identifiers(root, ns)
        cursors = []
        while True:
            listing = root.find("oai:ListIdentifiers", ns)
            token = listing.find("oai:resumptionToken", ns)
            assert list(listing)[-1] is token
            cursors.append(token.get("cursor"))
            if not token.text:
                break
            root = harvest(verb="ListIdentifiers", resumptionToken=token.text)
            seen += _identifiers(root, ns)

        assert seen == ALL_IDS
        assert cursors == ["0", "2", "4", "6"]
        assert token.get("completeListSize") == "7"

    def test_single_page_has_no_token(self, harvest, ns):
        """Test a listing that fits one page carries no token."""
        root = harvest(verb="ListIdentifiers", metadataPrefix="oai_dc", set="pages")

        assert _identifiers(root, ns) == ["7", "8"]
        assert root.find("oai:ListIdentifiers/oai:resumptionToken", ns) is None

    def test_set_filter(self, harvest, ns):
        """Test selective harvesting by set keeps every setSpec on the header."""
        root = harvest(verb="ListIdentifiers", metadataPrefix="oai_dc", set="history")

        assert _identifiers(root, ns) == ["1", "3"]
        specs = [e.text for e in root.findall("oai:ListIdentifiers/oai:header[1]/oai:setSpec", ns)]
        assert specs == ["articles", "history"]

    def test_date_range(self, harvest, ns):
        """Test from and until are inclusive and until covers its whole day."""
        root = harvest(verb="ListIdentifiers", metadataPrefix="oai_dc", **{"from": "2024-02-03", "until": "2024-02-04"})

        assert _identifiers(root, ns) == ["3", "4"]

    def test_extreme_date_range(self, harvest, ns, error_codes):
        """Test the first and last representable days are accepted as bounds."""
        root = harvest(verb="ListIdentifiers", metadataPrefix="oai_dc", until="9999-12-31", **{"from": "0001-01-01"})

        assert error_codes(root) == []
        assert root.find("oai:ListIdentifiers/oai:resumptionToken", ns).get("completeListSize") == "7"

    def test_seconds_granularity_range(self, engine_with, ns):
        """Test second-granularity arguments under second granularity."""
        engine = engine_with(granularity="YYYY-MM-DDThh:mm:ssZ")

        root = _ask(engine, verb="ListIdentifiers", metadataPrefix="oai_dc", until="2024-02-01T10:00:00Z")

        assert _identifiers(root, ns) == ["1"]
        assert root.find("oai:ListIdentifiers/oai:header/oai:datestamp", ns).text == "2024-02-01T10:00:00Z"

    @pytest.mark.parametrize(
        "dates",
        [
            {"from": "2024-13-01"},
            {"until": "yesterday"},
            {"from": "2024-02-01T00:00:00Z"},
        ],
    )
    def test_bad_dates(self, harvest, error_codes, dates):
        """Test malformed dates or dates finer than the repository granularity."""
        root = harvest(verb="ListRecords", metadataPrefix="oai_dc", **dates)

        assert error_codes(root) == ["badArgument"]

    def test_mixed_granularities(self, engine_with, error_codes):
        """Test from and until must share a granularity."""
        engine = engine_with(granularity="YYYY-MM-DDThh:mm:ssZ")

        root = _ask(engine, verb="ListRecords", metadataPrefix="oai_dc", until="2024-02-01T10:00:00Z", **{"from": "2024-01-01"})

        assert error_codes(root) == ["badArgument"]

    def test_no_records_match(self, harvest, ns, error_codes):
        """Test an empty listing drops the verb element."""
        root = harvest(verb="ListRecords", metadataPrefix="oai_dc", **{"from": "2030-01-01"})

        assert error_codes(root) == ["noRecordsMatch"]
        assert root.find("oai:ListRecords", ns) is None

    def test_unknown_set(self, harvest, error_codes):
        """Test a set that is not cached matches nothing."""
        assert error_codes(harvest(verb="ListRecords", metadataPrefix="oai_dc", set="missing")) == ["noRecordsMatch"]

    def test_missing_metadata_prefix(self, harvest, error_codes):
        """Test listings need a metadataPrefix."""
        assert error_codes(harvest(verb="ListIdentifiers")) == ["badArgument"]

    def test_unknown_metadata_prefix(self, harvest, error_codes):
        """Test listings with an unbound prefix."""
        assert error_codes(harvest(verb="ListRecords", metadataPrefix="marc")) == ["cannotDisseminateFormat"]

    def test_invisible_records_skipped(self, content, harvest, ns):
        """Test records whose entity is no longer visible are left out of the page."""
        content.load("node", "1").published = False

        root = harvest(verb="ListIdentifiers", metadataPrefix="oai_dc")

        assert _identifiers(root, ns) == ["2"]


@pytest.mark.unit
class TestResumptionTokens:
    """Test token redemption."""

    def test_token_restores_arguments(self, harvest, ns):
        """Test arguments on a resumed request are ignored in favour of the token."""
        first = harvest(verb="ListRecords", metadataPrefix="oai_dc", set="history")
        token = first.find("oai:ListRecords/oai:resumptionToken", ns).text

        root = harvest(verb="ListRecords", resumptionToken=token)

        assert _identifiers(root, ns, "ListRecords") == ["5"]
        last = root.find("oai:ListRecords/oai:resumptionToken", ns)
        assert last.text is None
        assert (last.get("cursor"), last.get("completeListSize")) == ("2", "3")

    @pytest.mark.parametrize("token", ["999", "abc", "99999999999999999999999", "0", "-1", " 5 ", "1_0", "\u0661"])
    def test_unknown_token(self, harvest, error_codes, token):
        """Test tokens that were never issued or are not token ids at all."""
        assert error_codes(harvest(verb="ListRecords", resumptionToken=token)) == ["badResumptionToken"]

    def test_expired_token(self, harvest, clock, ns, error_codes, populated_store):
        """Test an expired token fails and keeps failing after deletion."""
        token = harvest(verb="ListRecords", metadataPrefix="oai_dc").find("oai:ListRecords/oai:resumptionToken", ns).text
        clock.advance(3600)

        assert error_codes(harvest(verb="ListRecords", resumptionToken=token)) == ["badResumptionToken"]
        assert populated_store.get_token(int(token)) is None
        assert error_codes(harvest(verb="ListRecords", resumptionToken=token)) == ["badResumptionToken"]

    def test_token_for_other_verb(self, harvest, ns, error_codes):
        """Test a ListRecords token cannot continue ListIdentifiers."""
        token = harvest(verb="ListRecords", metadataPrefix="oai_dc").find("oai:ListRecords/oai:resumptionToken", ns).text

        assert error_codes(harvest(verb="ListIdentifiers", resumptionToken=token)) == ["badResumptionToken"]

    def test_token_ids_increase(self, harvest, ns):
        """Test every new listing gets a fresh token id."""
        ids = [
            harvest(verb="ListIdentifiers", metadataPrefix="oai_dc").find("oai:ListIdentifiers/oai:resumptionToken", ns).text
            for _ in range(3)
        ]

        assert ids == ["1", "2", "3"]


@pytest.mark.unit
class TestListSets:
    """Test ListSets and disabled set support."""

    def test_list_sets(self, harvest, ns):
        """Test cached sets are listed in set id order."""
        sets = harvest(verb="ListSets").findall("oai:ListSets/oai:set", ns)

        assert [(s.find("oai:setSpec", ns).text, s.find("oai:setName", ns).text) for s in sets] == [
            ("articles", "Articles"),
            ("history", "History articles"),
            ("pages", "Pages"),
        ]

    def test_list_sets_with_token(self, harvest, error_codes):
        """Test ListSets is never paginated."""
        assert error_codes(harvest(verb="ListSets", resumptionToken="1")) == ["badResumptionToken"]

    def test_sets_disabled(self, engine_with, ns, error_codes):
        """Test disabling sets hides the hierarchy and setSpecs."""
        engine = engine_with(support_sets=False)

        assert error_codes(_ask(engine, verb="ListSets")) == ["noSetHierarchy"]
        assert error_codes(_ask(engine, verb="ListRecords", metadataPrefix="oai_dc", set="articles")) == [
            "noSetHierarchy"
        ]
        root = _ask(engine, verb="ListIdentifiers", metadataPrefix="oai_dc")
        assert root.findall("oai:ListIdentifiers/oai:header/oai:setSpec", ns) == []

    def test_no_configured_sets(self, engine_with, error_codes):
        """Test a repository without configured sets has no set hierarchy."""
        assert error_codes(_ask(engine_with(sets=[]), verb="ListSets")) == ["noSetHierarchy"]

    def test_all_sets_retired(self, populated_store, harvest, ns, error_codes):
        """Test configured sets with nothing cached report no set hierarchy."""
        for set_id in ("articles", "history", "pages"):
            populated_store.remove_set(set_id)

        root = harvest(verb="ListSets")

        assert error_codes(root) == ["noSetHierarchy"]
        assert root.find("oai:ListSets", ns) is None
