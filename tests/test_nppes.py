"""Tests for the NPPES registry client (no network: httpx.MockTransport)."""

import httpx
import pytest

from revenue_intelligence.core.clients.nppes import lookup_provider, map_taxonomy_to_specialty, parse_result

INDIVIDUAL = {
    "number": "1234567893",
    "enumeration_type": "NPI-1",
    "basic": {"first_name": "JANE", "last_name": "DOE", "credential": "MD", "status": "A"},
    "taxonomies": [
        {"code": "207Q00000X", "desc": "Family Medicine", "primary": False},
        {"code": "207RC0000X", "desc": "Internal Medicine, Cardiovascular Disease", "primary": True},
    ],
    "addresses": [
        {"address_purpose": "MAILING", "city": "DALLAS", "state": "TX", "postal_code": "752010000"},
        {"address_purpose": "LOCATION", "city": "AUSTIN", "state": "TX", "postal_code": "787010000",
         "telephone_number": "512-555-0100"},
    ],
}

ORGANIZATION = {
    "number": "1987654321",
    "enumeration_type": "NPI-2",
    "basic": {"organization_name": "MAIN STREET CLINIC", "status": "A"},
    "taxonomies": [],
    "addresses": [],
}


@pytest.mark.parametrize("desc,specialty", [
    ("Family Medicine", "Family Medicine"),
    ("Internal Medicine, Cardiovascular Disease", "Cardiology"),
    ("Internal Medicine", "Internal Medicine"),
    ("Obstetrics & Gynecology", "OB/GYN"),
    ("Orthopaedic Surgery", "Orthopedics"),
    ("Chiropractor", ""),
])
def test_taxonomy_mapping(desc, specialty):
    assert map_taxonomy_to_specialty(desc) == specialty


def test_parse_individual_uses_primary_taxonomy_and_location():
    provider = parse_result(INDIVIDUAL)
    assert provider.entity_type == "individual"
    assert provider.full_name == "JANE DOE"
    assert provider.specialty == "Cardiology"
    assert provider.taxonomy_code == "207RC0000X"
    assert (provider.city, provider.state, provider.zip_code) == ("AUSTIN", "TX", "78701")


def test_parse_organization():
    provider = parse_result(ORGANIZATION)
    assert provider.entity_type == "organization"
    assert provider.full_name == "MAIN STREET CLINIC"
    assert provider.first_name == ""
    assert provider.specialty == ""
    assert provider.city == ""


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_lookup_found():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["number"] == "1234567893"
        assert request.url.params["version"] == "2.1"
        return httpx.Response(200, json={"result_count": 1, "results": [INDIVIDUAL]})

    async with _client(handler) as client:
        provider = await lookup_provider("1234567893", client=client)
    assert provider is not None
    assert provider.npi == "1234567893"


@pytest.mark.asyncio
async def test_lookup_not_listed():
    async with _client(lambda request: httpx.Response(200, json={"result_count": 0, "results": []})) as client:
        assert await lookup_provider("1234567893", client=client) is None


@pytest.mark.asyncio
async def test_lookup_degrades_on_http_error():
    async with _client(lambda request: httpx.Response(503)) as client:
        assert await lookup_provider("1234567893", client=client) is None
