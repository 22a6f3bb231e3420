"""NPPES (National Plan and Provider Enumeration System) NPI registry client.

API docs: https://npiregistry.cms.hhs.gov/api-page
No authentication required.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..models import RegistryProvider

logger = logging.getLogger(__name__)

API_BASE = "https://npiregistry.cms.hhs.gov/api/"
API_VERSION = "2.1"

# Substring of the taxonomy description -> benchmark specialty. First match wins.
# Unmatched taxonomies map to "" so the scan flags the national fallback.
TAXONOMY_SPECIALTIES: tuple[tuple[str, str], ...] = (
    ("family medicine", "Family Medicine"),
    ("family practice", "Family Medicine"),
    ("geriatric", "Geriatric Medicine"),
    ("critical care", "Critical Care"),
    ("infectious disease", "Infectious Disease"),
    ("hematology", "Hematology/Oncology"),
    ("oncology", "Hematology/Oncology"),
    ("allergy", "Allergy/Immunology"),
    ("physical medicine", "Physical Medicine"),
    ("cardiology", "Cardiology"),
    ("cardiovascular disease", "Cardiology"),
    ("pulmonary", "Pulmonology"),
    ("pulmonology", "Pulmonology"),
    ("endocrinology", "Endocrinology"),
    ("orthopedic", "Orthopedics"),
    ("orthopaedic", "Orthopedics"),
    ("gastroenterology", "Gastroenterology"),
    ("neurology", "Neurology"),
    ("psychiatry", "Psychiatry"),
    ("urology", "Urology"),
    ("rheumatology", "Rheumatology"),
    ("nephrology", "Nephrology"),
    ("dermatology", "Dermatology"),
    ("obstetrics", "OB/GYN"),
    ("gynecology", "OB/GYN"),
    ("internal medicine", "Internal Medicine"),
    ("general practice", "Internal Medicine"),
)


def map_taxonomy_to_specialty(description: str) -> str:
    desc = description.lower()
    for needle, specialty in TAXONOMY_SPECIALTIES:
        if needle in desc:
            return specialty
    return ""


def parse_result(record: dict) -> RegistryProvider:
    """Convert one registry ``results`` entry into a RegistryProvider."""
    is_org = record.get("enumeration_type") == "NPI-2"
    basic = record.get("basic") or {}
    taxonomies = record.get("taxonomies") or []
    addresses = record.get("addresses") or []

    taxonomy = next((t for t in taxonomies if t.get("primary")), taxonomies[0] if taxonomies else {})
    address = next(
        (a for a in addresses if a.get("address_purpose") == "LOCATION"),
        addresses[0] if addresses else {},
    )

    if is_org:
        first_name = ""
        last_name = basic.get("organization_name", "")
        full_name = last_name
    else:
        first_name = basic.get("first_name", "")
        last_name = basic.get("last_name", "")
        full_name = f"{first_name} {last_name}".strip()

    description = taxonomy.get("desc", "")
    return RegistryProvider(
        npi=str(record.get("number", "")),
        entity_type="organization" if is_org else "individual",
        first_name=first_name,
        last_name=last_name,
        full_name=full_name,
        credential=basic.get("credential", ""),
        specialty=map_taxonomy_to_specialty(description),
        taxonomy_code=taxonomy.get("code", ""),
        taxonomy_description=description,
        city=address.get("city", ""),
        state=address.get("state", ""),
        zip_code=(address.get("postal_code") or "")[:5],
        phone=address.get("telephone_number", ""),
    )


async def lookup_provider(npi: str, client: Optional[httpx.AsyncClient] = None) -> Optional[RegistryProvider]:
    """Look up one NPI in the registry.

    Returns None when the NPI is not listed or the registry is unreachable;
    request failures are logged, never raised.
    """
    params = {"version": API_VERSION, "number": npi}
    try:
        if client is not None:
            response = await client.get(API_BASE, params=params)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0)) as own_client:
                response = await own_client.get(API_BASE, params=params)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("NPPES lookup failed for NPI %s: %s", npi, exc)
        return None

    results = data.get("results") or []
    if not data.get("result_count") or not results:
        return None
    return parse_result(results[0])
