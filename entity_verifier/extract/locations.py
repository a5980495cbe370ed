"""Multi-layer office location extraction from company web pages.

Layers run in order, each returning a tagged ``LayerResult``:

1. structured_data  JSON-LD blocks (Organization, LocalBusiness, Place, @graph)
2. microdata        schema.org PostalAddress microdata
3. selectors        office/location/address elements scanned for "City, Country"
4. ai               LLM extraction over a bounded markup prefix, run only when
                    layers 1-3 together found fewer than
                    ``office_sufficiency_threshold`` unique offices

Results merge on lower-cased ``(city, country)``, first seen wins, and entries
with neither field are dropped.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from bs4 import BeautifulSoup

from entity_verifier.clients.openai_client import parse_json_response
from entity_verifier.config import settings
from entity_verifier.models import OfficeLocation
from entity_verifier.results import Failed, Found, LayerResult, NotFound, describe

logger = logging.getLogger(__name__)

OFFICE_SELECTORS: tuple[str, ...] = (
    "address",
    ".office", ".offices", ".office-location", ".office-locations",
    ".location", ".locations", ".address", ".contact-address",
    "#offices", "#locations", "#contact",
    "[class*=office]", "[class*=location]", "[id*=office]", "[id*=location]",
    "footer",
)

CITY_COUNTRY_RE = re.compile(
    r"([A-Z][A-Za-z'\.\-]+(?:[ \t]+[A-Z][A-Za-z'\.\-]+){0,3})"
    r"[ \t]*,[ \t]*"
    r"([A-Z][A-Za-z\.]+(?:[ \t]+[A-Z][A-Za-z\.]+){0,3})"
)
_REGION_CODE_RE = re.compile(r"[A-Z]{2}")
_JSONLD_TYPE_RE = re.compile(r"^\s*application/ld\+json\s*(;|$)", re.IGNORECASE)

KNOWN_COUNTRIES: frozenset[str] = frozenset({
    "argentina", "australia", "austria", "bahrain", "belgium", "brazil",
    "bulgaria", "canada", "chile", "china", "colombia", "croatia", "cyprus",
    "czech republic", "czechia", "denmark", "egypt", "estonia", "finland",
    "france", "germany", "greece", "hong kong", "hungary", "iceland", "india",
    "indonesia", "ireland", "israel", "italy", "japan", "jordan", "kenya",
    "korea", "south korea", "kuwait", "latvia", "lithuania", "luxembourg",
    "malaysia", "malta", "mexico", "monaco", "morocco", "netherlands",
    "the netherlands", "new zealand", "nigeria", "norway", "oman", "pakistan",
    "peru", "philippines", "poland", "portugal", "qatar", "romania", "russia",
    "saudi arabia", "serbia", "singapore", "slovakia", "slovenia",
    "south africa", "spain", "sweden", "switzerland", "taiwan", "thailand",
    "turkey", "ukraine", "united arab emirates", "uae", "united kingdom",
    "england", "scotland", "wales", "united states", "united states of america",
    "usa", "u.s.a.", "u.s.", "vietnam",
})

AI_SYSTEM_PROMPT = (
    "You extract office locations from company web page markup. "
    "Return ONLY locations that are explicitly present in the markup. "
    "Never guess or add locations from general knowledge. "
    'Respond with JSON: {"offices": [{"city": "", "country": "", "address": ""}]}. '
    'If no offices are present, respond with {"offices": []}.'
)


# ---------------------------------------------------------------------------
# Merge & sufficiency
# ---------------------------------------------------------------------------

def _clean(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.split())


def make_office(city: Any = "", country: Any = "", address: Any = "") -> OfficeLocation:
    return OfficeLocation(city=_clean(city), country=_clean(country), address=_clean(address))


def merge_office_locations(*groups: Iterable[OfficeLocation]) -> list[OfficeLocation]:
    """Merge office lists keyed on lower-cased (city, country), first seen wins."""
    seen: set[tuple[str, str]] = set()
    merged: list[OfficeLocation] = []
    for group in groups:
        for office in group:
            if office.is_empty or office.key in seen:
                continue
            seen.add(office.key)
            merged.append(office)
    return merged


def is_sufficient(offices: list[OfficeLocation], threshold: int | None = None) -> bool:
    """True when enough unique offices were found to skip the AI layer."""
    limit = settings.office_sufficiency_threshold if threshold is None else threshold
    return len(merge_office_locations(offices)) >= limit


# ---------------------------------------------------------------------------
# Layer 1: JSON-LD
# ---------------------------------------------------------------------------

def _country_name(value: Any) -> str:
    if isinstance(value, dict):
        return _clean(value.get("name") or value.get("@id") or "")
    return _clean(value)


def _office_from_address(address: dict) -> OfficeLocation:
    return make_office(
        city=address.get("addressLocality", ""),
        country=_country_name(address.get("addressCountry", "")),
        address=address.get("streetAddress") or address.get("addressStreet") or "",
    )


def _is_postal_address(node: dict) -> bool:
    node_type = node.get("@type")
    types = node_type if isinstance(node_type, list) else [node_type]
    if "PostalAddress" in types:
        return True
    return "addressLocality" in node or "addressCountry" in node


def _walk_jsonld(node: Any, out: list[OfficeLocation]) -> None:
    """Collect every postal address reachable from a JSON-LD node.

    Covers ``@graph`` containers, array-valued ``address``/``location`` and
    nested Place objects.
    """
    if isinstance(node, list):
        for item in node:
            _walk_jsonld(item, out)
        return
    if not isinstance(node, dict):
        return
    if _is_postal_address(node):
        out.append(_office_from_address(node))
        return
    for value in node.values():
        if isinstance(value, (dict, list)):
            _walk_jsonld(value, out)


def extract_structured_data(soup: BeautifulSoup) -> list[OfficeLocation]:
    offices: list[OfficeLocation] = []
    for script in soup.find_all("script", type=_JSONLD_TYPE_RE):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug("Skipping malformed JSON-LD block: %s", exc)
            continue
        _walk_jsonld(data, offices)
    return merge_office_locations(offices)


# ---------------------------------------------------------------------------
# Layer 2: microdata
# ---------------------------------------------------------------------------

def _itemprop_value(scope, prop: str) -> str:
    el = scope.find(attrs={"itemprop": prop})
    if el is None:
        return ""
    if el.get("content"):
        return el["content"]
    return el.get_text(" ", strip=True)


def extract_microdata(soup: BeautifulSoup) -> list[OfficeLocation]:
    offices: list[OfficeLocation] = []
    for scope in soup.select('[itemprop="address"], [itemtype*="PostalAddress"]'):
        offices.append(make_office(
            city=_itemprop_value(scope, "addressLocality"),
            country=_itemprop_value(scope, "addressCountry"),
            address=_itemprop_value(scope, "streetAddress"),
        ))
    return merge_office_locations(offices)


# ---------------------------------------------------------------------------
# Layer 3: heuristic selectors
# ---------------------------------------------------------------------------

def resolve_country(raw: str) -> Optional[str]:
    """Longest leading run of words that names a known country or region code."""
    words = raw.split()
    for n in range(len(words), 0, -1):
        candidate = " ".join(words[:n]).rstrip(".")
        if candidate.lower() in KNOWN_COUNTRIES or candidate.lower() + "." in KNOWN_COUNTRIES:
            return candidate
        if _REGION_CODE_RE.fullmatch(candidate):
            return candidate
    return None


def find_city_country_pairs(text: str) -> list[OfficeLocation]:
    offices = []
    for line in text.splitlines():
        for match in CITY_COUNTRY_RE.finditer(line):
            country = resolve_country(match.group(2))
            if country:
                offices.append(make_office(city=match.group(1), country=country))
    return offices


def extract_from_selectors(soup: BeautifulSoup) -> list[OfficeLocation]:
    offices: list[OfficeLocation] = []
    seen_elements: set[int] = set()
    for selector in OFFICE_SELECTORS:
        for el in soup.select(selector):
            if id(el) in seen_elements:
                continue
            seen_elements.add(id(el))
            offices.extend(find_city_country_pairs(el.get_text("\n", strip=True)))
    return merge_office_locations(offices)


# ---------------------------------------------------------------------------
# Layer 4: AI-assisted
# ---------------------------------------------------------------------------

async def extract_with_ai(
    html: str,
    source_url: str,
    llm,
    max_chars: int | None = None,
) -> LayerResult[list[OfficeLocation]]:
    if llm is None or not getattr(llm, "enabled", True):
        return Failed("text completion not configured")
    if not html or not html.strip():
        return NotFound("no markup")

    limit = settings.ai_markup_max_chars if max_chars is None else max_chars
    user_prompt = (
        f"Source URL: {source_url}\n\n"
        f"Markup:\n{html[:limit]}"
    )
    try:
        raw = await llm.chat(
            AI_SYSTEM_PROMPT, user_prompt, response_format={"type": "json_object"},
        )
        data = _parse_ai_payload(raw)
    except (json.JSONDecodeError, ValueError) as exc:
        logger.warning("AI location layer returned malformed JSON for %s: %s", source_url, exc)
        return Failed("malformed response")
    except Exception as exc:
        logger.warning("AI location layer failed for %s: %s", source_url, exc)
        return Failed(str(exc) or exc.__class__.__name__)

    offices = merge_office_locations(
        make_office(o.get("city", ""), o.get("country", ""), o.get("address", ""))
        for o in data if isinstance(o, dict)
    )
    return Found(offices) if offices else NotFound("model found no offices")


def _parse_ai_payload(raw: str) -> list:
    data = parse_json_response(raw)
    if isinstance(data, dict):
        data = data.get("offices", [])
    if not isinstance(data, list):
        raise ValueError("expected a list of offices")
    return data


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocationLayer:
    name: str
    extract: Callable[[BeautifulSoup], list[OfficeLocation]]


MARKUP_LAYERS: tuple[LocationLayer, ...] = (
    LocationLayer("structured_data", extract_structured_data),
    LocationLayer("microdata", extract_microdata),
    LocationLayer("selectors", extract_from_selectors),
)


@dataclass
class LocationExtractionReport:
    source_url: str
    offices: list[OfficeLocation] = field(default_factory=list)
    layers: dict[str, LayerResult] = field(default_factory=dict)
    ai_invoked: bool = False


def _run_markup_layer(layer: LocationLayer, soup: BeautifulSoup) -> LayerResult[list[OfficeLocation]]:
    try:
        offices = layer.extract(soup)
    except Exception as exc:
        logger.warning("Location layer %s failed: %s", layer.name, exc)
        return Failed(str(exc) or exc.__class__.__name__)
    return Found(offices) if offices else NotFound()


async def run_location_cascade(
    html: str,
    source_url: str = "",
    llm=None,
    threshold: int | None = None,
) -> LocationExtractionReport:
    report = LocationExtractionReport(source_url=source_url)
    soup = BeautifulSoup(html or "", "lxml")

    collected: list[OfficeLocation] = []
    for layer in MARKUP_LAYERS:
        result = _run_markup_layer(layer, soup)
        report.layers[layer.name] = result
        if isinstance(result, Found):
            collected = merge_office_locations(collected, result.data)

    if not is_sufficient(collected, threshold):
        report.ai_invoked = True
        result = await extract_with_ai(html, source_url, llm)
        report.layers["ai"] = result
        if isinstance(result, Found):
            collected = merge_office_locations(collected, result.data)

    report.offices = collected
    logger.info(
        "Extracted %d office(s) from %s [%s]",
        len(collected), source_url or "<markup>",
        ", ".join(f"{name}: {describe(r)}" for name, r in report.layers.items()),
    )
    return report


async def extract_office_locations(
    html: str,
    source_url: str = "",
    llm=None,
) -> list[OfficeLocation]:
    """Deduplicated offices found in a page's markup."""
    report = await run_location_cascade(html, source_url, llm)
    return report.offices
