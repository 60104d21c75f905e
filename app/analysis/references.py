"""Literature citations attached to each classified ingredient.

Lookups are best-effort: a failure for one ingredient leaves that
ingredient with no papers and never affects the others or the job.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional
from urllib.parse import quote_plus

import requests

from app.jobs.models import Ingredient, Paper

logger = logging.getLogger(__name__)

PUBMED_SEARCH_URL = "https://pubmed.ncbi.nlm.nih.gov/?term={term}"
PUBMED_ARTICLE_URL = "https://pubmed.ncbi.nlm.nih.gov/{uid}/"
EUTILS_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"


class ReferenceLookup(ABC):
    """Returns zero or more citations for an ingredient name."""

    @abstractmethod
    def lookup(self, name: str) -> List[Paper]:
        ...


class NoReferenceLookup(ReferenceLookup):
    def lookup(self, name: str) -> List[Paper]:
        return []


class PubMedLinkLookup(ReferenceLookup):
    """Synthesizes a PubMed search link for the ingredient; no network call."""

    def lookup(self, name: str) -> List[Paper]:
        term = quote_plus(f"{name} health effects")
        return [
            Paper(
                title=f"PubMed research on {name} and health",
                url=PUBMED_SEARCH_URL.format(term=term),
            )
        ]


class PubMedSearchLookup(ReferenceLookup):
    """Queries NCBI E-utilities (esearch + esummary) for matching articles."""

    def __init__(
        self,
        max_papers: int = 3,
        timeout: float = 10.0,
        base_url: str = EUTILS_BASE_URL,
        session: Optional[requests.Session] = None,
    ):
        self.max_papers = max_papers
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()

    def _get_json(self, endpoint: str, params: dict) -> dict:
        response = self._session.get(
            f"{self.base_url}/{endpoint}",
            params={**params, "db": "pubmed", "retmode": "json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def lookup(self, name: str) -> List[Paper]:
        search = self._get_json(
            "esearch.fcgi",
            {"term": f"{name} AND health", "retmax": self.max_papers, "sort": "relevance"},
        )
        ids = search.get("esearchresult", {}).get("idlist", [])[: self.max_papers]
        if not ids:
            return []

        summary = self._get_json("esummary.fcgi", {"id": ",".join(ids)})
        records = summary.get("result", {})
        papers = []
        for uid in ids:
            title = (records.get(uid) or {}).get("title")
            if title:
                papers.append(Paper(title=title, url=PUBMED_ARTICLE_URL.format(uid=uid)))
        return papers


def enrich_ingredients(
    ingredients: List[Ingredient],
    lookup: ReferenceLookup,
) -> List[Ingredient]:
    """Attach citations to every ingredient, isolating lookup failures."""
    enriched = []
    for ingredient in ingredients:
        try:
            papers = lookup.lookup(ingredient.name)
        except Exception as exc:
            logger.warning("Reference lookup failed for %r: %s", ingredient.name, exc)
            papers = []
        enriched.append(ingredient.model_copy(update={"papers": list(papers)}))
    return enriched


def build_reference_lookup(
    kind: str,
    max_papers: int = 3,
    timeout: float = 10.0,
) -> ReferenceLookup:
    if kind == "pubmed":
        return PubMedSearchLookup(max_papers=max_papers, timeout=timeout)
    if kind == "link":
        return PubMedLinkLookup()
    if kind == "none":
        return NoReferenceLookup()
    raise ValueError(
        f"Unknown reference lookup '{kind}'. Available: ['link', 'pubmed', 'none']"
    )
