import pytest
import requests

from app.analysis.references import (
    NoReferenceLookup,
    PubMedLinkLookup,
    PubMedSearchLookup,
    build_reference_lookup,
    enrich_ingredients,
)
from app.jobs.models import Classification, Ingredient


class EutilsSession:
    def __init__(self, make_response, search, summary):
        self.make_response = make_response
        self.search = search
        self.summary = summary
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if url.endswith("esearch.fcgi"):
            return self.make_response(200, self.search)
        return self.make_response(200, self.summary)


def _ingredient(name):
    return Ingredient(name=name, classification=Classification.HEALTHY, explanation="x")


def test_link_lookup_builds_search_url():
    papers = PubMedLinkLookup().lookup("high fructose corn syrup")
    assert len(papers) == 1
    assert papers[0].url == (
        "https://pubmed.ncbi.nlm.nih.gov/?term=high+fructose+corn+syrup+health+effects"
    )
    assert "high fructose corn syrup" in papers[0].title


def test_pubmed_search_returns_titles_in_rank_order(make_response):
    session = EutilsSession(
        make_response,
        search={"esearchresult": {"idlist": ["222", "111"]}},
        summary={"result": {
            "uids": ["111", "222"],
            "111": {"title": "Second paper"},
            "222": {"title": "First paper"},
        }},
    )
    lookup = PubMedSearchLookup(max_papers=2, session=session)

    papers = lookup.lookup("aspartame")

    assert [p.title for p in papers] == ["First paper", "Second paper"]
    assert papers[0].url == "https://pubmed.ncbi.nlm.nih.gov/222/"
    assert session.calls[0][1]["term"] == "aspartame AND health"
    assert session.calls[1][1]["id"] == "222,111"


def test_pubmed_search_with_no_hits_skips_summary(make_response):
    session = EutilsSession(make_response, search={"esearchresult": {"idlist": []}}, summary={})
    assert PubMedSearchLookup(session=session).lookup("unobtainium") == []
    assert len(session.calls) == 1


def test_enrichment_isolates_failures():
    class Boom(PubMedLinkLookup):
        def lookup(self, name):
            if name == "Salt":
                raise requests.Timeout("slow")
            return super().lookup(name)

    enriched = enrich_ingredients([_ingredient("Salt"), _ingredient("Oats")], Boom())

    assert enriched[0].papers == []
    assert len(enriched[1].papers) == 1


def test_enrichment_keeps_order_and_fields():
    items = [_ingredient("B"), _ingredient("A")]
    enriched = enrich_ingredients(items, NoReferenceLookup())
    assert [i.name for i in enriched] == ["B", "A"]
    assert all(i.papers == [] for i in enriched)


def test_build_reference_lookup():
    assert isinstance(build_reference_lookup("link"), PubMedLinkLookup)
    assert isinstance(build_reference_lookup("none"), NoReferenceLookup)
    pubmed = build_reference_lookup("pubmed", max_papers=5)
    assert isinstance(pubmed, PubMedSearchLookup) and pubmed.max_papers == 5
    with pytest.raises(ValueError):
        build_reference_lookup("scholar")
