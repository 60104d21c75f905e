import json

import pytest
import requests

from app.analysis.errors import AnalysisError, AnalysisErrorKind
from app.analysis.inference_client import ChatCompletionClient
from app.analysis.pipeline import AnalysisPipeline, build_pipeline
from app.analysis.references import NoReferenceLookup, PubMedLinkLookup, ReferenceLookup
from app.config import Settings
from app.jobs.models import AnalysisRequest, Classification, Paper


class FlakyLookup(ReferenceLookup):
    def lookup(self, name):
        if name == "Sodium":
            raise requests.ConnectionError("eutils down")
        return [Paper(title=f"On {name}", url=f"https://example.org/{name}")]


def test_combined_strategy_parses_fenced_answer(chat_client_factory, label_answer, png_bytes):
    client = chat_client_factory(f"```json\n{label_answer}\n```")
    pipeline = AnalysisPipeline(client, PubMedLinkLookup())

    result = pipeline.analyze_image(png_bytes, "image/png")

    assert [i.classification for i in result.ingredients] == [
        Classification.HIGH_RISK, Classification.MODERATE_RISK, Classification.HEALTHY,
    ]
    assert all(len(i.papers) == 1 for i in result.ingredients)
    assert "pubmed.ncbi.nlm.nih.gov" in result.ingredients[0].papers[0].url

    assert len(client.calls) == 1
    prompt, image = client.calls[0]
    assert "high_risk, moderate_risk, healthy" in prompt
    assert image.data_url.startswith("data:image/png;base64,")


def test_closed_set_violation_fails(chat_client_factory, png_bytes):
    answer = json.dumps({"ingredients": [
        {"name": "Sugar", "classification": "unhealthy", "explanation": "Too sweet."},
    ]})
    pipeline = AnalysisPipeline(chat_client_factory(answer), NoReferenceLookup())

    with pytest.raises(AnalysisError) as exc_info:
        pipeline.analyze_image(png_bytes)
    assert exc_info.value.kind == AnalysisErrorKind.SCHEMA_VIOLATION


def test_unparseable_answer_fails(chat_client_factory, png_bytes):
    pipeline = AnalysisPipeline(chat_client_factory("The image is too blurry."), NoReferenceLookup())

    with pytest.raises(AnalysisError) as exc_info:
        pipeline.analyze_image(png_bytes)
    assert exc_info.value.kind == AnalysisErrorKind.PARSE_FAILURE


def test_transport_error_propagates(chat_client_factory, png_bytes):
    error = AnalysisError(AnalysisErrorKind.TRANSPORT, "request timed out after 30s")
    pipeline = AnalysisPipeline(chat_client_factory(error), NoReferenceLookup())

    with pytest.raises(AnalysisError) as exc_info:
        pipeline.analyze_image(png_bytes)
    assert exc_info.value.kind == AnalysisErrorKind.TRANSPORT


def test_enrichment_failure_only_empties_that_ingredient(chat_client_factory, label_answer, png_bytes):
    pipeline = AnalysisPipeline(chat_client_factory(label_answer), FlakyLookup())

    result = pipeline.analyze_image(png_bytes)

    papers = {i.name: i.papers for i in result.ingredients}
    assert papers["Sodium"] == []
    assert papers["Aspartame"][0].title == "On Aspartame"
    assert papers["Dietary Fiber"][0].title == "On Dietary Fiber"


def test_two_stage_strategy_classifies_extracted_text(chat_client_factory, label_answer, png_bytes):
    client = chat_client_factory("INGREDIENTS: aspartame, sodium, fiber", label_answer)
    pipeline = AnalysisPipeline(client, NoReferenceLookup(), strategy="two_stage")

    result = pipeline.run(AnalysisRequest(job_id="j", image_bytes=png_bytes))

    assert len(result.ingredients) == 3
    assert len(client.calls) == 2
    assert client.calls[0][1] is not None
    second_prompt, second_image = client.calls[1]
    assert second_image is None
    assert "INGREDIENTS: aspartame, sodium, fiber" in second_prompt


def test_two_stage_with_empty_extraction_fails(chat_client_factory, png_bytes):
    pipeline = AnalysisPipeline(chat_client_factory("   "), NoReferenceLookup(), strategy="two_stage")

    with pytest.raises(AnalysisError) as exc_info:
        pipeline.analyze_image(png_bytes)
    assert exc_info.value.kind == AnalysisErrorKind.PARSE_FAILURE


def test_unknown_strategy_is_rejected(chat_client_factory):
    with pytest.raises(ValueError):
        AnalysisPipeline(chat_client_factory(), NoReferenceLookup(), strategy="ocr_first")


def test_build_pipeline_from_settings():
    config = Settings(
        openai_api_key="k",
        analysis_strategy="two_stage",
        reference_lookup="none",
    )
    pipeline = build_pipeline(config)
    assert pipeline.strategy == "two_stage"
    assert isinstance(pipeline._client, ChatCompletionClient)
    assert isinstance(pipeline._references, NoReferenceLookup)
