"""Label analysis pipeline: image -> classified, cited ingredients.

Steps:
1. Encode the image for inline transport
2. Ask the inference service to identify and classify ingredients
   (one combined call, or extract-then-classify with two calls)
3. Decode the JSON answer, tolerating markdown fences and stray prose
4. Validate it against the closed classification schema
5. Attach literature citations per ingredient
"""

import logging
from typing import Optional

from app.analysis import prompts
from app.analysis.errors import AnalysisError, AnalysisErrorKind
from app.analysis.inference_client import ChatCompletionClient
from app.analysis.parsing import extract_json, validate_analysis
from app.analysis.references import (
    ReferenceLookup,
    build_reference_lookup,
    enrich_ingredients,
)
from app.config import Settings
from app.io.image_reader import encode_image
from app.jobs.models import AnalysisRequest, AnalysisResult

logger = logging.getLogger(__name__)

STRATEGIES = ("combined", "two_stage")


class AnalysisPipeline:
    """Runs one label image through the external inference service."""

    def __init__(
        self,
        client: ChatCompletionClient,
        references: ReferenceLookup,
        strategy: str = "combined",
        drop_invalid: bool = False,
    ):
        if strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown analysis strategy '{strategy}'. Available: {list(STRATEGIES)}"
            )
        self._client = client
        self._references = references
        self._strategy = strategy
        self._drop_invalid = drop_invalid

    @property
    def strategy(self) -> str:
        return self._strategy

    def analyze_image(
        self,
        image_bytes: bytes,
        media_type: Optional[str] = None,
    ) -> AnalysisResult:
        """Return the validated AnalysisResult or raise AnalysisError."""
        image = encode_image(image_bytes, media_type)
        logger.info(
            "Analyzing %s image (%d bytes) with %s strategy",
            image.media_type, len(image_bytes), self._strategy,
        )

        if self._strategy == "two_stage":
            extracted = self._client.complete(prompts.TEXT_EXTRACTION_PROMPT, image)
            logger.debug("Extracted label text: %s", extracted)
            if not extracted.strip():
                raise AnalysisError(
                    AnalysisErrorKind.PARSE_FAILURE, "no text extracted from label"
                )
            answer = self._client.complete(prompts.build_classification_prompt(extracted))
        else:
            answer = self._client.complete(prompts.COMBINED_PROMPT, image)

        payload = extract_json(answer)
        result = validate_analysis(payload, drop_invalid=self._drop_invalid)
        result.ingredients = enrich_ingredients(result.ingredients, self._references)

        logger.info("Analysis produced %d ingredient(s)", len(result.ingredients))
        return result

    def run(self, request: AnalysisRequest) -> AnalysisResult:
        """Worker entry point used by the job queue."""
        return self.analyze_image(request.image_bytes, request.content_type)


def build_pipeline(config: Settings) -> AnalysisPipeline:
    client = ChatCompletionClient(
        api_key=config.openai_api_key,
        model=config.openai_model,
        base_url=config.openai_base_url,
        timeout=config.inference_timeout_seconds,
        max_tokens=config.inference_max_tokens,
    )
    references = build_reference_lookup(
        config.reference_lookup,
        max_papers=config.reference_max_papers,
        timeout=config.reference_timeout_seconds,
    )
    return AnalysisPipeline(
        client=client,
        references=references,
        strategy=config.analysis_strategy,
        drop_invalid=config.drop_invalid_ingredients,
    )
