"""Prompt templates for label analysis."""

# Reference points for the three tiers
KNOWN_INGREDIENTS = {
    "high_risk": [
        "trans fat",
        "aspartame",
        "high fructose corn syrup",
        "artificial sweeteners",
        "sodium nitrite",
        "sodium nitrate",
    ],
    "moderate_risk": [
        "saturated fat",
        "sodium",
        "added sugars",
        "artificial colors",
        "preservatives",
    ],
    "healthy": [
        "fiber",
        "protein",
        "vitamins",
        "minerals",
        "antioxidants",
        "omega-3",
    ],
}

RESPONSE_SHAPE = (
    '{"ingredients": [{"name": string, "classification": string, '
    '"explanation": string}]}'
)


def _catalogue() -> str:
    lines = []
    for tier, names in KNOWN_INGREDIENTS.items():
        lines.append(f"- {tier}: {', '.join(names)}")
    return "\n".join(lines)


CLASSIFICATION_RULES = f"""Classify each ingredient as exactly one of: high_risk, moderate_risk, healthy.
Use these reference points when they apply:
{_catalogue()}

For each ingredient, provide a ONE sentence explanation about its health impact.
Return ONLY a JSON object with this structure: {RESPONSE_SHAPE}.
Do not wrap the JSON in markdown and do not add any other text."""


COMBINED_PROMPT = (
    "Read this nutrition label image and identify every listed ingredient "
    "and nutrient.\n" + CLASSIFICATION_RULES
)

TEXT_EXTRACTION_PROMPT = (
    "Read this nutrition label image and extract all the text content. "
    "Include all ingredients, nutrients, and their amounts. "
    "Output the text in a clear, readable format."
)


def build_classification_prompt(extracted_text: str) -> str:
    return (
        "Analyze these ingredients.\n"
        f"{CLASSIFICATION_RULES}\n\n"
        "Here's the ingredients list from the nutrition label:\n"
        f"{extracted_text}"
    )
