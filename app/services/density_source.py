"""
District Density Sources

Produces a 0-100 "similarity density" per district for one profile attribute.

Two interchangeable sources:
- GeminiDensitySource: asks Gemini for a district distribution using a fixed
  JSON response schema.
- FallbackDensitySource: offline generator used when no credential is
  configured or the remote call yields nothing usable.

The remote source never raises to its caller. Any failure (transport error,
empty or malformed response) is treated as "no data" and answered with
fallback output. There are no retries.
"""

import json
import logging
import math
import random
from dataclasses import dataclass
from typing import Optional, Protocol

from google import genai
from google.genai import types

from app.config import Settings, get_settings
from app.models.schemas import CensusProfile, DistrictAnalysis
from app.services.region_catalog import DISTRICT_CODES

logger = logging.getLogger(__name__)

FALLBACK_ANALYSIS = "Projected distribution"


@dataclass
class DensityFetch:
    """District scores plus which source produced them."""
    scores: list[DistrictAnalysis]
    source: str


class DensitySource(Protocol):
    name: str

    async def fetch(self, profile: CensusProfile, attribute_key: str) -> DensityFetch:
        ...


# =============================================================================
# Offline generator
# =============================================================================

class FallbackDensitySource:
    """Random district scores, one per district in catalog order."""

    name = "fallback"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def generate(self) -> list[DistrictAnalysis]:
        return [
            DistrictAnalysis(
                id=code,
                density=self.rng.randint(0, 100),
                analysis=FALLBACK_ANALYSIS,
            )
            for code in DISTRICT_CODES
        ]

    async def fetch(self, profile: CensusProfile, attribute_key: str) -> DensityFetch:
        return DensityFetch(scores=self.generate(), source=self.name)


# =============================================================================
# Gemini
# =============================================================================

DENSITY_RESPONSE_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "id": types.Schema(
                type=types.Type.STRING,
                description=f"District ID ({', '.join(DISTRICT_CODES)})",
            ),
            "density": types.Schema(
                type=types.Type.NUMBER,
                description="Score 0-100 indicating prevalence of this demographic.",
            ),
            "analysis": types.Schema(
                type=types.Type.STRING,
                description="Brief reason.",
            ),
        },
        required=["id", "density"],
    ),
)


def build_density_prompt(profile: CensusProfile, attribute_key: str) -> str:
    """Prompt conditioning the inference on the chosen attribute plus age, occupation and housing."""
    codes = ", ".join(DISTRICT_CODES)
    return f"""Analyze this Hong Kong census profile:
- {attribute_key}: {profile.value_for(attribute_key)}
- Age: {profile.age}
- Occupation/Housing: {profile.occupation}, {profile.housing_type}

Determine the density distribution (0-100) for this specific demographic group across the 18 districts.
High density = high concentration of people with similar {attribute_key} and socioeconomic status.

Districts: {codes}."""


def parse_density_response(text: Optional[str]) -> list[DistrictAnalysis]:
    """
    Validate a raw JSON response into district scores.

    Unknown district ids and entries without a numeric density are dropped,
    densities are clamped to 0-100 and the first entry per district wins.

    Raises:
        ValueError: If the response is empty, not a JSON array, or has no usable entry
    """
    if not text or not text.strip():
        raise ValueError("empty response")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"response is not JSON: {e}") from e

    if not isinstance(payload, list):
        raise ValueError("response is not a JSON array")

    scores: list[DistrictAnalysis] = []
    seen: set[str] = set()
    for item in payload:
        if not isinstance(item, dict):
            continue

        code = str(item.get("id", "")).upper().strip()
        if code not in DISTRICT_CODES or code in seen:
            continue

        density = item.get("density")
        if isinstance(density, bool) or not isinstance(density, (int, float)):
            continue
        if math.isnan(density):
            continue

        analysis = item.get("analysis")
        scores.append(DistrictAnalysis(
            id=code,
            density=max(0.0, min(100.0, float(density))),
            analysis=analysis if isinstance(analysis, str) else None,
        ))
        seen.add(code)

    if not scores:
        raise ValueError("response has no usable district scores")
    return scores


class GeminiDensitySource:
    """Remote inference with fallback to the offline generator."""

    name = "gemini"

    def __init__(
        self,
        client: genai.Client,
        model: str,
        fallback: Optional[FallbackDensitySource] = None,
    ):
        self.client = client
        self.model = model
        self.fallback = fallback or FallbackDensitySource()

    async def fetch(self, profile: CensusProfile, attribute_key: str) -> DensityFetch:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=build_density_prompt(profile, attribute_key),
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=DENSITY_RESPONSE_SCHEMA,
                ),
            )
            scores = parse_density_response(response.text)
            logger.info(f"Gemini returned {len(scores)} district scores for '{attribute_key}'")
            return DensityFetch(scores=scores, source=self.name)

        except Exception as e:
            logger.error(f"Gemini density analysis failed, using offline generator: {e}")
            return DensityFetch(scores=self.fallback.generate(), source=self.fallback.name)


# =============================================================================
# Source selection
# =============================================================================

def create_density_source(
    settings: Optional[Settings] = None,
    rng: Optional[random.Random] = None,
) -> DensitySource:
    """Pick the source from configuration: Gemini with a credential, offline generator without."""
    settings = settings or get_settings()
    fallback = FallbackDensitySource(rng)

    if not settings.inference_enabled:
        logger.warning("Google API key is missing - using offline density generator")
        return fallback

    client = genai.Client(api_key=settings.google_api_key)
    return GeminiDensitySource(client=client, model=settings.gemini_model, fallback=fallback)


_density_source: Optional[DensitySource] = None


def get_density_source() -> DensitySource:
    """Get or create the density source singleton."""
    global _density_source
    if _density_source is None:
        _density_source = create_density_source()
    return _density_source


async def fetch_densities(
    profile: CensusProfile,
    attribute_key: str,
    source: Optional[DensitySource] = None,
) -> list[DistrictAnalysis]:
    """District scores for one attribute of a profile. Never raises for data-source failures."""
    result = await (source or get_density_source()).fetch(profile, attribute_key)
    return result.scores
