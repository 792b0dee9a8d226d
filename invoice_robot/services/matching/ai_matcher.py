"""
Azure OpenAI based project matching.

Used as the fallback when the heuristic rules find nothing. The model is asked to
answer with a JSON object; anything that does not parse into that contract is a
hard failure (MatcherError), not a silent "no match".
"""

from typing import Optional, Sequence
import openai
from loguru import logger
from pydantic import BaseModel, Field, ValidationError
from .base import MatchResult, ProjectMatcher
from ..errors import MatcherError
from ...core.config import settings
from ...models import Project

SYSTEM_PROMPT = """You are a construction-industry project allocation expert.
Your task is to identify which project a purchase invoice belongs to.

Analyse the invoice content carefully and look for:
- Project references (project numbers, codes)
- Addresses
- Construction site names
- Other identifiers

Answer in JSON:
{
  "projectKey": 100,
  "confidence": 0.95,
  "reasoning": "Why this project was chosen"
}

If you cannot identify the project, answer:
{
  "projectKey": null,
  "confidence": 0,
  "reasoning": "Not enough identifiers"
}"""


class AiMatchResponse(BaseModel):
    """Structured answer expected from the model"""
    projectKey: int | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str | None = None


def build_user_prompt(
    text: str,
    vendor: str | None,
    amount: float | None,
    projects: Sequence[Project],
    invoice_number: str | None = None,
    invoice_date=None,
) -> str:
    project_list = "\n".join(
        f"- ProjectKey: {p.netvisor_project_key}, Code: {p.project_code}, "
        f"Name: {p.name}, Address: {p.address or 'N/A'}"
        for p in projects
    )
    amount_str = f"{amount:,.2f} EUR" if amount is not None else "N/A"
    date_str = invoice_date.isoformat() if invoice_date else "N/A"

    return f"""Analyse the following purchase invoice and identify the related project.

Invoice details:
- Number: {invoice_number or 'N/A'}
- Vendor: {vendor or 'N/A'}
- Amount: {amount_str}
- Date: {date_str}

OCR text:
{text}

Available projects:
{project_list}

Answer in JSON."""


class AiProjectMatcher(ProjectMatcher):
    """
    Project matcher backed by an Azure OpenAI chat deployment.

    The client is injectable so tests can pass a Mock with the
    ``chat.completions.create`` interface of the openai SDK.
    """

    method = "AI"

    def __init__(
        self,
        client: openai.AzureOpenAI | None = None,
        deployment: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
    ):
        self.client = client
        self.deployment = deployment or settings.azure_openai_deployment
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls) -> Optional["AiProjectMatcher"]:
        """Build a matcher from environment settings, or None when not configured"""
        if not (settings.azure_openai_endpoint and settings.azure_openai_api_key and settings.azure_openai_deployment):
            logger.warning(
                "Azure OpenAI not configured - AI project matching disabled. "
                "Set AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY and AZURE_OPENAI_DEPLOYMENT to enable it."
            )
            return None

        client = openai.AzureOpenAI(
            azure_endpoint=settings.azure_openai_endpoint,
            api_key=settings.azure_openai_api_key,
            api_version=settings.azure_openai_api_version,
        )
        return cls(client=client, deployment=settings.azure_openai_deployment)

    def match(
        self,
        text: str,
        vendor: str | None,
        amount: float | None,
        projects: Sequence[Project],
        **context
    ) -> Optional[MatchResult]:
        if self.client is None:
            raise MatcherError("Azure OpenAI client is not configured")

        invoice_number = context.get("invoice_number")
        logger.info("Starting AI analysis", invoice_number=invoice_number, candidates=len(projects))

        user_prompt = build_user_prompt(
            text,
            vendor,
            amount,
            projects,
            invoice_number=invoice_number,
            invoice_date=context.get("invoice_date"),
        )

        try:
            response = self.client.chat.completions.create(
                model=self.deployment,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            logger.error(f"Azure OpenAI request failed: {e}")
            raise MatcherError(f"AI matching request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        logger.debug("AI response received", content=content)

        if not content:
            raise MatcherError("AI matching returned an empty response")

        try:
            parsed = AiMatchResponse.model_validate_json(content)
        except ValidationError as e:
            logger.error("AI response did not match the expected contract", errors=e.errors())
            raise MatcherError(f"Malformed AI matching response: {e}") from e

        if parsed.projectKey is None:
            logger.warning("AI could not identify a project", invoice_number=invoice_number, reasoning=parsed.reasoning)
            return None

        known_keys = {p.netvisor_project_key for p in projects}
        if parsed.projectKey not in known_keys:
            logger.warning(
                "AI suggested a project outside the candidate catalog, ignoring",
                invoice_number=invoice_number,
                project_key=parsed.projectKey,
            )
            return None

        result = MatchResult(
            project_key=parsed.projectKey,
            confidence=parsed.confidence,
            reasoning=parsed.reasoning or "AI model identified the project",
        )

        logger.info(
            "AI match",
            invoice_number=invoice_number,
            project_key=result.project_key,
            confidence=result.confidence,
        )
        return result
