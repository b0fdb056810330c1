# assessment/prompts.py

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from assessment.models import MaturityTier, Profile, Scores
from assessment.questions import ASSESSMENT_DIMENSIONS, dimension_titles
from assessment.utils import Utils

MAX_FIELD_LENGTH = 1000
DEFAULT_INDUSTRY = "Technology"
ANALYSIS_TOOL_NAME = "provide_data_maturity_analysis"

SYSTEM_PROMPT = """You are a senior data strategy consultant specializing in DAMA frameworks and organizational data maturity assessments. Provide executive-level analysis using DAMA knowledge areas.

## Analysis Guidelines:
- Ground recommendations in DAMA frameworks (Governance, Architecture, Modeling, Storage, Security, Integration, Content, Master Data, BI, Metadata, Quality)
- Consider organizational context ({company_size} company, {job_title} perspective)
- Provide specific next steps with realistic timelines
- Include both quick wins and strategic initiatives
- Address compliance and regulatory considerations for {industry} industry
- Include industry-specific insights for {industry} sector
- Reference current data trends (AI/ML, cloud-native, data mesh, etc.)
- Focus on practical implementation guidance
- Keep content professional but accessible

{delivery_instruction}"""

STRUCTURED_DELIVERY = "You will be asked to call a function to provide your analysis in a structured format."
TEXT_DELIVERY = "You will be asked to answer with a single JSON object and nothing else."

USER_PROMPT = """Analyze this data maturity assessment and generate a comprehensive diagnostic report:

## Assessment Data:
- Company: {company_name}, {company_size} employees, {industry} industry
- Role: {job_title}
- Maturity Level: {tier_name} ({overall}/5.0)
- Dimension Scores:
{dimension_lines}

## Requirements:
- Ground analysis in DAMA's 11 Knowledge Areas (Governance, Architecture, Modeling, Storage, Security, Integration, Content, Master Data, BI, Metadata, Quality)
- Reference {industry} industry specifics and modern trends (AI/ML, cloud-native, data mesh)
- Use specific, actionable language with concrete DAMA practices
- Apply agile data strategy principles (iterative, value-driven, cross-functional)
- Provide 3-5 items for each SWOT category
- Include 3-4 strategic recommendations with clear titles and detailed content
- Provide 3 implementation phases (0-3 months, 3-6 months, 6+ months) with specific actions

{closing_instruction}"""

STRUCTURED_CLOSING = "Please call the function to provide your structured analysis."

TEXT_CLOSING = """Respond with ONLY a JSON object (no markdown, no commentary) that satisfies this JSON schema:
```
{schema_json}
```"""


def _titled_items_schema(noun: str, description: str) -> Dict[str, Any]:
    return {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": f"Title of the {noun}"},
                "content": {"type": "string", "description": f"Detailed content of the {noun}"},
            },
            "required": ["title", "content"],
        },
        "description": description,
    }


def _string_list_schema(description: str) -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


ANALYSIS_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "summary": {
            "type": "string",
            "description": "Executive summary of the data maturity assessment",
        },
        "peerComparison": {
            "type": "string",
            "description": "Comparison with industry peers and benchmarks",
        },
        "swot": {
            "type": "object",
            "properties": {
                "strengths": _string_list_schema("List of organizational data strengths"),
                "weaknesses": _string_list_schema("List of data-related weaknesses to address"),
                "opportunities": _string_list_schema("List of opportunities for data improvement"),
                "threats": _string_list_schema("List of potential threats or risks"),
            },
            "required": ["strengths", "weaknesses", "opportunities", "threats"],
        },
        "recommendations": _titled_items_schema("recommendation", "List of strategic recommendations"),
        "nextSteps": _titled_items_schema(
            "next step or phase", "List of recommended next steps or implementation phases"
        ),
    },
    "required": ["summary", "peerComparison", "swot", "recommendations", "nextSteps"],
}

ANALYSIS_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": ANALYSIS_TOOL_NAME,
        "description": "Provide comprehensive data maturity analysis with structured output",
        "parameters": ANALYSIS_PARAMETERS,
    },
}


@dataclass(frozen=True)
class PromptBundle:
    system_message: str
    user_message: str
    output_schema: Dict[str, Any]
    structured: bool = True


class PromptBuilder(Utils):
    """
    Builds the system/user instructions and the output schema for one analysis request.
    Every free-text profile field is trimmed and capped before it reaches the prompt.
    """

    def __init__(self, dimension_definitions=None):
        self.dimension_definitions = ASSESSMENT_DIMENSIONS if dimension_definitions is None else dimension_definitions

    @staticmethod
    def sanitize(value: Any) -> str:
        if not isinstance(value, str):
            return ""
        return value.strip()[:MAX_FIELD_LENGTH]

    def sanitize_profile(self, profile: Profile | Mapping[str, Any]) -> Dict[str, str]:
        if isinstance(profile, Profile):
            raw = profile.model_dump(by_alias=True)
        else:
            raw = dict(profile or {})
        return {
            "companySize": self.sanitize(raw.get("companySize")),
            "industry": self.sanitize(raw.get("industry") or DEFAULT_INDUSTRY),
            "jobTitle": self.sanitize(raw.get("jobTitle")),
            "companyName": self.sanitize(raw.get("companyName")),
        }

    def _dimension_lines(self, scores: Scores) -> str:
        lines = []
        for dim_id, title in dimension_titles(self.dimension_definitions).items():
            value = scores.dimensions.get(dim_id)
            shown = f"{value:.1f}" if isinstance(value, (int, float)) else "N/A"
            lines.append(f"  • {title}: {shown}/5.0")
        return "\n".join(lines)

    def build_prompt(
        self,
        profile: Profile | Mapping[str, Any],
        scores: Scores,
        tier: MaturityTier,
        *,
        structured: bool = True,
    ) -> PromptBundle:
        clean = self.sanitize_profile(profile)

        system_message = self.unsafe_string_format(
            SYSTEM_PROMPT,
            company_size=clean["companySize"],
            job_title=clean["jobTitle"],
            industry=clean["industry"],
            delivery_instruction=STRUCTURED_DELIVERY if structured else TEXT_DELIVERY,
        )

        if structured:
            closing = STRUCTURED_CLOSING
        else:
            closing = self.unsafe_string_format(
                TEXT_CLOSING, schema_json=json.dumps(ANALYSIS_PARAMETERS, indent=2)
            )

        user_message = self.unsafe_string_format(
            USER_PROMPT,
            company_name=clean["companyName"] or "Undisclosed company",
            company_size=clean["companySize"],
            industry=clean["industry"],
            job_title=clean["jobTitle"],
            tier_name=self.sanitize(tier.name),
            overall=f"{scores.overall:.1f}",
            dimension_lines=self._dimension_lines(scores),
            closing_instruction=closing,
        )

        return PromptBundle(
            system_message=system_message,
            user_message=user_message,
            output_schema=ANALYSIS_TOOL,
            structured=structured,
        )
