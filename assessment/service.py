# assessment/service.py

import logging
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from assessment.errors import ServiceUnavailable
from assessment.inflight import SubmissionGuard
from assessment.llm_client import AnalysisClient
from assessment.models import Analysis, MaturityTier, NormalizedAnalysis, Profile, Scores, StoredResult
from assessment.normalizer import ResponseNormalizer
from assessment.prompts import PromptBuilder
from assessment.questions import ASSESSMENT_DIMENSIONS
from assessment.result_store import ResultStore
from assessment.scorer import score, tier_for

logger = logging.getLogger("maturity_backend")


class AssessmentService:
    """
    Scorer -> PromptBuilder -> AnalysisClient -> ResponseNormalizer -> ResultStore.

    Every stage either returns its value or raises a typed AssessmentError;
    nothing is swallowed here.
    """

    def __init__(
        self,
        *,
        analysis_client: AnalysisClient | None,
        result_store: ResultStore,
        prompt_builder: PromptBuilder | None = None,
        normalizer: ResponseNormalizer | None = None,
        submission_guard: SubmissionGuard | None = None,
        dimension_definitions=None,
        structured_output: bool = True,
    ):
        self.analysis_client = analysis_client
        self.result_store = result_store
        self.dimension_definitions = ASSESSMENT_DIMENSIONS if dimension_definitions is None else dimension_definitions
        self.prompt_builder = prompt_builder or PromptBuilder(self.dimension_definitions)
        self.normalizer = normalizer or ResponseNormalizer()
        self.submission_guard = submission_guard or SubmissionGuard()
        self.structured_output = structured_output

    # -----------------------
    # Pipeline stages
    # -----------------------

    def generate_analysis(self, profile: Profile, scores: Scores, tier: MaturityTier) -> NormalizedAnalysis:
        if self.analysis_client is None:
            raise ServiceUnavailable("No analysis client configured")

        prompt = self.prompt_builder.build_prompt(profile, scores, tier, structured=self.structured_output)
        raw = self.analysis_client.request_analysis(prompt)
        normalized = self.normalizer.normalize(raw)
        logger.info(f"generate_analysis: analysis ready (fidelity={normalized.fidelity.value})")
        return normalized

    def save_results(self, profile: Profile, scores: Scores, analysis: Analysis) -> StoredResult:
        return self.result_store.put(profile, scores, analysis)

    def get_results(self, result_id: str) -> StoredResult:
        return self.result_store.get(result_id)

    def submit_assessment(self, session_key: str, profile: Profile, answers: Mapping[str, Any]) -> StoredResult:
        """
        The whole single-flight pipeline for one session.
        """
        with self.submission_guard.hold(session_key):
            scores = score(answers, self.dimension_definitions)
            tier = tier_for(scores.overall)
            logger.info(f"submit_assessment: scored {session_key} overall={scores.overall:.2f} tier={tier.name}")
            normalized = self.generate_analysis(profile, scores, tier)
            return self.save_results(profile, scores, normalized.analysis)

    # -----------------------
    # Wire helpers
    # -----------------------

    def parse_results_payload(self, results: Dict[str, Any]) -> tuple[Scores, Analysis]:
        """
        Validates the {scores, analysis, maturityTier?} block sent by save-results.
        The analysis gets the same per-field defaults as a model payload.
        Raises ValueError on a malformed block.
        """
        if not isinstance(results, dict) or "scores" not in results or not isinstance(results.get("analysis"), dict):
            raise ValueError("results must contain scores and analysis")
        try:
            scores = Scores.model_validate(results["scores"])
        except ValidationError as e:
            raise ValueError(f"Invalid scores: {e}") from e
        return scores, self.normalizer.from_payload(results["analysis"])
