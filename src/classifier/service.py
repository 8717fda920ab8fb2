"""AI classification service: relevance, category and field extraction.

Every call goes through one provider, spaced by a fixed delay, and comes
back as an ``Outcome``. Provider exceptions and unusable responses become
failed outcomes; callers decide whether to fall back to a heuristic.
"""

import logging
import time
from typing import Callable

from src.classifier.base import LLMProvider, parse_json_response
from src.classifier.heuristics import CATEGORY_SLUGS, local_category, local_relevance
from src.classifier.outcome import Outcome, Verdict
from src.classifier.throttle import CallThrottle
from src.core.config import ClassifierConfig
from src.core.errors import ClassifierUnavailableError
from src.core.schemas import ExtractedFields

logger = logging.getLogger(__name__)

RELEVANCE_PROMPT = (
    "You are a job classifier for a REMOTE WORK job board focused on tech and "
    "digital professions.\n\n"
    "Determine if this job is RELEVANT for our platform.\n"
    "RELEVANT: software engineers, developers, designers, product managers, data "
    "scientists, DevOps, QA, marketing managers, content writers, translators, "
    "project managers, B2B/SaaS sales, HR/recruiters, customer support, finance, "
    "legal (at tech companies).\n"
    "NOT RELEVANT: drivers, nurses, K-12 teachers, warehouse workers, retail, food "
    "service, construction, manufacturing, physical labor, medical staff, "
    "receptionists, administrative assistants.\n\n"
    'Respond with ONLY one word: "RELEVANT" or "IRRELEVANT".\n'
    "Be strict: if unsure, answer IRRELEVANT."
)

CATEGORY_PROMPT = (
    "Classify this job into ONE category. Return ONLY the category slug, nothing else.\n\n"
    "Categories:\n"
    + "\n".join(f"- {slug}" for slug in CATEGORY_SLUGS)
    + "\n\nUse the job title first and the skills only to break ties."
)

EXTRACTION_PROMPT = (
    "You are a job data extractor. Extract structured data from a job posting.\n\n"
    "Return a JSON object with these fields:\n"
    "- title (string or null): the job title, Title Case, max 60 characters, "
    "no seniority words\n"
    "- company (string or null): the actual hiring company, never a generic term "
    'like "Recruitment" or "Remote Hiring"\n'
    "- is_remote (boolean): whether remote work is mentioned\n"
    "- location (string or null)\n"
    "- salary_min, salary_max (number or null), salary_currency (string or null)\n"
    "- skills (list[str]): technical skills mentioned\n"
    "- level (string or null): one of INTERN, ENTRY, JUNIOR, MID, SENIOR, LEAD, "
    "MANAGER, DIRECTOR, EXECUTIVE\n"
    "- clean_description (string or null): a clean rewrite with the sections "
    '"About the Role", "Key Responsibilities", "Requirements" and, only if '
    'benefits are stated, "Benefits". Use "• " for bullets, no emojis, no '
    "placeholders such as N/A\n"
    "- summary_bullets (list[str]): 5-7 key responsibilities, max 15 words each\n"
    "- requirement_bullets (list[str]): 5-7 requirements, max 15 words each\n"
    "- benefit_bullets (list[str]): benefits mentioned, empty if none\n\n"
    "Only extract what is explicitly stated. If nothing can be extracted, return {}.\n"
    "Return ONLY valid JSON, no markdown or explanation."
)


class AIClassifier:
    """Classifies postings through one LLM provider.

    Tracks consecutive call failures. With the heuristic fallback disabled,
    reaching ``max_consecutive_failures`` raises ``ClassifierUnavailableError``
    so the whole run fails instead of silently failing every item.
    """

    def __init__(
        self,
        provider: LLMProvider,
        config: ClassifierConfig,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._provider = provider
        self._config = config
        self._throttle = CallThrottle(config.call_delay_ms, sleep=sleep or time.sleep)
        self._consecutive_failures = 0

    @property
    def provider_id(self) -> str:
        return self._provider.provider_id

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def reset_failures(self) -> None:
        """Start a new run with a clean failure streak."""
        self._consecutive_failures = 0

    def _call(self, user_text: str, *, system: str, max_tokens: int, json_mode: bool = False) -> str:
        self._throttle.wait()
        return self._provider.complete(
            user_text,
            model=self._config.model,
            system=system,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )

    def _succeeded(self) -> None:
        self._consecutive_failures = 0

    def _failed(self, stage: str, error: Exception | str) -> Outcome:
        self._consecutive_failures += 1
        logger.warning(
            "Classifier %s failed via %s (%d in a row): %s",
            stage, self.provider_id, self._consecutive_failures, error,
        )
        if (
            not self._config.heuristic_fallback
            and self._consecutive_failures >= self._config.max_consecutive_failures
        ):
            msg = (
                f"Classifier {self.provider_id} failed {self._consecutive_failures} "
                f"times in a row; last error: {error}"
            )
            raise ClassifierUnavailableError(msg)
        return Outcome.fail(str(error))

    def check_relevance(self, title: str, skills: list[str] | None = None) -> Outcome[Verdict]:
        """Ask whether a title belongs on the board. Answer is a single word."""
        user_text = f"Job title: {title}"
        if skills:
            user_text += f"\nSkills: {', '.join(skills)}"
        try:
            raw = self._call(user_text, system=RELEVANCE_PROMPT, max_tokens=10)
        except Exception as e:
            return self._failed("relevance", e)

        answer = raw.strip().upper()
        if not answer:
            return self._failed("relevance", "empty response")
        self._succeeded()
        # "IRRELEVANT" contains "RELEVANT", so test the negative first.
        if "IRRELEVANT" in answer:
            return Outcome.ok(Verdict.IRRELEVANT)
        return Outcome.ok(Verdict.RELEVANT)

    def classify_category(self, title: str, skills: list[str] | None = None) -> Outcome[str]:
        """Ask for one of the category slugs. Anything else is a failure."""
        user_text = f"Title: {title}\nSkills: {', '.join(skills or []) or 'none specified'}"
        try:
            raw = self._call(user_text, system=CATEGORY_PROMPT, max_tokens=20)
        except Exception as e:
            return self._failed("category", e)

        slug = raw.strip().strip("`\"'.").lower()
        if slug not in CATEGORY_SLUGS:
            return self._failed("category", f"unknown category '{raw.strip()[:40]}'")
        self._succeeded()
        return Outcome.ok(slug)

    def extract_fields(self, text: str) -> Outcome[ExtractedFields]:
        """Extract structured fields from free text, truncated to the configured length."""
        content = text[: self._config.extraction_max_chars]
        if not content.strip():
            return Outcome.fail("nothing to extract from")
        try:
            raw = self._call(content, system=EXTRACTION_PROMPT, max_tokens=2000, json_mode=True)
            fields = ExtractedFields.model_validate(parse_json_response(raw))
        except Exception as e:
            return self._failed("extraction", e)
        self._succeeded()
        return Outcome.ok(fields)

    def relevance(self, title: str, skills: list[str] | None = None) -> Outcome[Verdict]:
        """Relevance with the keyword fallback applied when enabled."""
        outcome = self.check_relevance(title, skills)
        if self._config.heuristic_fallback:
            outcome = outcome.or_else(lambda: local_relevance(title))
        return outcome

    def category(self, title: str, skills: list[str] | None = None) -> Outcome[str]:
        """Category with the keyword fallback applied when enabled."""
        outcome = self.classify_category(title, skills)
        if self._config.heuristic_fallback:
            outcome = outcome.or_else(lambda: local_category(title))
        return outcome

    def log_usage(self) -> None:
        usage = self._provider.usage
        logger.info(
            "Classifier usage (%s): %d calls, %d input tokens, %d output tokens",
            self.provider_id, usage.calls, usage.input_tokens, usage.output_tokens,
        )
