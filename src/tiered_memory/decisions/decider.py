"""
Language-model memory decider.

Asks the model, in JSON mode, which single lifecycle operation to apply to a
candidate fact given the most similar existing records.
"""

import logging
from typing import List, Protocol

from casual_llm import LLMProvider
from pydantic import ValidationError as PydanticValidationError

from tiered_memory.decisions.models import MemoryDecision, SimilarRecord
from tiered_memory.errors import UpstreamLanguageModelError
from tiered_memory.intelligence.llm import generate_json
from tiered_memory.intelligence.prompts import MEMORY_DECISION_SYSTEM_PROMPT
from tiered_memory.models import CandidateFact

logger = logging.getLogger(__name__)


class MemoryDecider(Protocol):
    """
    Protocol for components that choose a lifecycle operation.

    Implementations raise UpstreamLanguageModelError when they cannot
    produce a valid decision; the DecisionEngine turns that into NOOP.
    """

    async def decide(
        self, candidate: CandidateFact, similar: List[SimilarRecord]
    ) -> MemoryDecision:
        ...


def build_decision_prompt(candidate: CandidateFact, similar: List[SimilarRecord]) -> str:
    """Render the candidate and its similar records for the decision model."""
    lines = [
        "## NEW INFORMATION TO PROCESS",
        "",
        f'**Content**: "{candidate.content}"',
        f"**Type**: {candidate.memory_type}",
        f"**Entity**: {candidate.name}",
        f"**Sentiment**: {candidate.sentiment if candidate.sentiment is not None else 'neutral'}",
        f"**Importance**: {candidate.importance}",
        f"**Confidence**: {candidate.confidence}",
    ]
    if candidate.is_historical:
        lines.append("**Historical**: Yes (past information)")
    if candidate.effective_from:
        lines.append(f"**Starts**: {candidate.effective_from.isoformat()}")
    if candidate.expires_at:
        lines.append(f"**Expires**: {candidate.expires_at.isoformat()}")
    if candidate.recurrence_pattern:
        lines.append(f"**Recurrence**: {candidate.recurrence_pattern.model_dump_json()}")
    if candidate.sensitivity_level != "normal":
        lines.append(f"**Sensitivity**: {candidate.sensitivity_level}")

    lines += ["", "## EXISTING SIMILAR MEMORIES", ""]
    for i, item in enumerate(similar, start=1):
        record = item.record
        lines += [
            f"### Memory {i}",
            f"- **ID**: {record.id}",
            f'- **Content**: "{record.summary or record.name}"',
            f"- **Type**: {record.memory_type}",
            f"- **Importance**: {record.importance}",
            f"- **Last Updated**: {record.updated_at.isoformat()}",
            f"- **Similarity**: {item.similarity_score * 100:.1f}%",
        ]
        if record.is_historical:
            lines.append("- **Historical**: Yes")
        lines.append("")

    lines += [
        "## YOUR TASK",
        "",
        "Analyze the new information against the existing memories and decide the "
        "appropriate operation. Respond with exactly ONE operation as JSON.",
    ]
    return "\n".join(lines)


class LLMMemoryDecider:
    """
    Chooses ADD / UPDATE / DELETE / NOOP with a language model.

    The answer must be a JSON object matching MemoryDecision; UPDATE and
    DELETE must reference one of the similar records offered.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        model_name: str = "",
        temperature: float = 0.1,
        max_tokens: int = 500,
    ):
        """
        Initialize the decider.

        Args:
            llm_provider: LLM provider instance (OpenAI, Ollama, etc.)
            model_name: Name of the model (for logging)
            temperature: Sampling temperature for decisions
            max_tokens: Maximum answer length
        """
        self.llm_provider = llm_provider
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.llm_call_count = 0
        self.llm_failure_count = 0

        logger.info(f"LLMMemoryDecider initialized: model={model_name or 'default'}")

    async def decide(
        self, candidate: CandidateFact, similar: List[SimilarRecord]
    ) -> MemoryDecision:
        """
        Ask the model for a decision.

        Raises:
            UpstreamLanguageModelError: If the call fails or the answer is invalid
        """
        self.llm_call_count += 1
        try:
            data = await generate_json(
                self.llm_provider,
                build_decision_prompt(candidate, similar),
                system_prompt=MEMORY_DECISION_SYSTEM_PROMPT,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )

            try:
                decision = MemoryDecision.model_validate(data)
            except PydanticValidationError as e:
                raise UpstreamLanguageModelError(f"Invalid decision from model: {e}") from e

            known_ids = {item.record.id for item in similar}
            if decision.operation in ("UPDATE", "DELETE") and decision.memory_id not in known_ids:
                raise UpstreamLanguageModelError(
                    f"Decision references unknown memory {decision.memory_id}"
                )
        except UpstreamLanguageModelError:
            self.llm_failure_count += 1
            raise

        logger.debug(
            f"Decision for '{candidate.name}': {decision.operation} "
            f"({decision.merge_strategy or '-'}) {decision.reasoning}"
        )
        return decision

    def get_metrics(self) -> dict:
        """
        Get metrics about decision calls.

        Returns:
            Dictionary with call and failure counts
        """
        return {
            "decider_llm_call_count": self.llm_call_count,
            "decider_llm_failure_count": self.llm_failure_count,
        }
