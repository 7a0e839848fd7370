"""
Decision engine for candidate facts.

Turns one candidate fact plus its most similar existing records into exactly
one lifecycle operation, then hands it to the operation executor.

Decision order:
1. Secret guard: secrets are redacted; a candidate made only of secrets is dropped
2. Confidence floor: low-confidence candidates are dropped
3. No similar records: ADD without consulting the model
4. Otherwise the MemoryDecider chooses; decider failure degrades to NOOP
"""

import logging
import time
from typing import TYPE_CHECKING, List, Optional, Tuple

from tiered_memory.config import DecisionConfig
from tiered_memory.decisions.decider import MemoryDecider
from tiered_memory.decisions.models import MemoryDecision, SimilarRecord
from tiered_memory.errors import UpstreamLanguageModelError
from tiered_memory.execution.models import MemoryOperationResult
from tiered_memory.intelligence.secrets import redact_secrets
from tiered_memory.models import CandidateFact

if TYPE_CHECKING:
    from tiered_memory.execution.operation_executor import MemoryOperationExecutor

logger = logging.getLogger(__name__)


class DecisionEngine:
    """
    Chooses and applies ADD / UPDATE / DELETE / NOOP for candidate facts.

    Example:
        >>> engine = DecisionEngine(LLMMemoryDecider(llm), executor)
        >>> result = await engine.process("user-1", candidate, similar)
        >>> result.operation
        'UPDATE'
    """

    def __init__(
        self,
        decider: MemoryDecider,
        executor: Optional["MemoryOperationExecutor"] = None,
        config: Optional[DecisionConfig] = None,
    ):
        """
        Initialize the decision engine.

        Args:
            decider: Component that chooses an operation when similar records exist
            executor: Applies decisions (required for process())
            config: Decision configuration
        """
        self.decider = decider
        self.executor = executor
        self.config = config or DecisionConfig()
        self.operation_counts = {"ADD": 0, "UPDATE": 0, "DELETE": 0, "NOOP": 0}
        self.decider_failure_count = 0

        logger.info(
            f"DecisionEngine initialized (confidence_floor={self.config.confidence_floor})"
        )

    def redact_candidate(self, candidate: CandidateFact) -> Tuple[Optional[CandidateFact], List[str]]:
        """
        Remove secrets from a candidate.

        Returns:
            Tuple of (redacted candidate or None when it is nothing but
            secrets, kinds of secret found)
        """
        content = redact_secrets(candidate.content)
        if content.only_secrets:
            return None, content.kinds

        updates = {}
        kinds = list(content.kinds)
        if content.redacted:
            updates["content"] = content.text

        if candidate.context:
            context = redact_secrets(candidate.context)
            if context.redacted:
                updates["context"] = context.text
                kinds.extend(k for k in context.kinds if k not in kinds)

        if not updates:
            return candidate, kinds
        return candidate.model_copy(update=updates), kinds

    def _redact_decision(self, decision: MemoryDecision) -> MemoryDecision:
        """Model-chosen content passes through the same guard as the candidate."""
        updates = {}
        for field_name in ("content", "new_content"):
            value = getattr(decision, field_name)
            if not value:
                continue
            redaction = redact_secrets(value)
            if redaction.only_secrets:
                return MemoryDecision.noop("Model-chosen content contained only secrets")
            if redaction.redacted:
                updates[field_name] = redaction.text

        if not updates:
            return decision
        return decision.model_copy(update=updates)

    async def decide(
        self, candidate: CandidateFact, similar: List[SimilarRecord]
    ) -> MemoryDecision:
        """
        Choose one operation for a candidate fact.

        Args:
            candidate: The proposed fact
            similar: Existing records ordered by similarity

        Returns:
            MemoryDecision (never raises for decider failures)
        """
        redacted, kinds = self.redact_candidate(candidate)
        if redacted is None:
            logger.info(f"Dropping candidate '{candidate.name}': content is only secrets {kinds}")
            return MemoryDecision.noop("Candidate contains only sensitive secrets")

        if redacted.confidence < self.config.confidence_floor:
            logger.debug(
                f"Dropping candidate '{redacted.name}': confidence {redacted.confidence} "
                f"< {self.config.confidence_floor}"
            )
            return MemoryDecision.noop(
                f"Confidence {redacted.confidence:.2f} below floor {self.config.confidence_floor:.2f}"
            )

        if not similar:
            return MemoryDecision(
                operation="ADD",
                reasoning="No similar memories exist",
                content=redacted.content,
                memory_type=redacted.memory_type,
            )

        try:
            decision = await self.decider.decide(redacted, similar)
        except UpstreamLanguageModelError as e:
            self.decider_failure_count += 1
            logger.warning(f"Decider failed for '{redacted.name}', falling back to NOOP: {e}")
            return MemoryDecision.noop(f"Decision unavailable: {e}")

        return self._redact_decision(decision)

    async def process(
        self,
        owner_id: str,
        candidate: CandidateFact,
        similar: List[SimilarRecord],
        candidate_embedding: Optional[List[float]] = None,
        job_id: Optional[str] = None,
    ) -> MemoryOperationResult:
        """
        Decide and apply one operation.

        Args:
            owner_id: Owner of the records
            candidate: The proposed fact
            similar: Existing records ordered by similarity
            candidate_embedding: Embedding of the candidate content, if computed
            job_id: Optional batch job identifier for the audit log

        Returns:
            MemoryOperationResult

        Raises:
            NotFoundError, VersionConflictError, PersistenceError: From the executor
        """
        if self.executor is None:
            raise RuntimeError("DecisionEngine.process requires an executor")

        started_at = time.perf_counter()
        decision = await self.decide(candidate, similar)

        redacted, kinds = self.redact_candidate(candidate)
        if redacted is None:
            redacted = candidate.model_copy(update={"content": "[REDACTED]", "context": None})
            candidate_embedding = None
        elif kinds:
            candidate_embedding = None

        result = await self.executor.execute(
            owner_id,
            redacted,
            decision,
            similar,
            candidate_embedding=candidate_embedding,
            job_id=job_id,
            started_at=started_at,
        )
        if kinds:
            result.metadata["redacted"] = kinds

        self.operation_counts[result.operation] += 1
        return result

    def get_metrics(self) -> dict:
        """
        Get metrics about decisions.

        Returns:
            Dictionary with per-operation counts and decider failures
        """
        metrics = {f"decision_{op.lower()}_count": count for op, count in self.operation_counts.items()}
        metrics["decision_decider_failure_count"] = self.decider_failure_count
        return metrics
