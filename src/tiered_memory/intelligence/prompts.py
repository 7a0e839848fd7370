"""
Prompts for language-model components.

These prompts are used by the memory decider, the consolidation merge step,
category summary evolution and the summary sufficiency check.
"""

# Memory lifecycle decision (JSON mode)
MEMORY_DECISION_SYSTEM_PROMPT = """You are a memory manager for a personal assistant.

Your job is to decide how to handle a new piece of information by comparing it to existing memories.

## DECISION FRAMEWORK

### ADD - Use when:
- No existing memory covers the same thing
- Information is genuinely new and worth remembering

### UPDATE - Use when a similar memory exists:
- **replace**: Direct correction or complete change
  - Name misspelling: "Mike" → "Michael"
  - Job change: "works at Google" → "works at Notion"
- **append**: Adding detail to an existing memory
  - "likes coffee" → "likes coffee, especially cold brew"
- **supersede**: Life change that makes old info historical (not wrong, just past)
  - "lives in NYC" + "moved to SF" → NYC becomes history, SF is current

### DELETE - Use when:
- New information directly contradicts an existing memory
- The user explicitly says "forget", "don't remember", "delete this"
- hard_delete=true ONLY for explicit user deletion requests
- hard_delete=false for contradictions (archives instead of deleting)

### NOOP - Use when:
- Information already exists in equivalent form
- Information is trivial (greetings, acknowledgments)
- It is general knowledge not specific to the user

## RULES

1. NEVER store passwords, SSNs, card numbers or API keys
2. Prefer UPDATE with supersede over DELETE
3. "used to work at" is historical, not a deletion
4. Critical and high importance memories need stronger evidence to change

## OUTPUT

Respond with a single JSON object:
{
  "operation": "ADD" | "UPDATE" | "DELETE" | "NOOP",
  "reasoning": "why",
  "content": "content to store (ADD)",
  "memory_type": "memory type (ADD, optional)",
  "memory_id": "ID of the existing memory (UPDATE, DELETE)",
  "new_content": "updated content (UPDATE)",
  "merge_strategy": "replace" | "append" | "supersede" (UPDATE),
  "hard_delete": true | false (DELETE),
  "existing_memory_id": "ID of the equivalent memory (NOOP, optional)"
}"""


# Consolidation merge step (text mode)
MERGE_SUMMARIES_PROMPT = """Merge these two memory entries about the same thing into one concise summary:

Memory 1: "{keeper_summary}"
Memory 2: "{merged_summary}"

Write a single merged summary that preserves all unique information. Keep it concise (1-2 sentences).
Write ONLY the merged summary, no preamble."""


# Category summary evolution (text mode)
EVOLVE_SUMMARY_PROMPT = """You are maintaining a personal knowledge summary for the user's {category} category.

{existing_block}NEW INFORMATION:
{new_information}

YOUR TASK:
Write a new, cohesive prose summary (2-4 sentences) that incorporates ALL relevant information.
- If new info CONTRADICTS existing info, use the new info (it's more recent)
- If new info ADDS TO existing info, integrate it smoothly
- Focus on what matters most to this person
- Don't just list facts

Write ONLY the new summary, no preamble:"""


# Tier 1 sufficiency check (JSON mode)
SUMMARY_SUFFICIENCY_PROMPT = """Given this user query and available context summaries, determine if the summaries provide ENOUGH information to give a helpful response.

USER QUERY: "{query}"

AVAILABLE SUMMARIES:
{summaries}

Answer with JSON:
{{
  "sufficient": true/false,
  "confidence": 0.0-1.0,
  "reason": "brief explanation",
  "needs_specifics": ["specific", "things", "needed"] or []
}}

Be conservative - if the query asks about specific people, dates, or details not in the summaries, mark it as insufficient."""
