"""
Basic Memory Flow Example

Demonstrates storing candidate facts, watching the decision engine choose
ADD / UPDATE / NOOP, and building prompt context for a query.
"""

import asyncio
import logging

from casual_llm import ModelConfig, Provider, create_provider

from tiered_memory import CandidateFact, MemoryService, build_user_context_prompt, load_config
from tiered_memory.context import ProfileContext
from tiered_memory.embeddings import OpenAIEmbedding
from tiered_memory.storage import InMemoryAuditStore, InMemoryRecordStore, InMemorySummaryStore

OWNER = "user_123"


async def main():
    logging.basicConfig(level=logging.INFO)
    print("=== Basic Memory Flow Example ===\n")

    llm_provider = create_provider(ModelConfig(
        name="qwen2.5:7b-instruct",
        provider=Provider.OLLAMA,
        base_url="http://localhost:11434"
    ))

    service = MemoryService(
        record_store=InMemoryRecordStore(),
        summary_store=InMemorySummaryStore(),
        audit_store=InMemoryAuditStore(),
        llm_provider=llm_provider,
        embedding=OpenAIEmbedding(),
        config=load_config(),
    )

    facts = [
        CandidateFact(name="Job", content="Works at Google as a search engineer", importance="high"),
        CandidateFact(name="Sarah", content="Sarah is my sister and lives in Leeds",
                      memory_type="entity", entity_type="person", relationship="sister"),
        CandidateFact(name="Job", content="Started a new job at Notion", importance="high"),
        CandidateFact(name="Wifi", content="The cabin wifi password is hunter2"),
    ]

    results = await service.process_facts(OWNER, facts)
    for fact, result in zip(facts, results):
        strategy = f" ({result.strategy})" if result.strategy else ""
        print(f"{fact.content!r} -> {result.operation}{strategy}")

    await service.evolve_summaries(OWNER)

    context = await service.build_context(OWNER, "How is Sarah doing?")
    profile = ProfileContext(name="Sam", focus_areas=["career"])
    print()
    print(build_user_context_prompt(context, profile))

    print("\nHistory:")
    for entry in service.get_history(OWNER):
        print(f"  {entry.operation}: {entry.new_content or entry.candidate_content}")


if __name__ == "__main__":
    asyncio.run(main())
