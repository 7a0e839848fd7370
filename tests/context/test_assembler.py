"""
Tests for ContextAssembler.

Context is packed into three budgeted sections: summaries, entities and
query-specific memories.
"""

from datetime import datetime, timedelta

import pytest

from tiered_memory.config import ContextConfig, FusionConfig
from tiered_memory.context import (
    AssembledContext,
    ContextAssembler,
    ProfileContext,
    build_user_context_prompt,
    fit_to_budget,
    format_for_prompt,
    format_record,
)
from tiered_memory.context.assembler import format_item
from tiered_memory.models import CategorySummary
from tiered_memory.retrieval.hybrid import fuse_results
from tiered_memory.retrieval.models import RetrievedItem, TieredResult

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def sarah(make_record):
    return make_record(
        name="Sarah",
        summary="Lives in Leeds",
        memory_type="entity",
        entity_type="person",
        relationship="sister",
        context_notes=["Moved in March", "Started a new job", "Got a dog"],
        sentiment_average=0.6,
        updated_at=NOW,
    )


@pytest.fixture
def work_summary(owner_id):
    return CategorySummary(owner_id=owner_id, category="work_life", summary="Works at Notion.")


class TestFormatting:
    def test_format_record(self, sarah):
        assert format_record(sarah) == (
            "[Sarah] (person) | Lives in Leeds | Relationship: sister | "
            "Recent: Started a new job; Got a dog | Sentiment: positive"
        )

    def test_format_record_with_path(self, make_record):
        record = make_record(name="Tom", summary="Sarah's partner", sentiment_average=-0.5)

        text = format_record(record, ["Sarah", "Tom"])

        assert text == "[Tom] (fact) | Sarah's partner | Connected via: Sarah -> Tom | Sentiment: negative"

    def test_format_unhydrated_item(self):
        item = RetrievedItem(
            id="rec_1", name="Tom", record=None, retrieval_source="graph", retrieval_score=0.6
        )

        assert format_item(item) == "[Tom]"


class TestFitToBudget:
    def test_stops_at_budget(self):
        lines, used = fit_to_budget(["a" * 20, "b" * 20, "c" * 20], 10, str)

        assert lines == ["a" * 20, "b" * 20]
        assert used == 10

    def test_truncates_overflowing_item(self):
        lines, used = fit_to_budget(["x" * 200, "y" * 400, "z" * 4], 100, str, min_truncation_tokens=10)

        assert len(lines) == 2
        assert lines[1] == "y" * 197 + "..."
        assert used == 100

    def test_drops_item_when_little_budget_remains(self):
        lines, used = fit_to_budget(["x" * 200, "y" * 400], 100, str, min_truncation_tokens=50)

        assert lines == ["x" * 200]
        assert used == 50


class TestAssemble:
    def test_sections_in_order(self, sarah, work_summary, make_record):
        tom = make_record(name="Tom", summary="Sarah's partner", updated_at=NOW)
        memory = RetrievedItem(
            id=tom.id, name="Tom", record=tom, retrieval_source="graph", retrieval_score=0.6,
            combined_score=0.3, relationship_path=["Sarah", "Tom"],
        )
        assembler = ContextAssembler()

        context = assembler.assemble([work_summary], [sarah], [memory], max_tokens=1000, now=NOW)

        assert [s.type for s in context.sections] == ["summaries", "entities", "relevant_memories"]
        assert context.items_included == {"summaries": 1, "entities": 1, "relevant_memories": 1}
        assert context.total_tokens == sum(s.tokens for s in context.sections)
        assert context.sections[0].content == ["[WORK LIFE]: Works at Notion."]

    def test_entities_ranked_by_score(self, make_record):
        minor = make_record(name="Minor", importance_score=0.1, updated_at=NOW - timedelta(days=60))
        major = make_record(name="Major", importance_score=1.0, mention_count=8, updated_at=NOW)
        assembler = ContextAssembler()

        context = assembler.assemble(entities=[minor, major], now=NOW)

        assert context.sections[0].content[0].startswith("[Major]")

    def test_memories_ranked_by_relevance(self, make_record):
        records = [make_record(name=name, updated_at=NOW) for name in ("Low", "High")]
        items = [
            RetrievedItem(id=r.id, name=r.name, record=r, retrieval_source="direct",
                          retrieval_score=1.0, combined_score=score)
            for r, score in zip(records, (0.2, 0.9))
        ]
        assembler = ContextAssembler()

        context = assembler.assemble(memories=items, now=NOW)

        assert context.sections[0].content[0].startswith("[High]")

    def test_zero_weight_hit_keeps_zero_relevance(self, make_record):
        record = make_record(name="Vector only", updated_at=NOW)
        fused = fuse_results(
            [], [RetrievedItem(id=record.id, name=record.name, record=record,
                               retrieval_source="vector", retrieval_score=0.9)],
            [], FusionConfig.graph_direct(),
        )
        assembler = ContextAssembler()

        assert fused[0].combined_score == 0.0
        assert assembler.score_item(fused[0], now=NOW) == pytest.approx(
            assembler.score_record(record, combined_score=0.0, now=NOW)
        )
        assert assembler.score_item(fused[0], now=NOW) < assembler.score_record(
            record, retrieval_score=0.9, now=NOW
        )

    def test_section_budget_share(self, make_record):
        records = [make_record(name=f"Person {i}", summary="x" * 400) for i in range(10)]
        assembler = ContextAssembler(ContextConfig(max_tokens=1000))

        context = assembler.assemble(entities=records, now=NOW)

        assert context.sections[0].tokens <= 400
        assert context.items_included["entities"] < 10

    def test_empty_context(self):
        context = ContextAssembler().assemble()

        assert context.is_empty
        assert format_for_prompt(context) == ""
        assert build_user_context_prompt(context) == "<user_context>\n</user_context>"

    def test_assemble_from_result(self, work_summary):
        result = TieredResult(tier_used=1, summaries=[work_summary])

        context = ContextAssembler().assemble_from_result(result, max_tokens=500)

        assert context.items_included["summaries"] == 1
        assert context.items_included["entities"] == 0


def test_assemble_quick_context(make_record):
    records = [
        make_record(name="Minor", importance_score=0.1, updated_at=NOW),
        make_record(name="Major", importance_score=0.9, updated_at=NOW),
    ]

    text, tokens, count = ContextAssembler().assemble_quick_context(records, now=NOW)

    assert text.splitlines()[0].startswith("[Major]")
    assert count == 2
    assert tokens > 0
    assert ContextAssembler().assemble_quick_context([]) == ("", 0, 0)


def test_format_for_prompt(work_summary, sarah):
    context = ContextAssembler().assemble([work_summary], [sarah], now=NOW)

    text = format_for_prompt(context)

    assert text.startswith("## What I know about you:\n[WORK LIFE]: Works at Notion.\n\n")
    assert "## People and things in your world:\n[Sarah] (person)" in text
    assert not text.endswith("\n")


def test_build_user_context_prompt_with_profile(work_summary):
    context = ContextAssembler().assemble([work_summary], now=NOW)
    profile = ProfileContext(name="Sam", life_seasons=["new parent"], focus_areas=["health", "career"])

    prompt = build_user_context_prompt(context, profile)

    assert prompt == (
        "<user_context>\n"
        "User's name: Sam\n"
        "Life season: new parent\n"
        "Currently focused on: health, career\n"
        "\n"
        "## What I know about you:\n"
        "[WORK LIFE]: Works at Notion.\n"
        "</user_context>"
    )


def test_assembled_context_defaults():
    context = AssembledContext()

    assert context.items_included == {"summaries": 0, "entities": 0, "relevant_memories": 0}
