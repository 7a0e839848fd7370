"""Unit tests for in-memory summary and audit stores, vector helpers and graph traversal."""

from datetime import datetime, timedelta

import pytest

from tiered_memory.models import AuditEntry, CategorySummary, EntityLink, MemoryRecord
from tiered_memory.storage.graph import build_adjacency, traverse_links
from tiered_memory.storage.vectors import cosine_similarity, is_zero_vector, usable_embedding


class TestSummaryStore:
    def test_upsert_replaces_per_category(self, summary_store, owner_id):
        summary_store.upsert_summary(
            CategorySummary(owner_id=owner_id, category="work_life", summary="Works at Google")
        )
        summary_store.upsert_summary(
            CategorySummary(owner_id=owner_id, category="work_life", summary="Works at Notion")
        )

        summaries = summary_store.list_summaries(owner_id)

        assert len(summaries) == 1
        assert summary_store.get_summary(owner_id, "work_life").summary == "Works at Notion"

    def test_list_filters_and_orders(self, summary_store, owner_id):
        now = datetime.now()
        summary_store.upsert_summary(
            CategorySummary(owner_id=owner_id, category="health", summary="Runs",
                            updated_at=now - timedelta(days=2))
        )
        summary_store.upsert_summary(
            CategorySummary(owner_id=owner_id, category="family", summary="Two kids",
                            updated_at=now)
        )
        summary_store.upsert_summary(
            CategorySummary(owner_id="other", category="family", summary="Other owner")
        )

        assert [s.category for s in summary_store.list_summaries(owner_id)] == ["family", "health"]
        assert [s.category for s in summary_store.list_summaries(owner_id, ["health"])] == [
            "health"
        ]

    def test_clear_owner(self, summary_store, owner_id):
        summary_store.upsert_summary(
            CategorySummary(owner_id=owner_id, category="health", summary="Runs")
        )

        assert summary_store.clear_owner(owner_id) == 1
        assert summary_store.get_summary(owner_id, "health") is None


class TestAuditStore:
    def test_entries_newest_first_with_filters(self, audit_store, owner_id):
        audit_store.append(AuditEntry(owner_id=owner_id, operation="ADD", record_id="r1"))
        audit_store.append(AuditEntry(owner_id=owner_id, operation="UPDATE", record_id="r1"))
        audit_store.append(
            AuditEntry(owner_id=owner_id, operation="CONSOLIDATE", record_id="r2",
                       merged_record_ids=["r1"])
        )
        audit_store.append(AuditEntry(owner_id="other", operation="ADD", record_id="r9"))

        entries = audit_store.list_entries(owner_id)
        assert [e.operation for e in entries] == ["CONSOLIDATE", "UPDATE", "ADD"]

        touching_r1 = audit_store.list_entries(owner_id, record_id="r1")
        assert len(touching_r1) == 3

        assert [e.operation for e in audit_store.list_entries(owner_id, operation="ADD")] == ["ADD"]
        assert len(audit_store.list_entries(owner_id, limit=1)) == 1
        assert audit_store.count(owner_id) == 3
        assert audit_store.count(owner_id, operation="UPDATE") == 1


class TestVectors:
    def test_cosine_similarity(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_cosine_similarity_length_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 0.0])

    def test_zero_vector_sentinel(self):
        assert is_zero_vector(None)
        assert is_zero_vector([])
        assert is_zero_vector([0.0, 0.0])
        assert not is_zero_vector([0.0, 0.1])
        assert usable_embedding([0.0, 0.0]) is None
        assert usable_embedding([0.5, 0.0]) == [0.5, 0.0]


def _record(record_id, name):
    return MemoryRecord(id=record_id, owner_id="u", name=name)


def _link(source, target, strength, directed=False, is_active=True, kind="knows"):
    return EntityLink(
        owner_id="u", source_id=source, target_id=target, relationship_type=kind,
        strength=strength, directed=directed, is_active=is_active,
    )


class TestGraphTraversal:
    def test_adjacency_skips_inactive_and_respects_direction(self):
        adjacency = build_adjacency(
            [_link("a", "b", 0.5), _link("b", "c", 0.5, directed=True), _link("a", "c", 0.9, is_active=False)]
        )

        assert [n for n, _ in adjacency["a"]] == ["b"]
        assert sorted(n for n, _ in adjacency["b"]) == ["a", "c"]
        assert "c" not in adjacency

    def test_weak_hops_are_not_followed(self):
        records = {rid: _record(rid, rid.upper()) for rid in "abc"}
        links = [_link("a", "b", 0.2), _link("a", "c", 0.6)]

        paths = traverse_links("a", links, records, max_depth=2, min_strength=0.3)

        assert [p.record_id for p in paths] == ["c"]

    def test_shallowest_then_strongest_path(self):
        records = {rid: _record(rid, rid.upper()) for rid in "abcd"}
        links = [
            _link("a", "b", 0.9, kind="sibling"),
            _link("a", "c", 0.4, kind="friend"),
            _link("b", "d", 0.5, kind="colleague"),
            _link("c", "d", 0.9, kind="neighbour"),
            _link("a", "d", 0.35, kind="met"),
        ]

        paths = traverse_links("a", links, records, max_depth=2, min_strength=0.3)
        by_id = {p.record_id: p for p in paths}

        # d is reachable directly, so it is reported at depth 1
        assert by_id["d"].depth == 1
        assert by_id["d"].relationship_types == ["met"]
        assert [p.record_id for p in paths] == ["b", "c", "d"]
        assert "a" not in by_id

    def test_strongest_path_wins_at_same_depth(self):
        records = {rid: _record(rid, rid.upper()) for rid in "abcd"}
        links = [
            _link("a", "b", 0.9),
            _link("a", "c", 0.4),
            _link("b", "d", 0.5),
            _link("c", "d", 0.9),
        ]

        paths = traverse_links("a", links, records, max_depth=2)
        d = next(p for p in paths if p.record_id == "d")

        assert d.depth == 2
        assert d.relationship_path == ["A", "B", "D"]
        assert d.total_strength == pytest.approx(0.45)

    def test_unknown_seed(self):
        assert traverse_links("missing", [], {}) == []
