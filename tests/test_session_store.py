"""
Tests for session snapshots and the in-memory collaborators.
"""
import pytest

from concierge.data.catalog import InMemoryCatalog
from concierge.data.retrieval import CandidateItem
from concierge.data.session_store import (
    DialogueMemory,
    InMemorySessionStore,
    NegotiationState,
    PendingClarifier,
    SessionSnapshot,
)
from conftest import make_item


class TestSessionStore:

    @pytest.mark.asyncio
    async def test_unknown_session_is_default(self):
        store = InMemorySessionStore()
        snapshot = await store.load("nobody")
        assert snapshot == SessionSnapshot()
        assert "nobody" not in store

    @pytest.mark.asyncio
    async def test_save_and_load(self):
        store = InMemorySessionStore()
        snapshot = SessionSnapshot(
            memory=DialogueMemory(opener_history=("Alright.",)),
            negotiation=NegotiationState(product_id="p1", stage="discount", concession_index=2),
            turn_count=4,
            active_filters={"style": "park"},
            pending_clarifier=PendingClarifier(facet="vendor", options=("Acme", "Burton"), asked_at_turn=3),
            zero_result_streak=1,
        )
        await store.save("s1", snapshot)
        assert await store.load("s1") == snapshot

        store.reset("s1")
        assert await store.load("s1") == SessionSnapshot()

    def test_unknown_stage_falls_back_to_anchor(self):
        state = NegotiationState.from_dict({"product_id": "p1", "stage": "haggle", "concession_index": -3})
        assert state.stage == "anchor"
        assert state.concession_index == 0

    def test_missing_product_means_no_state(self):
        assert NegotiationState.from_dict({"stage": "discount"}) is None


class TestCandidateItem:

    def test_from_loose_payload(self):
        item = CandidateItem.from_dict({
            "id": 42,
            "title": "Board",
            "price": "129.5",
            "tags": ["park", None, ""],
            "product_type": "snowboard",
            "attributes": {"style": "park", "flex": None},
        })
        assert item.id == "42"
        assert item.price == 129.5
        assert item.tags == ("park",)
        assert item.category == "snowboard"
        assert dict(item.attributes) == {"style": "park"}

    def test_bad_price(self):
        assert CandidateItem.from_dict({"id": "a", "price": "call us"}).price is None


class TestInMemoryCatalog:

    @pytest.mark.asyncio
    async def test_filters_canonically(self):
        catalog = InMemoryCatalog(items=[
            make_item("a", style="All-Mountain"),
            make_item("b", style="park"),
        ])
        result = await catalog.search("", (), {"style": "all mountain"}, 10)
        assert [i.id for i in result.items] == ["a"]

    @pytest.mark.asyncio
    async def test_multi_value_filter(self):
        catalog = InMemoryCatalog(items=[
            make_item("a", vendor="Acme"),
            make_item("b", vendor="Burton"),
            make_item("c", vendor="Capita"),
        ])
        result = await catalog.search("", (), {"vendor": "Acme, Capita"}, 10)
        assert [i.id for i in result.items] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_empty_result_keeps_facet_values(self):
        catalog = InMemoryCatalog(items=[make_item("a", price=30, vendor="Acme")])
        result = await catalog.search("", (), {"vendor": "Nobody"}, 10)
        assert result.is_empty
        assert result.facet_values["vendor"] == frozenset({"Acme"})
        assert result.facet_values["price_bucket"] == frozenset({"Under $50"})

    @pytest.mark.asyncio
    async def test_query_overlap_ranks_first(self):
        catalog = InMemoryCatalog(items=[
            make_item("a", tags=["waterproof"]),
            make_item("b", tags=["powder", "wide"]),
        ])
        result = await catalog.search("wide powder board", (), {}, 10)
        assert [i.id for i in result.items] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_limit(self):
        catalog = InMemoryCatalog(items=[make_item(str(i)) for i in range(5)])
        result = await catalog.search("", (), {}, 2)
        assert len(result) == 2
        assert catalog.calls == [{}]
