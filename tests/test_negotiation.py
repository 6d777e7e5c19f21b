"""
Tests for the negotiation state machine and rule loading.
"""
import pytest

from concierge.data.negotiation_rules import InMemoryRuleStore, NegotiationRule, normalize_rule
from concierge.data.session_store import NegotiationState
from concierge.negotiation.engine import advance_negotiation, is_price_objection
from conftest import make_item

BOARD = make_item("board-1", price=500)


def run_objections(rule, product, count):
    state = None
    outcomes = []
    for _ in range(count):
        outcome = advance_negotiation(rule, product, state)
        outcomes.append(outcome)
        if outcome is not None:
            state = outcome.next_state
    return outcomes


class TestPriceObjection:
    """Objection phrase detection."""

    @pytest.mark.parametrize("message", [
        "That's too expensive",
        "Hmm, PRICEY",
        "any deal on this?",
        "can you do better on price",
    ])
    def test_detects(self, message):
        assert is_price_objection(message)

    @pytest.mark.parametrize("message", ["", "Looks great", "what sizes are there"])
    def test_ignores(self, message):
        assert not is_price_objection(message)

    def test_custom_phrases(self):
        assert is_price_objection("zu teuer", phrases=["zu teuer"])


class TestNegotiationSequence:
    """Stage progression."""

    def test_anchor_then_discounts_then_terminal(self):
        rule = NegotiationRule(anchor_copy="Hand-pressed core.", discount_steps=(7, 3))
        outcomes = run_objections(rule, BOARD, 4)

        assert outcomes[0].stage == "anchor"
        assert outcomes[0].segments[0].text == "Hand-pressed core."
        assert outcomes[1].stage == "discount"
        assert outcomes[1].segments[0].text == "I can take 7% off, bringing it to $465."
        assert outcomes[1].segments[0].meta == {"discount_pct": 7}
        assert outcomes[2].segments[0].text == "I can take 3% off, bringing it to $485."
        assert outcomes[2].offers == ["negotiation_discount_3"]
        assert outcomes[3] is None

    def test_terminal_after_steps_plus_one_from_discount(self):
        rule = NegotiationRule(discount_steps=(10, 5, 2))
        state = NegotiationState(product_id="board-1", stage="anchor")
        results = []
        for _ in range(len(rule.discount_steps) + 1):
            outcome = advance_negotiation(rule, BOARD, state)
            results.append(outcome)
            if outcome is not None:
                state = outcome.next_state
        assert all(r is not None for r in results[:-1])
        assert results[-1] is None

    def test_sweetener_between_anchor_and_discount(self):
        rule = NegotiationRule(sweetener_copy="Free wax kit included.", discount_steps=(5,))
        outcomes = run_objections(rule, BOARD, 4)
        assert [o.stage if o else None for o in outcomes] == ["anchor", "sweetener", "discount", None]
        assert outcomes[1].segments[0].text == "Free wax kit included."

    def test_states_only_move_forward(self):
        order = {"anchor": 0, "sweetener": 1, "discount": 2}
        rule = NegotiationRule(sweetener_copy="Free wax kit.", discount_steps=(7, 3))
        outcomes = [o for o in run_objections(rule, BOARD, 6) if o is not None]
        positions = [(order[o.stage], o.next_state.concession_index) for o in outcomes]
        assert positions == sorted(positions)

    def test_no_discount_steps_terminal_after_anchor(self):
        rule = NegotiationRule(anchor_copy="Worth it.")
        outcomes = run_objections(rule, BOARD, 2)
        assert outcomes[0].stage == "anchor"
        assert outcomes[1] is None

    def test_product_switch_restarts(self):
        rule = NegotiationRule(discount_steps=(7, 3))
        state = NegotiationState(product_id="board-1", stage="discount", concession_index=1)
        other = make_item("board-2", price=300)
        outcome = advance_negotiation(rule, other, state)
        assert outcome.stage == "anchor"
        assert outcome.next_state.product_id == "board-2"


class TestOfferCopy:
    """Segment details."""

    def test_anchor_fallback_mentions_price(self):
        outcome = advance_negotiation(NegotiationRule(), BOARD, None)
        assert "$500" in outcome.segments[0].text
        assert outcome.offers == ["negotiation_anchor"]

    def test_risk_copy_follows_discount(self):
        rule = NegotiationRule(discount_steps=(7,), risk_copy="30-day returns.")
        state = NegotiationState(product_id="board-1", stage="anchor")
        outcome = advance_negotiation(rule, BOARD, state)
        assert [s.style for s in outcome.segments] == ["discount", "risk"]

    def test_quick_replies_present(self):
        outcome = advance_negotiation(NegotiationRule(), BOARD, None)
        assert [q.id for q in outcome.quick_replies] == ["accept_offer", "show_cheaper", "no_thanks"]


class TestRules:
    """Rule normalisation and the in-memory store."""

    def test_normalize_drops_invalid_steps(self):
        rule = normalize_rule({"discount_steps": [7, "3", -1, 0, "x", True, None, float("inf")], "anchor_copy": ""})
        assert rule.discount_steps == (7.0, 3.0)
        assert rule.anchor_copy is None

    def test_normalize_empty(self):
        assert normalize_rule(None) is None
        assert normalize_rule({}) is None

    @pytest.mark.asyncio
    async def test_store_lookup(self):
        store = InMemoryRuleStore()
        store.add_rule("shop", "board-1", {"discount_steps": [5]})
        assert (await store.get_rule("shop", "board-1")).discount_steps == (5.0,)
        assert await store.get_rule("shop", "missing") is None

    @pytest.mark.asyncio
    async def test_yaml_store(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(
            "rules:\n"
            "  - store_id: shop\n"
            "    product_id: board-1\n"
            "    anchor_copy: Hand-built.\n"
            "    discount_steps: [7, 3]\n"
            "  - product_id: orphan\n"
        )
        store = InMemoryRuleStore.from_yaml(path)
        rule = await store.get_rule("shop", "board-1")
        assert rule.anchor_copy == "Hand-built."
        assert rule.discount_steps == (7.0, 3.0)
        assert len(store.rules) == 1

    def test_yaml_missing_file(self, tmp_path):
        assert InMemoryRuleStore.from_yaml(tmp_path / "nope.yaml").rules == {}
