from unittest.mock import Mock

import pytest

from app.models import ResponseRule
from app.services.trigger_index import (
    MATCH_CONTEXTUAL,
    MATCH_EXACT,
    MATCH_SMART,
    MATCH_WILDCARD,
    Rule,
    TriggerIndex,
    build_snapshot,
    match_contextual,
    score_trigger,
)


def _rule(rule_id, triggers, responses=("reply",), **kwargs):
    return Rule(id=rule_id, triggers=tuple(triggers), responses=tuple(responses), **kwargs)


def _index(rules, **kwargs):
    index = TriggerIndex(Mock(), **kwargs)
    index.replace(rules)
    return index


class TestRuleFromModel:
    def test_converts_row(self):
        row = ResponseRule(
            id=3,
            trigger=["سلام"],
            response=["درود", "سلام عزیزم"],
            match_type="exact",
            exclude_words=["Bad", " "],
            context_required="",
            sets_state="awaiting_name",
        )

        rule = Rule.from_model(row)

        assert rule.triggers == ("سلام",)
        assert rule.responses == ("درود", "سلام عزیزم")
        assert rule.match_type == MATCH_EXACT
        assert rule.required_context is None
        assert rule.sets_context == "awaiting_name"
        assert rule.exclude_words == frozenset({"bad"})

    def test_scalar_trigger_becomes_list(self):
        row = ResponseRule(id=1, trigger="hi", response="hello", match_type=None, exclude_words=None)

        rule = Rule.from_model(row)

        assert rule.triggers == ("hi",)
        assert rule.match_type == MATCH_SMART

    def test_pick_response_is_one_of_the_responses(self):
        rule = _rule(1, ["x"], responses=("a", "b", "c"))
        assert rule.pick_response() in {"a", "b", "c"}


class TestBuildSnapshot:
    def test_splits_exact_and_smart(self):
        exact = _rule(1, ["Hello!", "Hi"], match_type=MATCH_EXACT)
        smart = _rule(2, ["how are you"])

        snapshot = build_snapshot([exact, smart])

        assert set(snapshot.exact) == {"hello", "hi"}
        assert snapshot.smart == (smart,)

    def test_contextual_rules_are_left_out(self):
        contextual = _rule(1, ["yes"], required_context="awaiting_yes_no")

        snapshot = build_snapshot([contextual])

        assert dict(snapshot.exact) == {}
        assert snapshot.smart == ()

    def test_later_rule_overwrites_exact_key(self):
        first = _rule(1, ["hi"], match_type=MATCH_EXACT)
        second = _rule(2, ["HI!"], match_type=MATCH_EXACT)

        snapshot = build_snapshot([first, second])

        assert snapshot.exact["hi"] is second

    def test_punctuation_only_trigger_is_skipped(self):
        rule = _rule(1, ["!!", "hey"], match_type=MATCH_EXACT)

        snapshot = build_snapshot([rule])

        assert set(snapshot.exact) == {"hey"}
        assert _index([rule]).match("؟") is None

    def test_snapshot_is_read_only(self):
        snapshot = build_snapshot([_rule(1, ["hi"], match_type=MATCH_EXACT)])
        with pytest.raises(TypeError):
            snapshot.exact["new"] = None


class TestScoreTrigger:
    def test_full_overlap(self):
        assert score_trigger("ابی کجایی", {"ابی", "کجایی", "جان"}) == 1.0

    def test_partial_overlap(self):
        assert score_trigger("a b c d", {"a", "b", "c"}) == 0.75

    def test_empty_trigger(self):
        assert score_trigger(" ?! ", {"a"}) is None

    def test_score_bounded(self):
        for words in [set(), {"a"}, {"a", "b"}, {"a", "b", "x", "y"}]:
            score = score_trigger("a b", words)
            assert 0.0 <= score <= 1.0

    def test_adding_words_never_lowers_score(self):
        base = {"a"}
        more = base | {"b", "zzz"}
        assert score_trigger("a b c", more) >= score_trigger("a b c", base)


class TestExactMatch:
    def test_case_and_punctuation_insensitive(self):
        rule = _rule(1, ["Hello, Ebi!"], match_type=MATCH_EXACT)
        index = _index([rule])

        for text in ["hello ebi", "HELLO  EBI", "hello, ebi?", " Hello Ebi!! "]:
            match = index.match(text)
            assert match is not None
            assert match.kind == MATCH_EXACT
            assert match.rule is rule

    def test_exact_requires_whole_message(self):
        index = _index([_rule(1, ["hello"], match_type=MATCH_EXACT)])
        assert index.match_exact("hello there") is None

    def test_exact_beats_smart(self):
        exact = _rule(1, ["hello"], match_type=MATCH_EXACT)
        smart = _rule(2, ["hello"])
        index = _index([smart, exact])

        assert index.match("hello").rule is exact


class TestSmartMatch:
    def test_match_above_threshold(self):
        rule = _rule(1, ["ابی کجایی"])
        index = _index([rule])

        match = index.match_smart("ابی جان کجایی؟")

        assert match.kind == MATCH_SMART
        assert match.score == 1.0
        assert match.is_perfect is True
        assert match.extra_words == ["جان"]

    def test_below_threshold_is_no_match(self):
        index = _index([_rule(1, ["اهنگ جدید داری"])])
        assert index.match_smart("اهنگ جدید") is None

    def test_threshold_is_inclusive(self):
        index = _index([_rule(1, ["a b c d"])])
        assert index.match_smart("a b c").score == 0.75

    def test_two_of_four_words_falls_through(self):
        index = _index([_rule(1, ["a b c d"])])

        assert score_trigger("a b c d", {"a", "b"}) == 0.5
        assert index.match_smart("a b") is None
        assert index.match("a b") is None

    def test_state_boost_can_lift_over_threshold(self):
        rule = _rule(1, ["اهنگ جدید داری"], sets_context="awaiting_song")
        index = _index([rule])

        match = index.match_smart("اهنگ جدید")

        assert match is not None
        assert match.score == pytest.approx(2 / 3 + 0.1)
        assert match.raw_score == pytest.approx(2 / 3)
        assert match.is_perfect is False

    def test_boost_prefers_rule_that_opens_context(self):
        plain = _rule(1, ["favorite song"])
        follow_up = _rule(2, ["favorite song"], sets_context="awaiting_song")
        index = _index([plain, follow_up])

        assert index.match_smart("favorite song").rule is follow_up

    def test_tie_keeps_first_rule(self):
        first = _rule(1, ["good morning"])
        second = _rule(2, ["good morning"])
        index = _index([first, second])

        assert index.match_smart("good morning").rule is first

    def test_exclude_word_skips_rule(self):
        excluded = _rule(1, ["ebi concert"], exclude_words=frozenset({"ticket"}))
        fallback = _rule(2, ["ebi concert ticket"])
        index = _index([excluded, fallback])

        match = index.match_smart("ebi concert ticket")

        assert match.rule is fallback

    def test_exclude_phrase_is_substring(self):
        rule = _rule(1, ["ebi concert"], exclude_words=frozenset({"no way"}))
        index = _index([rule])

        assert index.match_smart("ebi concert no way") is None

    def test_custom_threshold(self):
        index = _index([_rule(1, ["a b"])], score_threshold=1.0)
        assert index.match_smart("a") is None
        assert index.match_smart("a b") is not None

    def test_empty_catalog(self):
        assert _index([]).match("anything") is None


class TestContextualMatch:
    def test_substring_match(self):
        yes = _rule(1, ["آره"], required_context="q")
        no = _rule(2, ["نه"], required_context="q")

        match = match_contextual("آره حتما", [yes, no])

        assert match.rule is yes
        assert match.kind == MATCH_CONTEXTUAL

    def test_wildcard_is_last_resort(self):
        wildcard = _rule(1, ["*"], required_context="q")
        specific = _rule(2, ["blue"], required_context="q")

        assert match_contextual("I like blue", [wildcard, specific]).rule is specific

        fallback = match_contextual("I like red", [wildcard, specific])
        assert fallback.rule is wildcard
        assert fallback.kind == MATCH_WILDCARD

    def test_no_match(self):
        assert match_contextual("maybe", [_rule(1, ["yes"], required_context="q")]) is None


class TestLoadFromDatabase:
    def test_load_and_match_context(self, run_db):
        async def scenario(session_factory):
            async with session_factory() as db:
                db.add_all(
                    [
                        ResponseRule(trigger=["Hi"], response=["hello"], match_type="exact", exclude_words=[]),
                        ResponseRule(
                            trigger=["اسمت چیه"],
                            response=["تو اسمت چیه؟"],
                            exclude_words=[],
                            sets_state="awaiting_name",
                        ),
                        ResponseRule(
                            trigger=["*"],
                            response=["اسم قشنگیه"],
                            exclude_words=[],
                            context_required="awaiting_name",
                        ),
                    ]
                )
                await db.commit()

            index = TriggerIndex(session_factory)
            snapshot = await index.load()
            contextual = await index.match_context("awaiting_name", "مریم")
            return snapshot, index.match("hi!"), contextual

        snapshot, exact_match, contextual = run_db(scenario)

        assert list(snapshot.exact) == ["hi"]
        assert len(snapshot.smart) == 1
        assert exact_match.rule.responses == ("hello",)
        assert contextual.kind == MATCH_WILDCARD
        assert contextual.rule.responses == ("اسم قشنگیه",)

    def test_reload_swaps_snapshot(self, run_db):
        async def scenario(session_factory):
            index = TriggerIndex(session_factory)
            before = await index.load()
            async with session_factory() as db:
                db.add(ResponseRule(trigger=["new"], response=["fresh"], match_type="exact", exclude_words=[]))
                await db.commit()
            after = await index.reload()
            return before, after, index.snapshot

        before, after, current = run_db(scenario)

        assert dict(before.exact) == {}
        assert "new" in after.exact
        assert current is after
