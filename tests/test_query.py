"""Unit tests for condition building, formula compilation and evaluation."""
import pytest

from app.store.query import (
    UnsafeQueryValue,
    all_of,
    any_of,
    blank,
    eq,
    evaluate,
    not_,
    quote_string,
    record_id,
    to_formula,
)


class TestFormulaCompilation:

    def test_equality(self):
        assert to_formula(eq("Swiper", "recAbc")) == '{Swiper} = "recAbc"'

    def test_unicode_field_names(self):
        assert to_formula(eq("Name 名子", "Stella")) == '{Name 名子} = "Stella"'

    def test_pair_query(self):
        condition = any_of(
            all_of(eq("Swiper", "a"), eq("Swiped", "b")),
            all_of(eq("Swiper", "b"), eq("Swiped", "a")),
        )
        assert to_formula(condition) == (
            'OR(AND({Swiper} = "a", {Swiped} = "b"), AND({Swiper} = "b", {Swiped} = "a"))'
        )

    def test_record_id_and_not(self):
        condition = all_of(record_id("rec123"), not_(blank("Status")))
        assert to_formula(condition) == 'AND(RECORD_ID() = "rec123", NOT({Status} = BLANK()))'

    def test_literals(self):
        assert to_formula(eq("Active", True)) == "{Active} = TRUE()"
        assert to_formula(eq("Rating", 5)) == "{Rating} = 5"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ('O"Brien', '"O\\"Brien"'),
            ("back\\slash", '"back\\\\slash"'),
            ("it's", '"it\'s"'),
            ("line\nbreak", '"line\\nbreak"'),
        ],
    )
    def test_string_escaping(self, raw, expected):
        assert quote_string(raw) == expected

    def test_injection_attempt_stays_inside_literal(self):
        formula = to_formula(eq("Cozy Connect Gmail", '") , TRUE(), ("'))
        assert formula == '{Cozy Connect Gmail} = "\\") , TRUE(), (\\""'


class TestAllowlists:

    @pytest.mark.parametrize("value", ["", "rec 1", "rec'1", "a" * 65, 'x") OR ("'])
    def test_bad_record_ids(self, value):
        with pytest.raises(UnsafeQueryValue):
            record_id(value)

    @pytest.mark.parametrize("name", ["", "Bad}Field", "Bad{Field", "multi\nline"])
    def test_bad_field_names(self, name):
        with pytest.raises(UnsafeQueryValue):
            eq(name, "x")

    def test_empty_groups_rejected(self):
        with pytest.raises(ValueError):
            any_of()
        with pytest.raises(ValueError):
            all_of()


class TestEvaluate:

    def test_matches_formula_semantics(self):
        condition = all_of(
            record_id("rec1"),
            any_of(eq("Swiper", "p1"), eq("Swiped", "p1")),
        )
        assert evaluate(condition, "rec1", {"Swiper": "p2", "Swiped": "p1"}) is True
        assert evaluate(condition, "rec2", {"Swiper": "p2", "Swiped": "p1"}) is False
        assert evaluate(condition, "rec1", {"Swiper": "p2", "Swiped": "p3"}) is False

    @pytest.mark.parametrize("value", [None, "", []])
    def test_blank_values(self, value):
        assert evaluate(blank("Email"), "rec1", {"Email": value}) is True

    def test_missing_field_is_blank(self):
        assert evaluate(blank("Email"), "rec1", {}) is True
        assert evaluate(not_(blank("Email")), "rec1", {"Email": "a@b.c"}) is True
