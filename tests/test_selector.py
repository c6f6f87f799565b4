from conftest import make_scored
from selector import select_top


def test_filters_sorts_and_caps():
    scored = [make_scored(f"Article {i:02d}", score) for i, score in enumerate([9, 5, 6, 10, 7, 8, 6, 9, 7, 3])]

    selected = select_top(scored)

    assert [a.score for a in selected] == [10, 9, 9, 8, 7, 7, 6]
    assert all(a.score >= 6 for a in selected)


def test_ties_keep_scoring_order():
    scored = [make_scored("first", 7), make_scored("second", 9), make_scored("third", 7)]

    selected = select_top(scored)

    assert [a.title for a in selected] == ["second", "first", "third"]


def test_threshold_is_inclusive():
    assert [a.score for a in select_top([make_scored("a", 6), make_scored("b", 5)])] == [6]


def test_nothing_above_threshold():
    assert select_top([make_scored("a", 5), make_scored("b", 1)]) == []


def test_custom_threshold_and_limit():
    scored = [make_scored(str(i), 10 - i) for i in range(10)]
    assert [a.score for a in select_top(scored, threshold=8, limit=2)] == [10, 9]
