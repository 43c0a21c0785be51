from app.services.text import extract_citation_mentions, jaccard, significant_words


def test_significant_words_drops_short_tokens() -> None:
    words = significant_words("Working memory in the classroom", "A guide for SENCOs")
    assert words == {"working", "memory", "classroom", "guide", "sencos"}


def test_jaccard_bounds() -> None:
    assert jaccard(set(), set()) == 0.0
    assert jaccard({"memory"}, {"memory"}) == 1.0
    assert jaccard({"memory", "attention"}, {"memory", "literacy"}) == 1 / 3


def test_extract_citation_mentions_finds_each_style() -> None:
    text = "As shown (Smith, 2020) and in [3, 4], see https://doi.org/10.1000/xyz123 for data."
    found = extract_citation_mentions(text)
    styles = [m["style"] for m in found]
    assert styles == ["apa", "ieee", "doi"]
    apa = found[0]
    assert apa["text"] == "(Smith, 2020)"
    assert text[apa["position"]["start"] : apa["position"]["end"]] == "(Smith, 2020)"
    assert extract_citation_mentions("") == []
