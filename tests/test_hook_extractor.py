from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from processor.hook_extractor import extract_hook, extract_hooks, group_hooks, normalize_hook
from processor.models import Creative


def test_first_sentence_is_the_hook():
    assert extract_hook("Tired of cold coffee? Our mug keeps it hot for 6 hours.") == "Tired of cold coffee?"


def test_decimal_point_does_not_split_sentence():
    assert extract_hook("Now 3.5x faster delivery! Order today.") == "Now 3.5x faster delivery!"


def test_short_sentence_falls_back_to_first_line():
    assert extract_hook("Hi.\nSecond line here") == "Hi."
    assert extract_hook("New drop\nShop the collection now") == "New drop"


def test_long_text_without_breaks_is_truncated():
    text = "word " * 60
    hook = extract_hook(text)
    assert len(hook) <= 100
    assert text.startswith(hook)


def test_empty_body():
    assert extract_hook("   ") == ""
    assert extract_hook(None) == ""


def test_normalize_strips_emoji_and_punctuation():
    assert normalize_hook("🔥 SALE!!  50% OFF, today only 🔥") == "sale 50 off today only"


def test_group_hooks_merges_normalized_duplicates():
    groups = group_hooks([
        ("a", "Free shipping today!", 100),
        ("b", "FREE shipping today", 300),
        ("c", "Brand new look.", 50),
        ("d", "ok!", 999),
    ])

    assert [g.normalized_text for g in groups] == ["free shipping today", "brand new look"]
    top = groups[0]
    assert top.hook_text == "Free shipping today!"
    assert top.frequency == 2
    assert top.total_reach == 400
    assert top.avg_reach_per_creative == pytest.approx(200.0)
    assert top.creative_ids == ["a", "b"]


def test_extract_hooks_from_creatives():
    creatives = [
        Creative(creative_id="1", body="Meet the lamp everyone talks about. Now in 3 colours.", total_reach=10),
        Creative(creative_id="2", body="Meet the lamp everyone talks about! Limited stock.", total_reach=30),
        Creative(creative_id="3", body=None, total_reach=500),
    ]

    groups = extract_hooks(creatives)

    assert len(groups) == 1
    assert groups[0].creative_ids == ["1", "2"]
    assert groups[0].total_reach == 40


def test_no_creatives_no_hooks():
    assert extract_hooks([]) == []
