import pytest

from errors import UpstreamError
from text_processing import (
    DEFAULT_HASHTAGS,
    MAX_POST_LENGTH,
    collapse_full_stops,
    fit_post,
    format_long_form,
    format_summary,
    format_translation,
    split_hashtags,
)


@pytest.mark.parametrize("count", [1, 2, 3, 7])
def test_collapse_full_stops_reduces_runs_to_one(count):
    assert collapse_full_stops("終わり" + "。" * count) == "終わり。"


def test_collapse_full_stops_example():
    assert (
        collapse_full_stops("Hello world. This is a test。。。")
        == "Hello world. This is a test。"
    )


def test_collapse_full_stops_keeps_separate_stops():
    assert collapse_full_stops("一。二。。三") == "一。二。三"


def test_split_hashtags_on_delimiter():
    body, hashtags = split_hashtags("本文です。\n---\n#AI #YouTube")
    assert body == "本文です。"
    assert hashtags == "#AI #YouTube"


def test_split_hashtags_without_delimiter_uses_default():
    body, hashtags = split_hashtags("区切りのない本文")
    assert body == "区切りのない本文"
    assert hashtags == DEFAULT_HASHTAGS


def test_split_hashtags_with_empty_tail_uses_default():
    body, hashtags = split_hashtags("本文\n---\n")
    assert body == "本文"
    assert hashtags == DEFAULT_HASHTAGS


def test_fit_post_truncates_body_and_keeps_hashtags():
    body = "あ" * 290
    post = fit_post(body, "#a #b")

    assert len(post) == MAX_POST_LENGTH
    assert post == "あ" * 270 + "...\n\n#a #b"


def test_fit_post_leaves_short_posts_untouched():
    assert fit_post("短い本文", "#a") == "短い本文\n\n#a"


def test_fit_post_exactly_at_limit_is_not_truncated():
    body = "x" * (MAX_POST_LENGTH - 2 - 5)
    post = fit_post(body, "#a #b")
    assert len(post) == MAX_POST_LENGTH
    assert "..." not in post


def test_fit_post_with_huge_hashtags_drops_body():
    hashtags = "#" + "t" * 300
    assert fit_post("本文", hashtags) == "...\n\n" + hashtags


def test_format_summary_cleans_splits_and_fits():
    response = "  要点は三つです。。最後に結論。。。\n---\n#学習 #AI  "
    assert format_summary(response) == "要点は三つです。最後に結論。\n\n#学習 #AI"


def test_format_summary_empty_body_is_upstream_error():
    with pytest.raises(UpstreamError):
        format_summary("---\n#tag")


def test_format_long_form_returns_trimmed_text_verbatim():
    text = "\n# タイトル\n\n本文。。\n"
    assert format_long_form(text) == "# タイトル\n\n本文。。"


def test_format_long_form_empty_is_upstream_error():
    with pytest.raises(UpstreamError):
        format_long_form("   ")


def test_format_translation_collapses_full_stops():
    assert format_translation(" こんにちは。。\n") == "こんにちは。"
