import pytest

from postqueue.services.post_client import (
    ELLIPSIS,
    LINK_PLACEHOLDER_WIDTH,
    PART_SEPARATOR,
    TWEET_MAX_LENGTH,
    PostCompositionError,
    compose_post_text,
    normalize_hashtags,
    weighted_length,
)


def test_short_post_keeps_title_link_and_hashtags() -> None:
    text = compose_post_text("RBI keeps repo rate unchanged", "https://example.in/rbi", "economy, #RBI")

    assert text == "RBI keeps repo rate unchanged\n\nhttps://example.in/rbi\n\n#economy #RBI"


def test_long_title_is_truncated_to_fit_with_link() -> None:
    link = "https://www.newsonair.gov.in/" + "a" * 120
    title = "word " * 100

    text = compose_post_text(title, link, ["news", "india"])

    assert weighted_length(text) <= TWEET_MAX_LENGTH
    title_part = text.split(PART_SEPARATOR)[0]
    assert title_part.endswith(ELLIPSIS)
    assert text.split(PART_SEPARATOR)[1] == link


def test_truncation_uses_the_whole_budget() -> None:
    text = compose_post_text("x" * 400, "https://example.in/a")

    reserved = len(PART_SEPARATOR) + LINK_PLACEHOLDER_WIDTH
    assert text.split(PART_SEPARATOR)[0] == "x" * (TWEET_MAX_LENGTH - reserved - len(ELLIPSIS)) + ELLIPSIS
    assert weighted_length(text) == TWEET_MAX_LENGTH


def test_title_that_fits_exactly_is_not_truncated() -> None:
    title = "y" * TWEET_MAX_LENGTH
    assert compose_post_text(title) == title


def test_blank_title_is_rejected() -> None:
    with pytest.raises(PostCompositionError):
        compose_post_text("   ", "https://example.in")


def test_hashtags_that_leave_no_room_are_rejected() -> None:
    with pytest.raises(PostCompositionError):
        compose_post_text("title", None, "#" + "t" * 300)


def test_normalize_hashtags_dedupes_and_prefixes() -> None:
    assert normalize_hashtags("news  #news,sports") == ["#news", "#sports"]
    assert normalize_hashtags(None) == []
