import re

from errors import UpstreamError

MAX_POST_LENGTH = 280
SEPARATOR = "\n\n"
ELLIPSIS = "..."
HASHTAG_DELIMITER = "---"
DEFAULT_HASHTAGS = "#YouTube #要約"

_FULL_STOP_RUN = re.compile("。+")


def collapse_full_stops(text: str) -> str:
    """Collapse runs of the Japanese full stop into a single one."""
    return _FULL_STOP_RUN.sub("。", text)


def split_hashtags(response: str) -> tuple[str, str]:
    """
    Split a model response into (body, hashtags) on the first `---`.

    Without a delimiter, or with nothing after it, the whole response is the
    body and DEFAULT_HASHTAGS is used.
    """
    parts = [part.strip() for part in response.split(HASHTAG_DELIMITER)]
    body = parts[0]
    hashtags = parts[1] if len(parts) > 1 else ""
    return body, hashtags or DEFAULT_HASHTAGS


def fit_post(body: str, hashtags: str, max_length: int = MAX_POST_LENGTH) -> str:
    """Join body and hashtags, truncating the body so the post fits max_length."""
    total_length = len(body) + len(SEPARATOR) + len(hashtags)
    if total_length > max_length:
        max_body_length = max(
            0, max_length - len(SEPARATOR) - len(hashtags) - len(ELLIPSIS)
        )
        body = body[:max_body_length] + ELLIPSIS
    return f"{body}{SEPARATOR}{hashtags}"


def format_summary(response: str) -> str:
    body, hashtags = split_hashtags(response.strip())
    if not body:
        raise UpstreamError("要約の生成に失敗しました。")
    return fit_post(collapse_full_stops(body), hashtags)


def format_long_form(response: str) -> str:
    content = response.strip()
    if not content:
        raise UpstreamError("コンテンツの生成に失敗しました。")
    return content


def format_translation(response: str) -> str:
    translated = response.strip()
    if not translated:
        raise UpstreamError("翻訳結果が空です。")
    return collapse_full_stops(translated)
