import asyncio
import html
import logging
import re
import threading
import xml.etree.ElementTree as ET

import requests
from cachetools import TTLCache, cached
from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
    YouTubeTranscriptApi,
)

from errors import NotFoundError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)


class TranscriptNotFoundError(NotFoundError):
    """Raised when a requested transcript cannot be found for a video."""

    def __init__(self, video_id: str, message: str = "この動画には字幕がありません。"):
        self.video_id = video_id
        super().__init__(message)


class TranscriptUnavailableError(UpstreamError):
    """Raised when the captions source answers with something unusable."""


# --- Configuration ---
TRANSCRIPT_API_URL = "https://youtubetranscript.com/"
TRANSCRIPT_HTTP_TIMEOUT = 30  # seconds
REQUEST_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "User-Agent": "Mozilla/5.0 (compatible; TranscriptFetcher/1.0)",
}

TRANSCRIPT_CACHE_MAX_SIZE = 128
TRANSCRIPT_CACHE_TTL_SECONDS = 60 * 60  # an hour

VIDEO_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{11}$")
VIDEO_URL_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/)([^&?/]+)"),
    re.compile(r"youtube\.com/shorts/([^&?/]+)"),
]

_TEXT_ELEMENT = re.compile(r"<text[^>]*>(.*?)</text>", re.DOTALL)
_TAG = re.compile(r"<[^>]*>")

transcript_cache = TTLCache(
    maxsize=TRANSCRIPT_CACHE_MAX_SIZE, ttl=TRANSCRIPT_CACHE_TTL_SECONDS
)
# Fetches run in worker threads, so cache access is serialized
transcript_cache_lock = threading.Lock()


# --- Video id helpers ---


def extract_video_id(url_or_id: str) -> str | None:
    """Pull the video id out of a watch, short, embed or shorts URL."""
    candidate = (url_or_id or "").strip()
    if VIDEO_ID_PATTERN.match(candidate):
        return candidate
    for pattern in VIDEO_URL_PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1)
    return None


def validate_video_id(video_id: str | None) -> str:
    if not video_id:
        raise ValidationError("YouTube動画IDが指定されていません。")
    if not VIDEO_ID_PATTERN.match(video_id):
        raise ValidationError("無効な動画IDです。")
    return video_id


# --- Caption text normalization ---


def _join_lines(lines) -> str:
    return "\n".join(line for line in (raw.strip() for raw in lines) if line)


def format_xml_captions(xml_data: str) -> str:
    """
    Extract the caption lines of a `<transcript><text>...</text></transcript>`
    document. Falls back to a regex scan when the document does not parse.
    """
    try:
        root = ET.fromstring(xml_data)
        # Caption bodies are often escaped twice, so unescape what the parser left
        lines = [html.unescape(elem.text or "") for elem in root.iter("text")]
        text = _join_lines(lines)
        if text:
            return text
        logger.warning("No caption text found in parsed XML, falling back to regex")
    except ET.ParseError as e:
        logger.warning(f"XML parse failed ({e}), falling back to regex")

    lines = [html.unescape(_TAG.sub("", m)) for m in _TEXT_ELEMENT.findall(xml_data)]
    return _join_lines(lines)


def format_plain_captions(text_data: str) -> str:
    return _join_lines(_TAG.sub("", text_data).split("\n"))


def format_caption_text(caption_data: str) -> str:
    if "<transcript" in caption_data:
        return format_xml_captions(caption_data) or caption_data
    return format_plain_captions(caption_data)


def _normalize_transcript_field(transcript) -> str:
    # The endpoint has returned both a flat string and a list of segments
    if isinstance(transcript, list):
        return _join_lines(
            segment.get("text", "") if isinstance(segment, dict) else str(segment)
            for segment in transcript
        )
    return format_caption_text(str(transcript))


# --- Scraping endpoint ---


def _request_transcript(video_id: str, language_code: str | None = None):
    params = {"server_vid2": video_id}
    if language_code:
        params["lang"] = language_code

    try:
        response = requests.get(
            TRANSCRIPT_API_URL,
            params=params,
            headers=REQUEST_HEADERS,
            timeout=TRANSCRIPT_HTTP_TIMEOUT,
        )
    except requests.RequestException as e:
        raise TranscriptUnavailableError(f"Failed to get transcript: {e}") from e

    if not response.ok:
        raise TranscriptUnavailableError(
            f"Failed to get transcript: {response.status_code} {response.reason}"
        )
    return response


def _match_language(languages: list, language_code: str) -> dict | None:
    wanted = language_code.lower()
    for language in languages:
        if not isinstance(language, dict):
            continue
        code = str(language.get("code", ""))
        name = str(language.get("name", ""))
        if code == language_code or wanted in name.lower():
            return language
    return None


def _fetch_language_track(video_id: str, code: str):
    try:
        response = _request_transcript(video_id, code)
        data = response.json()
    except (UpstreamError, ValueError) as e:
        logger.warning(f"Could not fetch '{code}' captions for {video_id}: {e}")
        return None
    if isinstance(data, dict) and data.get("transcript"):
        return data["transcript"]
    return None


def fetch_from_scraper(video_id: str, language_code: str = "") -> str:
    """Fetch captions from the scraping endpoint, sniffing the response format."""
    response = _request_transcript(video_id)
    content_type = response.headers.get("Content-Type", "")
    body = response.text

    if (
        "application/xml" in content_type
        or "text/xml" in content_type
        or ("text/plain" in content_type and "<transcript" in body)
    ):
        logger.info(f"Received XML captions for {video_id}")
        return format_xml_captions(body)

    try:
        data = response.json()
    except ValueError as e:
        logger.warning(f"JSON parse failed for {video_id} ({e}), treating body as text")
        return format_caption_text(body)

    if not isinstance(data, dict) or not data.get("transcript"):
        raise TranscriptNotFoundError(video_id)

    transcript = data["transcript"]
    languages = data.get("languages")
    if language_code and languages:
        matching = _match_language(languages, language_code)
        if matching:
            transcript = _fetch_language_track(video_id, matching["code"]) or transcript
        else:
            logger.warning(
                f"Captions for language '{language_code}' not found for {video_id}, using default"
            )

    return _normalize_transcript_field(transcript)


# --- youtube-transcript-api fallback ---


def _select_transcript(transcript_list, language_code: str, video_id: str):
    if language_code:
        try:
            return transcript_list.find_transcript([language_code])
        except NoTranscriptFound:
            logger.warning(
                f"Captions for language '{language_code}' not found for {video_id}, using default"
            )
    transcript = next(iter(transcript_list), None)
    if transcript is None:
        raise TranscriptNotFoundError(video_id)
    return transcript


def fetch_from_library(video_id: str, language_code: str = "") -> str:
    ytt = YouTubeTranscriptApi()
    try:
        transcript_list = ytt.list(video_id)
        transcript = _select_transcript(transcript_list, language_code, video_id)
        fetched = transcript.fetch()
    except VideoUnavailable as e:
        raise TranscriptNotFoundError(video_id, "動画が見つかりません。") from e
    except (TranscriptsDisabled, NoTranscriptFound) as e:
        raise TranscriptNotFoundError(video_id) from e
    except (CouldNotRetrieveTranscript, requests.RequestException) as e:
        raise TranscriptUnavailableError(f"Failed to get transcript: {e}") from e

    return _join_lines(snippet.text for snippet in fetched)


# --- Public API Function ---


def fetch_transcript(video_id: str, language_code: str = "") -> str:
    """
    Fetches the caption text for a given YouTube video ID.

    Args:
        video_id (str): The ID of the YouTube video.
        language_code (str): Preferred caption language. Falls back to the
                             default track when the video does not have it.

    Returns:
        str: Caption lines joined with newlines.

    Raises:
        TranscriptNotFoundError: the video has no captions.
        UpstreamError: both caption sources failed.
    """
    try:
        text = fetch_from_scraper(video_id, language_code)
    except TranscriptNotFoundError:
        raise
    except UpstreamError as e:
        logger.warning(
            f"Scraping endpoint failed for {video_id} ({e}), trying youtube-transcript-api"
        )
        text = fetch_from_library(video_id, language_code)

    if not text.strip():
        raise TranscriptNotFoundError(video_id)
    return text


@cached(cache=transcript_cache, lock=transcript_cache_lock)
def fetch_cached_transcript(video_id: str, language_code: str = "") -> str:
    return fetch_transcript(video_id, language_code)


async def fetch_transcript_with_retries(
    video_id, language_code="", total_attempts=2, initial_delay_seconds=1
):
    """
    Fetches caption text with retries.

    Args:
        video_id (str): The YouTube video ID.
        language_code (str): Preferred caption language.
        total_attempts (int): Total number of attempts (e.g., 3 means 1 initial + 2 retries).
        initial_delay_seconds (int): Delay in seconds before each retry.

    Returns:
        str: The caption text.

    Raises:
        TranscriptNotFoundError: immediately, without retrying.
        UpstreamError: the last failure once attempts are exhausted.
    """
    num_attempts_to_make = max(1, total_attempts)  # Ensure at least one attempt

    for attempt_num_zero_based in range(num_attempts_to_make):
        current_attempt_one_based = attempt_num_zero_based + 1
        try:
            if num_attempts_to_make > 1:
                logger.info(
                    f"Attempt {current_attempt_one_based}/{num_attempts_to_make} to fetch transcript for {video_id}"
                )
            else:
                logger.info(f"Fetching transcript for {video_id}")

            # requests blocks, keep it off the event loop
            text = await asyncio.to_thread(
                fetch_cached_transcript, video_id, language_code
            )
            logger.info(
                f"Successfully fetched transcript for {video_id} on attempt {current_attempt_one_based} - length: {len(text)}"
            )
            return text

        except TranscriptNotFoundError:
            logger.error(f"Transcript does not exist for {video_id}, failing immediately")
            raise

        except UpstreamError as e:
            logger.warning(
                f"Attempt {current_attempt_one_based}/{num_attempts_to_make} failed for {video_id}: {str(e)}"
            )

            if attempt_num_zero_based == num_attempts_to_make - 1:
                logger.error(
                    f"Error fetching transcript for {video_id} after {num_attempts_to_make} attempts: {str(e)}"
                )
                raise

            logger.info(f"Retrying in {initial_delay_seconds} seconds...")
            await asyncio.sleep(initial_delay_seconds)
