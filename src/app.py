import logging
import os
import sys
from functools import wraps

from quart import Quart, jsonify, render_template, request
from werkzeug.exceptions import HTTPException

from ai_models import ensure_allowed, list_models
from errors import APIError, RateLimitError
from generation import MODES, generate, translate_to_japanese, validate_generation_request
from llm_providers import get_llm_registry
from rate_limit import client_ip, get_rate_limiter
from transcripts import (
    extract_video_id,
    fetch_transcript_with_retries,
    validate_video_id,
)

# Configure logging
logger = logging.getLogger(__name__)
root_logger = logging.getLogger()
root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
handler = logging.StreamHandler(sys.stdout)
formatter = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
)
handler.setFormatter(formatter)
root_logger.addHandler(handler)

TRANSCRIPT_FETCH_ATTEMPTS = int(os.getenv("TRANSCRIPT_FETCH_ATTEMPTS", 2))
TRUTHY = {"1", "true", "yes", "on"}

# Model ids each generation route accepts, for the UI selector
MODE_MODELS = {mode: list(settings.allowed_models) for mode, settings in MODES.items()}

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, max-age=0",
    "X-Content-Type-Options": "nosniff",
}

llm_registry = get_llm_registry()
rate_limiter = get_rate_limiter()

app = Quart(__name__)


@app.errorhandler(APIError)
async def handle_api_error(error):
    return jsonify({"error": error.message}), error.status_code


@app.errorhandler(Exception)
async def handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description}), error.code
    logger.exception(f"Unhandled error on {request.path}")
    return jsonify({"error": "予期せぬエラーが発生しました。"}), 500


def rate_limited(view):
    @wraps(view)
    async def wrapper(*args, **kwargs):
        ip = client_ip(request.headers)
        logger.info(f"{request.method} {request.path} received - IP: {ip}")
        if not await rate_limiter.check_and_increment(ip):
            logger.warning(f"Rate limit exceeded - IP: {ip}")
            raise RateLimitError(
                "リクエスト数の上限に達しました。しばらく待ってから再試行してください。"
            )
        return await view(*args, **kwargs)

    return wrapper


@app.route("/")
async def index():
    return await render_template(
        "index.html", models=list_models(), mode_models=MODE_MODELS
    )


@app.route("/api/models")
async def models():
    return jsonify({"models": list_models(), "modeModels": MODE_MODELS})


@app.route("/api/transcript")
@rate_limited
async def transcript():
    args = request.args
    video_id = args.get("videoId") or extract_video_id(args.get("url", ""))
    video_id = validate_video_id(video_id)
    language_code = args.get("languageCode", "")
    translate = args.get("translate", "").lower() in TRUTHY
    model = None
    if translate:
        model = ensure_allowed(args.get("model") or MODES["translate"].default_model)

    logger.info(
        f"Transcript request - VideoID: {video_id}, language: {language_code or 'default'}, translate: {translate}"
    )

    text = await fetch_transcript_with_retries(
        video_id, language_code, total_attempts=TRANSCRIPT_FETCH_ATTEMPTS
    )
    if translate:
        text = await translate_to_japanese(text, model, llm_registry)

    logger.info(f"Transcript response - length: {len(text)}")
    return text, 200, {"Content-Type": "text/plain; charset=utf-8", **NO_STORE_HEADERS}


async def run_generation(mode: str):
    data = await request.get_json(silent=True)
    generation_request = validate_generation_request(mode, data)
    logger.info(
        f"{mode} request - model: {generation_request.model}, text length: {len(generation_request.text)}"
    )
    result = await generate(mode, generation_request, llm_registry)
    return jsonify({MODES[mode].response_key: result})


@app.route("/api/summarize", methods=["POST"])
@rate_limited
async def summarize():
    return await run_generation("summarize")


@app.route("/api/blog", methods=["POST"])
@rate_limited
async def blog():
    return await run_generation("blog")


@app.route("/api/script", methods=["POST"])
@rate_limited
async def script():
    return await run_generation("script")


@app.route("/api/translate", methods=["POST"])
@rate_limited
async def translate():
    data = await request.get_json(silent=True)
    translation_request = validate_generation_request("translate", data)
    logger.info(
        f"Translate request - model: {translation_request.model}, text length: {len(translation_request.text)}"
    )
    translated_text = await translate_to_japanese(
        translation_request.text, translation_request.model, llm_registry
    )
    logger.info(f"Translate response - length: {len(translated_text)}")
    return jsonify({"translatedText": translated_text}), 200, NO_STORE_HEADERS


if __name__ == "__main__":
    logger.info("Starting Quart app...")
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)))
