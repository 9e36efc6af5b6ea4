"""FastAPI app for the story service."""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from services.story_service.drivers import ProviderRateLimitError
from services.story_service.service import StoryAIService
from shared.models import (
    HealthResponse,
    IllustrationRequest,
    IllustrationResponse,
    SpeechRequest,
    SpeechResponse,
    StoryRequest,
    StoryResponse,
)
from shared.utils import config, setup_logging

logger = setup_logging("story-service-api")

app = FastAPI(
    title="Story Service",
    description="Writes tiny-cat stories, illustrates sentences and narrates them",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

service = StoryAIService()


@app.exception_handler(ProviderRateLimitError)
async def rate_limit_handler(_request, exc: ProviderRateLimitError) -> JSONResponse:
    """Pass provider throttling through as 429 so clients can back off."""
    headers = {}
    if exc.retry_after is not None:
        headers["Retry-After"] = str(int(round(exc.retry_after)))
    return JSONResponse(
        status_code=429,
        content={"detail": str(exc), "retry_delay": exc.retry_after},
        headers=headers,
    )


@app.post("/story", response_model=StoryResponse)
async def generate_story(request: StoryRequest) -> StoryResponse:
    """Write a story for the given idea and language."""
    try:
        return await service.write_story(request.prompt, request.language)
    except (HTTPException, ProviderRateLimitError):
        raise
    except Exception as exc:
        logger.error("Story generation failed: %s", exc)
        raise HTTPException(status_code=502, detail=f"Story generation failed: {exc!s}") from exc


@app.post("/illustration", response_model=IllustrationResponse)
async def generate_illustration(request: IllustrationRequest) -> IllustrationResponse:
    """Draw an illustration for one sentence."""
    try:
        image_data_uri = await service.generate_illustration(request.sentence)
    except (HTTPException, ProviderRateLimitError):
        raise
    except Exception as exc:
        logger.error("Illustration failed: %s", exc)
        raise HTTPException(status_code=502, detail=f"Illustration failed: {exc!s}") from exc
    return IllustrationResponse(image_data_uri=image_data_uri)


@app.post("/speech", response_model=SpeechResponse)
async def synthesize_speech(request: SpeechRequest) -> SpeechResponse:
    """Narrate text in the given BCP-47 language."""
    try:
        audio_data_uri = await service.synthesize_speech(request.text, request.language)
    except (HTTPException, ProviderRateLimitError):
        raise
    except Exception as exc:
        logger.error("Speech synthesis failed: %s", exc)
        raise HTTPException(status_code=502, detail=f"Speech synthesis failed: {exc!s}") from exc
    return SpeechResponse(audio_data_uri=audio_data_uri)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", service="story-service", provider=service.provider)
