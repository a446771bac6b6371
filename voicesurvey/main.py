"""
Voice Survey - FastAPI Application

Twilio webhooks for conducting a survey over the phone. Survey progress
travels in the callback URLs; the process keeps no call state, so any
number of replicas can serve the same call.

Python 3.9 compatible.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request
from fastapi.responses import Response
from twilio.request_validator import RequestValidator

from engine.state import state_from_params
from survey.errors import SchemaNotFound, SurveyError

from . import twiml
from .airtable_service import AirtableService, get_airtable_service
from .dialogue import FAILURE_MESSAGE, SurveyDialogue
from .models import HealthResponse
from .openai_service import OpenAICompletionService
from .security import TwilioSignatureMiddleware

VERSION = "1.0.0"

# Load environment variables from the project .env, then the working directory
env_paths = [
    Path(__file__).parent.parent / ".env",
    Path.cwd() / ".env",
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break
else:
    load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if os.getenv("DEBUG", "false").lower() == "true" else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Service instances (Python 3.9 compatible type hints)
airtable_service: Optional[AirtableService] = None
completion_service: Optional[OpenAICompletionService] = None
survey_dialogue: Optional[SurveyDialogue] = None


def _mask_key(key: Optional[str]) -> str:
    """Mask API key showing only last 4 chars."""
    if not key:
        return "(not set)"
    if len(key) <= 4:
        return "****"
    return f"****{key[-4:]}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - initialize services."""
    global airtable_service, completion_service, survey_dialogue

    logger.info("=" * 60)
    logger.info("Initializing Voice Survey")
    logger.info("=" * 60)

    airtable_key = os.getenv("AIRTABLE_API_KEY")
    airtable_base = os.getenv("AIRTABLE_BASE_ID")
    openai_key = os.getenv("OPENAI_API_KEY")

    logger.info(f"AIRTABLE_API_KEY present: {bool(airtable_key)} ({_mask_key(airtable_key)})")
    logger.info(f"AIRTABLE_BASE_ID: {airtable_base or '(not set)'}")
    logger.info(f"OPENAI_API_KEY present: {bool(openai_key)} ({_mask_key(openai_key)})")
    logger.info(f"WEBHOOK_BASE_URL: {os.getenv('WEBHOOK_BASE_URL') or '(relative callbacks)'}")

    # FAIL FAST if a required credential is missing
    missing = [
        name for name, value in (
            ("AIRTABLE_API_KEY", airtable_key),
            ("AIRTABLE_BASE_ID", airtable_base),
            ("OPENAI_API_KEY", openai_key),
        ) if not value
    ]
    if missing:
        error_msg = f"{', '.join(missing)} required. Set in .env or as environment variables."
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    airtable_service = get_airtable_service()
    completion_service = OpenAICompletionService()
    survey_dialogue = SurveyDialogue.from_env(airtable_service, completion_service)
    logger.info("Survey dialogue initialized successfully")
    logger.info("=" * 60)

    yield

    # Shutdown
    await airtable_service.close()
    await completion_service.close()
    logger.info("Shutting down Voice Survey")


app = FastAPI(
    title="Voice Survey",
    description="Phone surveys driven by Twilio, Airtable and OpenAI",
    version=VERSION,
    lifespan=lifespan,
)

if os.getenv("TWILIO_VALIDATE_SIGNATURE", "false").lower() == "true":
    auth_token = os.getenv("TWILIO_AUTH_TOKEN")
    if not auth_token:
        logger.warning("TWILIO_VALIDATE_SIGNATURE is set but TWILIO_AUTH_TOKEN is missing - not validating")
    app.add_middleware(
        TwilioSignatureMiddleware,
        validator=RequestValidator(auth_token) if auth_token else None,
        enabled=True,
        protected_prefixes=["/voice", "/handle-survey-id", "/handle-response"],
        public_base_url=os.getenv("WEBHOOK_BASE_URL", ""),
    )


def get_survey_dialogue() -> SurveyDialogue:
    """Dependency returning the controller built at startup."""
    if survey_dialogue is None:
        raise HTTPException(status_code=503, detail="survey_service_not_configured")
    return survey_dialogue


def _xml(content: str) -> Response:
    return Response(content=content, media_type="application/xml")


@app.exception_handler(SurveyError)
async def survey_error_handler(request: Request, exc: SurveyError) -> Response:
    """Any failed turn ends the call with a spoken apology."""
    if isinstance(exc, SchemaNotFound):
        logger.warning(f"{request.url.path}: {exc}")
    else:
        logger.error(
            f"METRIC turn_failed path={request.url.path} error={type(exc).__name__}: {exc}",
            exc_info=exc,
        )
    return _xml(twiml.say_and_hang_up(FAILURE_MESSAGE, voice=os.getenv("TWILIO_VOICE") or None))


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=VERSION)


# ============================================================
# Twilio Webhooks
# ============================================================

@app.post("/voice")
async def voice(dialogue: SurveyDialogue = Depends(get_survey_dialogue)):
    """Incoming call - ask for the survey id."""
    return _xml(dialogue.start_call())


@app.post("/handle-survey-id")
async def handle_survey_id(
    Digits: str = Form(""),
    dialogue: SurveyDialogue = Depends(get_survey_dialogue),
):
    """Keypad input - open a response record and enter the field loop."""
    logger.info(f"/handle-survey-id received Digits={Digits!r}")
    return _xml(await dialogue.handle_survey_id(Digits))


@app.post("/handle-response/{table_name}/{response_id}")
async def handle_response(
    table_name: str,
    response_id: str,
    remainingFields: Optional[str] = Query(None),
    lastAnswers: Optional[str] = Query(None),
    retry: int = Query(0),
    SpeechResult: str = Form(""),
    dialogue: SurveyDialogue = Depends(get_survey_dialogue),
):
    """
    Field loop turn.

    remainingFields / lastAnswers carry the dialogue state; absent
    remainingFields means the survey was just opened.
    """
    logger.info(
        f"/handle-response received table={table_name} record={response_id} "
        f"retry={retry} speech='{SpeechResult[:50] if SpeechResult else ''}'"
    )
    state = state_from_params(remainingFields, lastAnswers)
    content = await dialogue.handle_response(
        table_name, response_id, state, SpeechResult, retry=retry
    )
    return _xml(content)


def run():
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
