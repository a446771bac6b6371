"""
TwiML builders for the survey call.

Every callback URL is built here. Field-loop URLs carry the dialogue state
in their query string, so they must always go through handle_response_url.
"""
from typing import Optional
from urllib.parse import quote

from twilio.twiml.voice_response import VoiceResponse

from engine.state import DialogueState, encode_state


def handle_response_url(
    base_url: str,
    table_name: str,
    record_id: str,
    state: Optional[DialogueState] = None,
    retry: int = 0,
) -> str:
    """
    Callback URL for the next field-response turn.

    Without a state the URL carries no query, which the handler reads as
    "survey just opened".
    """
    url = f"{base_url}/handle-response/{quote(table_name, safe='')}/{quote(record_id, safe='')}"
    query = []
    if state is not None:
        query.append(encode_state(state))
    if retry:
        query.append(f"retry={retry}")
    if query:
        url = f"{url}?{'&'.join(query)}"
    return url


def _say_kwargs(voice: Optional[str]) -> dict:
    return {"voice": voice} if voice else {}


def gather_digits(message: str, action: str, num_digits: int, voice: Optional[str] = None) -> str:
    response = VoiceResponse()
    gather = response.gather(input="dtmf", num_digits=num_digits, action=action, method="POST")
    gather.say(message, **_say_kwargs(voice))
    return str(response)


def gather_speech(
    message: str,
    action: str,
    fallback_url: str,
    speech_timeout: int,
    voice: Optional[str] = None,
) -> str:
    """Ask a question; if the caller stays silent Twilio falls through to the redirect."""
    response = VoiceResponse()
    gather = response.gather(input="speech", action=action, method="POST", speech_timeout=speech_timeout)
    gather.say(message, **_say_kwargs(voice))
    response.redirect(fallback_url, method="POST")
    return str(response)


def redirect(url: str) -> str:
    response = VoiceResponse()
    response.redirect(url, method="POST")
    return str(response)


def say_and_hang_up(message: str, voice: Optional[str] = None) -> str:
    response = VoiceResponse()
    response.say(message, **_say_kwargs(voice))
    response.hangup()
    return str(response)
