"""Single-flight streaming client for OpenAI-compatible chat completions."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping

import httpx

from .errors import AIError, ConfigurationError, MalformedRecordError, TransportError
from .prompts import ActionKind, Prompt
from .stream_parser import LineBuffer, RecordKind, parse_record

LOGGER = logging.getLogger(__name__)

TextHandler = Callable[[str], None]
SettingsProvider = Callable[[], "ClientSettings"]


@dataclass(slots=True)
class ClientSettings:
    """Connection settings read each time a stream starts."""

    base_url: str
    api_key: str
    model: str
    connect_timeout: float | None = 10.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @property
    def chat_completions_url(self) -> str:
        base = (self.base_url or "").strip().rstrip("/")
        if base.endswith("/v1"):
            return f"{base}/chat/completions"
        return f"{base}/v1/chat/completions"


@dataclass(slots=True, frozen=True)
class StreamRequest:
    """Transient description of one generation request."""

    action: ActionKind
    user_text: str
    system_prompt: str

    @classmethod
    def from_prompt(cls, action: ActionKind | str, prompt: Prompt) -> "StreamRequest":
        return cls(action=ActionKind.parse(action), user_text=prompt.user, system_prompt=prompt.system)

    def to_payload(self, model: str) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": self.user_text},
            ],
            "stream": True,
        }


@dataclass(slots=True)
class StreamSession:
    """State of the one in-flight request owned by a :class:`StreamClient`."""

    session_id: str
    request: StreamRequest
    is_active: bool = True
    accumulated_text: str = ""
    cancelled: bool = False
    task: asyncio.Task[None] | None = field(default=None, repr=False)


@dataclass(slots=True)
class StreamCallbacks:
    on_chunk: TextHandler | None = None
    on_line: TextHandler | None = None
    on_finish: TextHandler | None = None
    on_error: TextHandler | None = None


class StreamClient:
    """Streams chat completions and reports them through callbacks.

    At most one session is in flight per instance: :meth:`start` cancels the
    previous session before opening a new request, and a cancelled session
    never delivers another callback. Each session ends with exactly one of
    ``on_finish`` or ``on_error`` unless it was cancelled.
    """

    def __init__(
        self,
        settings: ClientSettings | SettingsProvider,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings_source = settings
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._session: StreamSession | None = None
        self._sequence = 0

    @property
    def settings(self) -> ClientSettings:
        source = self._settings_source
        if isinstance(source, ClientSettings):
            return source
        return source()

    @property
    def session(self) -> StreamSession | None:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._session.is_active

    def start(
        self,
        request: StreamRequest,
        *,
        on_chunk: TextHandler | None = None,
        on_line: TextHandler | None = None,
        on_finish: TextHandler | None = None,
        on_error: TextHandler | None = None,
    ) -> StreamSession | None:
        """Begin streaming ``request``; must be called from a running loop.

        Returns ``None`` when the settings are unusable; ``on_error`` has
        then already been called and no request was sent.
        """

        self.cancel()
        callbacks = StreamCallbacks(on_chunk=on_chunk, on_line=on_line, on_finish=on_finish, on_error=on_error)
        settings = self.settings
        problem = _validate_settings(settings)
        if problem is not None:
            LOGGER.warning("Refusing to start stream: %s", problem.message)
            _invoke(callbacks.on_error, problem.message)
            return None

        loop = asyncio.get_running_loop()
        self._sequence += 1
        session = StreamSession(session_id=f"stream-{self._sequence}", request=request)
        self._session = session
        LOGGER.debug(
            "Starting stream %s action=%s model=%s",
            session.session_id,
            request.action.value,
            settings.model,
        )
        session.task = loop.create_task(self._run(session, settings, callbacks))
        return session

    def cancel(self) -> bool:
        """Stop the active session; returns ``False`` when nothing was running."""

        session = self._session
        if session is None:
            return False
        session.cancelled = True
        session.is_active = False
        self._session = None
        task = session.task
        if task is not None and not task.done():
            task.cancel()
        LOGGER.debug("Cancelled stream %s", session.session_id)
        return True

    async def wait(self) -> None:
        """Wait until the current session (if any) stops running."""

        session = self._session
        task = session.task if session is not None else None
        if task is None or task.done():
            return
        await asyncio.wait({task})

    async def aclose(self) -> None:
        """Cancel any session and close an owned HTTP client."""

        self.cancel()
        client = self._http_client
        if client is not None and self._owns_http_client:
            self._http_client = None
            await client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _run(self, session: StreamSession, settings: ClientSettings, callbacks: StreamCallbacks) -> None:
        payload = session.request.to_payload(settings.model)
        if settings.debug_logging:
            self._log_prompt_payload(payload)
        line_buffer = LineBuffer() if callbacks.on_line is not None else None
        error: AIError | None = None
        try:
            client = self._get_http_client()
            async with client.stream(
                "POST",
                settings.chat_completions_url,
                json=payload,
                headers=_build_headers(settings),
                timeout=httpx.Timeout(None, connect=settings.connect_timeout),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise TransportError.from_status(response.status_code, response.reason_phrase)
                async for line in response.aiter_lines():
                    try:
                        record = parse_record(line)
                    except MalformedRecordError as exc:
                        LOGGER.debug("Skipping malformed record in %s: %r", session.session_id, exc.record)
                        continue
                    if record.kind is RecordKind.TERMINATOR:
                        break
                    if record.has_text and self._is_live(session):
                        self._deliver_chunk(session, record.delta, callbacks, line_buffer)
        except asyncio.CancelledError:
            LOGGER.debug("Stream %s task cancelled", session.session_id)
            raise
        except AIError as exc:
            error = exc
        except httpx.HTTPError as exc:
            error = TransportError(message=_describe_http_error(exc), details={"type": type(exc).__name__})
        except Exception as exc:
            LOGGER.exception("Unexpected failure in stream %s", session.session_id)
            error = TransportError(message=str(exc) or type(exc).__name__, details={"type": type(exc).__name__})

        if not self._is_live(session):
            return
        session.is_active = False
        self._session = None
        if error is not None:
            LOGGER.warning("Stream %s failed: %s", session.session_id, error.message)
            _invoke(callbacks.on_error, error.message)
            return
        if line_buffer is not None:
            remainder = line_buffer.flush()
            if remainder is not None:
                _invoke(callbacks.on_line, remainder)
        LOGGER.debug(
            "Stream %s finished with %d characters",
            session.session_id,
            len(session.accumulated_text),
        )
        _invoke(callbacks.on_finish, session.accumulated_text)

    def _deliver_chunk(
        self,
        session: StreamSession,
        delta: str,
        callbacks: StreamCallbacks,
        line_buffer: LineBuffer | None,
    ) -> None:
        session.accumulated_text += delta
        _invoke(callbacks.on_chunk, delta)
        if line_buffer is None:
            return
        for line in line_buffer.feed(delta):
            if not self._is_live(session):
                return
            _invoke(callbacks.on_line, line)

    def _is_live(self, session: StreamSession) -> bool:
        return self._session is session and not session.cancelled

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
            self._owns_http_client = True
        return self._http_client

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)


def _validate_settings(settings: ClientSettings) -> ConfigurationError | None:
    if not (settings.api_key or "").strip():
        return ConfigurationError(setting="api_key")
    if not (settings.base_url or "").strip():
        return ConfigurationError(message="Configure the API base URL in settings first", setting="base_url")
    return None


def _build_headers(settings: ClientSettings) -> Dict[str, str]:
    headers: Dict[str, str] = dict(settings.default_headers or {})
    headers["Content-Type"] = "application/json"
    headers["Authorization"] = f"Bearer {settings.api_key.strip()}"
    return headers


def _describe_http_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "Connection to the AI endpoint timed out"
    if isinstance(exc, httpx.ConnectError):
        return "Unable to connect to the AI endpoint"
    detail = str(exc).strip()
    return f"Network error: {detail}" if detail else f"Network error: {type(exc).__name__}"


def _invoke(handler: TextHandler | None, text: str) -> None:
    if handler is None:
        return
    try:
        handler(text)
    except Exception:
        LOGGER.exception("Stream callback %s failed", getattr(handler, "__qualname__", handler))


__all__ = [
    "ClientSettings",
    "StreamCallbacks",
    "StreamClient",
    "StreamRequest",
    "StreamSession",
]
