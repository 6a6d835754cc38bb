"""
Realtime audio-streaming session.

One :class:`RealtimeSession` owns one websocket to the realtime service:

    IDLE -> CONNECTING -> CONFIGURING -> ACTIVE
    ACTIVE -> DISCONNECTED -> RECONNECTING -> CONFIGURING -> ACTIVE
    any -> CLOSED

Dropped connections are retried with a bounded backoff while the owner still
wants the session (``should_connect``); ``stop()`` clears that flag and moves
to CLOSED at once, with teardown finishing in the background.
"""

import asyncio
import inspect
import json
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets

from ..audio.codec import decode_frame, encode_frame
from ..audio.playback import PlaybackScheduler
from ..config import (
    HANDSHAKE_TIMEOUT,
    REALTIME_API_URL_TEMPLATE,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY,
)
from ..credentials import CredentialSupplier
from ..errors import ConfigurationRejected, CredentialError, MalformedEventError, TransportError
from . import events as ev
from .profiles import SessionProfile


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONFIGURING = "configuring"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


def auth_subprotocols(token: str) -> List[str]:
    """Websocket subprotocols that carry the credential."""
    return ["realtime", f"openai-insecure-api-key.{token}", "openai-beta.realtime-v1"]


async def websocket_connect(url: str, subprotocols: List[str]):
    """Open the realtime websocket."""
    return await websockets.connect(url, subprotocols=subprotocols, max_size=None, open_timeout=None)


class ReconnectPolicy:
    """Attempt counter with a linear, capped delay."""

    def __init__(
        self,
        base_delay: float = RECONNECT_BASE_DELAY,
        max_delay: float = RECONNECT_MAX_DELAY,
        max_attempts: int = RECONNECT_MAX_ATTEMPTS,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.attempt = 0

    def next_delay(self) -> Optional[float]:
        """Delay before the next attempt, or None once attempts are used up."""
        if self.attempt >= self.max_attempts:
            return None
        self.attempt += 1
        return min(self.base_delay * self.attempt, self.max_delay)

    def reset(self) -> None:
        self.attempt = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


class DisposerBag:
    """Cleanup callables owned by one connection; each runs exactly once."""

    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger("AccessAI.DisposerBag")
        self._disposers: List[Callable[[], Any]] = []

    def add(self, disposer: Callable[[], Any]) -> Callable[[], Any]:
        self._disposers.append(disposer)
        return disposer

    def __len__(self) -> int:
        return len(self._disposers)

    async def dispose_all(self) -> None:
        while self._disposers:
            disposer = self._disposers.pop()
            try:
                result = disposer()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self.logger.error(f"Disposer failed: {exc}")


class Listeners:
    """Named callback registry; registration returns a disposer."""

    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger("AccessAI.Listeners")
        self._handlers: Dict[str, List[Callable[..., Any]]] = {}

    def on(self, name: str, callback: Callable[..., Any]) -> Callable[[], None]:
        self._handlers.setdefault(name, []).append(callback)

        def dispose() -> None:
            handlers = self._handlers.get(name, [])
            if callback in handlers:
                handlers.remove(callback)

        return dispose

    def count(self, name: str) -> int:
        return len(self._handlers.get(name, []))

    def emit(self, name: str, *args: Any) -> None:
        for callback in list(self._handlers.get(name, [])):
            try:
                result = callback(*args)
            except Exception:
                self.logger.exception(f"Listener for '{name}' failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(self._report)

    def _report(self, task: "asyncio.Future") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f"Async listener failed: {exc!r}")


class RealtimeSession:
    """Streaming session to the realtime service for one assistant mode."""

    def __init__(
        self,
        profile: SessionProfile,
        credentials: CredentialSupplier,
        *,
        audio_source=None,
        playback: Optional[PlaybackScheduler] = None,
        mute_fn: Optional[Callable[[], bool]] = None,
        connect: Callable[[str, List[str]], Awaitable[Any]] = websocket_connect,
        url: Optional[str] = None,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        reconnect_policy: Optional[ReconnectPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        logger=None,
    ):
        self.profile = profile
        self.credentials = credentials
        self.audio_source = audio_source
        self.playback = playback
        self.mute_fn = mute_fn
        self.connect = connect
        self.url = url or REALTIME_API_URL_TEMPLATE.format(model=profile.model)
        self.handshake_timeout = handshake_timeout
        self.policy = reconnect_policy or ReconnectPolicy()
        self.sleep = sleep
        self.clock = clock
        self.logger = logger or logging.getLogger("AccessAI.RealtimeSession")

        self.state = SessionState.IDLE
        self.token: Optional[str] = None
        self.modalities = list(profile.modalities)
        self.reconnect_count = 0
        self.last_activity: Optional[float] = None
        self.should_connect = False
        self.input_paused = False
        self.fatal_error: Optional[Exception] = None
        self.turn_buffer = ev.TurnBuffer()
        self.listeners = Listeners(self.logger)

        self._transport = None
        self._connection: Optional[DisposerBag] = None
        self._configured: Optional[asyncio.Future] = None
        self._recover_task: Optional[asyncio.Task] = None
        self._teardown_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------ #
    # Listeners and state
    # ------------------------------------------------------------------ #

    def on(self, name: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register a listener; call the returned function to remove it."""
        return self.listeners.on(name, callback)

    def _set_state(self, state: SessionState) -> None:
        if state is self.state:
            return
        self.logger.info(f"Session {self.profile.name}: {self.state.value} -> {state.value}")
        self.state = state
        self.listeners.emit("state", state)

    @property
    def active(self) -> bool:
        return self.state is SessionState.ACTIVE

    def pause_input(self) -> None:
        self.input_paused = True

    def resume_input(self) -> None:
        self.input_paused = False

    @property
    def input_muted(self) -> bool:
        """Paused by the owner, or muted while the assistant is speaking."""
        return self.input_paused or bool(self.mute_fn and self.mute_fn())

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Connect and configure; returns once the session is ACTIVE."""
        if self.state not in (SessionState.IDLE, SessionState.CLOSED):
            raise RuntimeError(f"Session is already {self.state.value}")
        if self._teardown_task is not None:
            await self._teardown_task
            self._teardown_task = None

        self.should_connect = True
        self.fatal_error = None
        self.policy.reset()
        self._set_state(SessionState.IDLE)
        try:
            await self._establish()
        except CredentialError:
            self.should_connect = False
            self._set_state(SessionState.IDLE)
            raise
        except ConfigurationRejected as exc:
            self._fail(exc)
            raise
        except TransportError as exc:
            if not self.should_connect:
                return
            self.logger.warning(f"Initial connection failed: {exc}")
            self._set_state(SessionState.DISCONNECTED)
            await self._recover()
            if self.fatal_error is not None:
                raise self.fatal_error

    def stop(self) -> Optional[asyncio.Task]:
        """Close the session now; teardown completes asynchronously."""
        self.should_connect = False
        self.turn_buffer.clear()
        if self._teardown_task is not None:
            return self._teardown_task
        self._set_state(SessionState.CLOSED)
        if self._recover_task is not None and not self._recover_task.done():
            if self._recover_task is not asyncio.current_task():
                self._recover_task.cancel()
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return None
        self._teardown_task = asyncio.ensure_future(self._teardown())
        return self._teardown_task

    async def aclose(self) -> None:
        """Stop and wait for teardown to finish."""
        task = self.stop()
        if task is not None:
            await task

    async def _teardown(self) -> None:
        await self._dispose_connection()
        if self.audio_source is not None:
            result = self.audio_source.close()
            if inspect.isawaitable(result):
                await result
        if self.playback is not None:
            self.playback.clear()
        self.logger.info(f"Session {self.profile.name} closed")

    def _fail(self, exc: Exception) -> None:
        self.logger.error(f"Session {self.profile.name} failed: {exc}")
        self.fatal_error = exc
        self.stop()
        self.listeners.emit("fatal", exc)

    # ------------------------------------------------------------------ #
    # Connection
    # ------------------------------------------------------------------ #

    async def _establish(self) -> None:
        result = await self.credentials.fetch()
        if not result.success:
            raise CredentialError(result.error or "No credential available")
        if not self.should_connect:
            return
        self.token = result.token

        if self.state is not SessionState.RECONNECTING:
            self._set_state(SessionState.CONNECTING)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.handshake_timeout
        try:
            transport = await asyncio.wait_for(
                self.connect(self.url, auth_subprotocols(result.token)),
                timeout=self.handshake_timeout,
            )
        except asyncio.TimeoutError:
            raise TransportError(f"Handshake timed out after {self.handshake_timeout}s")
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError(f"Connection failed: {exc}") from exc

        connection = DisposerBag(self.logger)
        connection.add(lambda: self._close_transport(transport))
        self._connection = connection
        self._transport = transport
        if not self.should_connect:
            await self._dispose_connection()
            return

        configured = loop.create_future()
        self._configured = configured
        self._set_state(SessionState.CONFIGURING)
        reader = asyncio.ensure_future(self._read_loop(transport))
        connection.add(reader.cancel)

        try:
            await self._send(self.profile.session_update())
            remaining = max(0.0, deadline - loop.time())
            await asyncio.wait_for(asyncio.shield(configured), timeout=remaining)
        except asyncio.TimeoutError:
            configured.cancel()
            await self._dispose_connection()
            raise TransportError("Session configuration was not acknowledged in time")
        except Exception:
            await self._dispose_connection()
            raise
        finally:
            self._configured = None

        if not self.should_connect:
            await self._dispose_connection()
            return
        self.policy.reset()
        self._set_state(SessionState.ACTIVE)
        if self.audio_source is not None:
            pump = asyncio.ensure_future(self._pump_audio(transport))
            connection.add(pump.cancel)

    async def _close_transport(self, transport) -> None:
        try:
            await transport.close()
        except Exception as exc:
            self.logger.debug(f"Transport close raised: {exc}")

    async def _dispose_connection(self) -> None:
        connection, self._connection = self._connection, None
        self._transport = None
        if connection is not None:
            await connection.dispose_all()

    def _connection_lost(self, transport, reason: Optional[BaseException]) -> None:
        if transport is not self._transport:
            return
        configured = self._configured
        if configured is not None and not configured.done():
            configured.set_exception(TransportError(f"Connection closed during configuration: {reason}"))
            return
        if not self.should_connect or self.state is SessionState.CLOSED:
            return
        self.logger.warning(f"Connection lost: {reason or 'closed by server'}")
        self.turn_buffer.clear()
        self._set_state(SessionState.DISCONNECTED)
        self._recover_task = asyncio.ensure_future(self._recover())

    async def _recover(self) -> None:
        """Retry with backoff until ACTIVE, stopped, or out of attempts."""
        await self._dispose_connection()
        while self.should_connect:
            delay = self.policy.next_delay()
            if delay is None:
                self._fail(
                    TransportError(f"Could not reconnect after {self.policy.max_attempts} attempts")
                )
                return
            self._set_state(SessionState.RECONNECTING)
            self.reconnect_count += 1
            self.logger.info(f"Reconnecting in {delay:.1f}s (attempt {self.policy.attempt})")
            await self.sleep(delay)
            if not self.should_connect:
                return
            try:
                await self._establish()
                return
            except (ConfigurationRejected, CredentialError) as exc:
                self._fail(exc)
                return
            except TransportError as exc:
                self.logger.warning(f"Reconnect attempt {self.policy.attempt} failed: {exc}")

    # ------------------------------------------------------------------ #
    # I/O
    # ------------------------------------------------------------------ #

    async def _send(self, payload: Dict[str, Any]) -> None:
        transport = self._transport
        if transport is None:
            raise TransportError("No open connection")
        try:
            await transport.send(json.dumps(payload))
        except Exception as exc:
            raise TransportError(f"Send failed: {exc}") from exc
        self.last_activity = self.clock()

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """Send a client event on an ACTIVE session."""
        if self.state is not SessionState.ACTIVE:
            raise TransportError(f"Session is {self.state.value}, not active")
        await self._send(payload)

    async def _read_loop(self, transport) -> None:
        reason: Optional[BaseException] = None
        try:
            async for frame in transport:
                self.last_activity = self.clock()
                for event in ev.parse_frame(frame):
                    self._dispatch(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = exc
        self._connection_lost(transport, reason)

    async def _pump_audio(self, transport) -> None:
        """Forward captured frames in order while ACTIVE."""
        try:
            async for frame in self.audio_source.frames():
                if not self.should_connect or transport is not self._transport:
                    return
                if self.state is not SessionState.ACTIVE or self.input_muted:
                    continue
                await self._send({"type": "input_audio_buffer.append", "audio": encode_frame(frame)})
        except asyncio.CancelledError:
            raise
        except TransportError as exc:
            self.logger.warning(f"Audio pump stopped: {exc}")
        except Exception:
            self.logger.exception("Audio pump failed")

    # ------------------------------------------------------------------ #
    # Inbound events
    # ------------------------------------------------------------------ #

    def _dispatch(self, event: Dict[str, Any]) -> None:
        try:
            self._handle_event(event)
        except MalformedEventError as exc:
            self.logger.warning(f"Dropping malformed {event.get('type')} event: {exc}")
        except Exception:
            self.logger.exception(f"Failed to handle {event.get('type')} event")

    def _handle_event(self, event: Dict[str, Any]) -> None:
        if not self.should_connect:
            return
        event_type = event["type"]
        self.listeners.emit("event", event)

        if event_type == ev.SESSION_UPDATED:
            if self._configured is not None and not self._configured.done():
                self._configured.set_result(True)
        elif event_type == ev.SESSION_CREATED:
            self.logger.debug("Session created")
        elif event_type == ev.SPEECH_STARTED:
            if self.playback is not None:
                self.playback.barge_in()
            self.listeners.emit("speech_started")
        elif event_type == ev.SPEECH_STOPPED:
            self.listeners.emit("speech_stopped")
        elif event_type == ev.TRANSCRIPTION_COMPLETED:
            text = ev.text_field(event, "transcript").strip()
            if text:
                self.listeners.emit("transcript", ev.TranscriptEvent(text=text))
        elif event_type in (ev.TEXT_DELTA, ev.AUDIO_TRANSCRIPT_DELTA):
            self.listeners.emit("text_delta", self.turn_buffer.append(ev.text_field(event, "delta")))
        elif event_type == ev.TEXT_DONE:
            self.turn_buffer.replace(ev.text_field(event, "text"))
        elif event_type == ev.AUDIO_TRANSCRIPT_DONE:
            self.turn_buffer.replace(ev.text_field(event, "transcript"))
        elif event_type == ev.AUDIO_DELTA:
            samples = decode_frame(ev.text_field(event, "delta"))
            if not len(samples):
                return
            if self.playback is not None:
                self.playback.schedule(samples)
            self.listeners.emit("audio", samples)
        elif event_type == ev.RESPONSE_DONE:
            text = self.turn_buffer.take().strip()
            if text:
                self.listeners.emit("response_text", text)
        elif event_type == ev.ERROR:
            self._handle_error(event)

    def _handle_error(self, event: Dict[str, Any]) -> None:
        self.turn_buffer.clear()
        details = ev.error_details(event)
        configured = self._configured
        if configured is not None and not configured.done():
            configured.set_exception(ConfigurationRejected(details["message"]))
            return
        if details["code"] == ev.SESSION_EXPIRED_CODE:
            self.logger.warning("Session expired; reconnecting")
            transport = self._transport
            if transport is not None:
                asyncio.ensure_future(self._close_transport(transport))
            return
        self.logger.error(f"Realtime error: {details['message']}")
        self.listeners.emit("error", details["message"])
