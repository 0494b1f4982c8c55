"""NDJSON frame decoding and the per-request stream session state machine."""

from __future__ import annotations

import asyncio
import codecs
import json
import uuid
from contextlib import aclosing
from typing import Any, AsyncGenerator, AsyncIterable, AsyncIterator, Callable, Literal

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from companion_sdk.errors import AbortError, CompanionError, CompanionTimeoutError, ProtocolError, ProviderError
from companion_sdk.logger import logger
from companion_sdk.schemas import ChatResponse, ErrorDelta, FinalDelta, StreamDelta, TextDelta, ToolCall

TerminalState = Literal["none", "final", "error", "aborted", "timed_out"]

OnText = Callable[[str], None]
OnFinal = Callable[[str, "ToolCall | None"], None]
OnError = Callable[[str], None]

_FRAME_TYPES = ("delta", "final", "error")
_delta_adapter: TypeAdapter[StreamDelta] = TypeAdapter(StreamDelta)


class NDJSONLineBuffer:
    """Incremental UTF-8 decoder that yields complete, non-blank lines.

    A trailing partial line is carried across ``feed`` calls and only emitted
    by ``flush`` once the byte stream has ended.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._remainder = ""

    def feed(self, chunk: bytes) -> list[str]:
        text = self._remainder + self._decoder.decode(chunk)
        *lines, self._remainder = text.split("\n")
        return [line.strip() for line in lines if line.strip()]

    def flush(self) -> list[str]:
        rest = (self._remainder + self._decoder.decode(b"", final=True)).strip()
        self._remainder = ""
        return [rest] if rest else []


def parse_frame(line: str) -> StreamDelta | None:
    """Parse one NDJSON line into a frame; unknown frame types yield None.

    Raises:
        ProtocolError: If the line is not a JSON object or is malformed.
    """
    try:
        data = json.loads(line)
    except ValueError:
        raise ProtocolError(f"Malformed stream frame: {line[:200]}") from None
    if not isinstance(data, dict):
        raise ProtocolError(f"Stream frame is not an object: {line[:200]}")

    frame_type = data.get("type")
    if frame_type is None:
        if data.get("error"):
            frame_type = "error"
        elif data.get("finish") and not data.get("delta"):
            frame_type = "final"
        else:
            frame_type = "delta"
        data = {**data, "type": frame_type}
    elif frame_type not in _FRAME_TYPES:
        logger.debug(f"Skipping stream frame of unknown type {frame_type!r}")
        return None

    try:
        return _delta_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise ProtocolError(f"Invalid {frame_type} frame: {exc.error_count()} invalid field(s)") from None


async def iter_frames(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamDelta]:
    """Lazily decode a byte stream into frames, in arrival order.

    The sequence is finite: it stops after a final or error frame, or when the
    byte stream ends.
    """
    buffer = NDJSONLineBuffer()
    async for chunk in chunks:
        for line in buffer.feed(chunk):
            if (frame := parse_frame(line)) is None:
                continue
            yield frame
            if not isinstance(frame, TextDelta) or frame.finish:
                return
    for line in buffer.flush():
        if (frame := parse_frame(line)) is not None:
            yield frame


def text_from_response(response: ChatResponse | None) -> str:
    if response is None:
        return ""
    if isinstance(response.text, str):
        return response.text
    if response.parts:
        return "".join(p["text"] for p in response.parts if isinstance(p.get("text"), str))
    return ""


def tool_call_from_parts(parts: list[dict[str, Any]] | None) -> ToolCall | None:
    """Extract the first ``tool_call`` part of a response, if any."""
    for part in parts or ():
        if isinstance(part, dict) and part.get("type") == "tool_call":
            data = part.get("data") if isinstance(part.get("data"), dict) else {}
            arguments = data.get("arguments")
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except ValueError:
                    arguments = {}
            params = arguments if isinstance(arguments, dict) else {}
            call_id = data.get("id") if isinstance(data.get("id"), str) and data.get("id") else str(uuid.uuid4())
            return ToolCall(
                id=call_id,
                name=data.get("name") if isinstance(data.get("name"), str) else "",
                raw_params=json.dumps(params),
                done_params=params,
            )
    return None


class StreamSession:
    """Runs one streaming request with idle and total timers.

    The session moves from ``none`` to exactly one terminal state. The first
    terminal event wins; every timer is cleared on that transition and no
    callback fires afterwards. Aborting fires no callback at all.

    Args:
        on_text: Called with the accumulated text after each text delta.
        on_final: Called once with the full text and an optional tool call.
        on_error: Called once with a plain error message.
        idle_timeout: Seconds without any frame before the session times out.
        total_timeout: Seconds from start before the session times out.
        format_error: Maps an error to the message passed to ``on_error``.
    """

    def __init__(
        self,
        on_text: OnText,
        on_final: OnFinal,
        on_error: OnError,
        idle_timeout: float,
        total_timeout: float,
        format_error: Callable[[CompanionError], str] | None = None,
    ):
        self.on_text = on_text
        self.on_final = on_final
        self.on_error = on_error
        self.idle_timeout = idle_timeout
        self.total_timeout = total_timeout
        self.format_error = format_error or (lambda exc: exc.message)

        self.state: TerminalState = "none"
        self.text = ""
        self.tool_call: ToolCall | None = None
        self.error: CompanionError | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._total_handle: asyncio.TimerHandle | None = None
        self._idle_paused = False

    @property
    def done(self) -> bool:
        return self.state != "none"

    def _arm_idle(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        if self._loop is not None and not self._idle_paused and not self.done:
            self._idle_handle = self._loop.call_later(self.idle_timeout, self._fire_timeout, "idle")

    def pause_idle_timer(self) -> None:
        """Stop idle enforcement; the total timer keeps running."""
        self._idle_paused = True
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _clear_timers(self) -> None:
        for handle in (self._idle_handle, self._total_handle):
            if handle is not None:
                handle.cancel()
        self._idle_handle = None
        self._total_handle = None

    def _transition(self, state: TerminalState) -> bool:
        if self.done:
            return False
        self.state = state
        self._clear_timers()
        return True

    def _safe_call(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Stream callback raised")

    def _fire_timeout(self, kind: Literal["idle", "total"]) -> None:
        timeout = self.idle_timeout if kind == "idle" else self.total_timeout
        error = CompanionTimeoutError(kind, timeout)
        if not self._transition("timed_out"):
            return
        self.error = error
        logger.warning(f"Stream session timed out ({kind} after {timeout:g}s)")
        if self._task is not None:
            self._task.cancel()
        self._safe_call(self.on_error, self.format_error(error))

    def abort(self) -> None:
        """Cancel the request; no callback fires."""
        if not self._transition("aborted"):
            return
        self.error = AbortError()
        if self._task is not None:
            self._task.cancel()

    def _finish(self, response: ChatResponse | None = None) -> None:
        if not self.text:
            self.text = text_from_response(response)
        if response is not None and self.tool_call is None:
            self.tool_call = tool_call_from_parts(response.parts)
        if self._transition("final"):
            self._safe_call(self.on_final, self.text, self.tool_call)

    def fail(self, error: CompanionError) -> None:
        """Move to the error state and report ``error`` once."""
        if self._transition("error"):
            self.error = error
            self._safe_call(self.on_error, self.format_error(error))

    async def _consume(self, frames: AsyncGenerator[StreamDelta, None]) -> None:
        try:
            async with aclosing(frames):
                async for frame in frames:
                    if self.done:
                        return
                    self._arm_idle()
                    if isinstance(frame, ErrorDelta):
                        self.fail(ProviderError(frame.error))
                        return
                    if isinstance(frame, FinalDelta):
                        self._finish(frame.response)
                        return
                    if frame.delta:
                        self.text += frame.delta
                        self._safe_call(self.on_text, self.text)
                    if frame.finish:
                        self._finish()
                        return
            if self.done:
                return
            if self.text or self.tool_call is not None:
                self._finish()
            else:
                self.fail(ProtocolError("Companion service returned an empty response"))
        except CompanionError as exc:
            self.fail(exc)
        except Exception as exc:
            logger.exception("Unexpected error while reading the stream")
            self.fail(CompanionError(f"{type(exc).__name__}: {exc}"))

    async def run(self, frames: AsyncGenerator[StreamDelta, None]) -> TerminalState:
        """Consume ``frames`` until a terminal state is reached.

        Returns:
            The terminal state of the session.
        """
        if self._task is not None:
            raise RuntimeError("StreamSession cannot be restarted")
        if self.done:
            return self.state
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._consume(frames))
        self._total_handle = self._loop.call_later(self.total_timeout, self._fire_timeout, "total")
        self._arm_idle()
        try:
            await asyncio.wait([self._task])
        except asyncio.CancelledError:
            self.abort()
            raise
        finally:
            self._clear_timers()
        return self.state
