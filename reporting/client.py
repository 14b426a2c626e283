"""
Async client for the reporting API streams.

Wraps the NDJSON streaming endpoints in async iterators of typed response
messages. When the connection drops, the client reconnects with exponential
backoff (1s -> 2s -> 4s -> ... -> max_backoff_s) and re-issues the request
starting at the last timestamp it delivered, skipping messages that were
already delivered before the interruption.

Usage::

    async with ReportingClient("http://reporting:8000") as client:
        request = ReceiveMicrogridComponentsDataStreamRequest(...)
        async for response in client.receive_microgrid_components_data_stream(
            request
        ):
            ...

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Hashable
from datetime import datetime
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from reporting.models import (
    AggregationStreamFilter,
    ReceiveAggregatedMicrogridComponentsDataStreamRequest,
    ReceiveAggregatedMicrogridComponentsDataStreamResponse,
    ReceiveMicrogridComponentsDataStreamRequest,
    ReceiveMicrogridComponentsDataStreamResponse,
    StreamFilter,
    TimeFilter,
)
from reporting.services.windows import Clock, Sleep, utc_now

logger = logging.getLogger(__name__)

_INITIAL_BACKOFF_S = 1.0
_DEFAULT_MAX_BACKOFF_S = 300.0

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class ReportingApiError(Exception):
    """The API rejected a stream request with a non-200 status.

    Attributes:
        status_code: HTTP status of the answer.
        detail: Decoded ``detail`` of the answer body, if any.
    """

    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"Reporting API answered HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class ReportingStreamError(Exception):
    """The server terminated an open stream with an error line.

    Attributes:
        code: Status code name sent by the server.
        message: Error message sent by the server.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


# ---------------------------------------------------------------------------
# Resume helpers
# ---------------------------------------------------------------------------


def _components_group(
    response: ReceiveMicrogridComponentsDataStreamResponse,
) -> Hashable:
    return response.microgrid_id


def _components_time(
    response: ReceiveMicrogridComponentsDataStreamResponse,
) -> datetime | None:
    timestamps = [
        sample.sampled_at
        for component in response.components
        for sample in component.metric_samples
    ]
    return max(timestamps, default=None)


def _aggregated_group(
    response: ReceiveAggregatedMicrogridComponentsDataStreamResponse,
) -> Hashable:
    return response.aggregation_config.model_dump_json()


def _aggregated_time(
    response: ReceiveAggregatedMicrogridComponentsDataStreamResponse,
) -> datetime | None:
    return response.sample.sampled_at


def _resume_start(
    original: TimeFilter | None,
    started_at: datetime,
    groups: set[Hashable],
    delivered: dict[Hashable, datetime],
) -> datetime | None:
    """Return the start of a resumed request.

    Every group's messages arrive in timestamp order, so restarting at the
    oldest of the groups' latest delivered timestamps loses nothing. While a
    group has delivered nothing the stream restarts where the first request
    began: its own start, or the time it was sent when it had no time filter
    and followed live data. Replayed messages are dropped per group.
    """
    floor = started_at if original is None else original.start
    if not delivered or groups - delivered.keys():
        return floor
    return min(delivered.values())


def _with_start(filter_: Any, default_type: type, start: datetime | None) -> Any:
    stream_filter = filter_ or default_type()
    end = stream_filter.time_filter.end if stream_filter.time_filter else None
    return stream_filter.model_copy(
        update={"time_filter": TimeFilter(start=start, end=end)}
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ReportingClient:
    """Streaming client for the reporting API.

    Args:
        base_url: Base URL of the reporting API, e.g. ``http://host:8000``.
        max_backoff_s: Maximum reconnect delay in seconds (default 300).
        max_retries: Reconnect attempts without a delivered message before
            giving up, or None to retry forever.
        http_client: Optional preconfigured httpx client. When given, its
            base URL is used and the caller stays responsible for closing it.
        sleep: Awaitable sleep, replaceable in tests.
        clock: Returns the current UTC time, replaceable in tests.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        max_backoff_s: float = _DEFAULT_MAX_BACKOFF_S,
        max_retries: int | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = utc_now,
    ) -> None:
        if http_client is None and not base_url:
            raise ValueError("Either base_url or http_client must be given")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, read=None),
        )
        self._max_backoff_s = max_backoff_s
        self._max_retries = max_retries
        self._sleep = sleep
        self._clock = clock
        self._current_backoff = _INITIAL_BACKOFF_S

    async def __aenter__(self) -> ReportingClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def current_backoff(self) -> float:
        """Delay before the next reconnect attempt, in seconds."""
        return self._current_backoff

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def receive_microgrid_components_data_stream(
        self, request: ReceiveMicrogridComponentsDataStreamRequest
    ) -> AsyncIterator[ReceiveMicrogridComponentsDataStreamResponse]:
        """Stream component data for a request.

        Args:
            request: The components-data request.

        Yields:
            ReceiveMicrogridComponentsDataStreamResponse: Stream messages.

        Raises:
            ReportingApiError: If the API rejects the request.
            ReportingStreamError: If the server terminates the stream.
        """
        groups: set[Hashable] = {
            entry.microgrid_id for entry in request.microgrid_components
        }

        def resume(start: datetime | None) -> BaseModel:
            return request.model_copy(
                update={"filter": _with_start(request.filter, StreamFilter, start)}
            )

        async for response in self._stream(
            "/v1/streams/components",
            request,
            ReceiveMicrogridComponentsDataStreamResponse,
            original_time_filter=request.filter.time_filter if request.filter else None,
            groups=groups,
            group_of=_components_group,
            time_of=_components_time,
            resume=resume,
        ):
            yield response

    async def receive_aggregated_microgrid_components_data_stream(
        self, request: ReceiveAggregatedMicrogridComponentsDataStreamRequest
    ) -> AsyncIterator[ReceiveAggregatedMicrogridComponentsDataStreamResponse]:
        """Stream formula results for a request.

        Args:
            request: The aggregation request.

        Yields:
            ReceiveAggregatedMicrogridComponentsDataStreamResponse: Stream
                messages.

        Raises:
            ReportingApiError: If the API rejects the request.
            ReportingStreamError: If the server terminates the stream.
        """
        groups: set[Hashable] = {
            config.model_dump_json() for config in request.aggregation_configs
        }

        def resume(start: datetime | None) -> BaseModel:
            return request.model_copy(
                update={
                    "filter": _with_start(
                        request.filter, AggregationStreamFilter, start
                    )
                }
            )

        async for response in self._stream(
            "/v1/streams/aggregated",
            request,
            ReceiveAggregatedMicrogridComponentsDataStreamResponse,
            original_time_filter=request.filter.time_filter if request.filter else None,
            groups=groups,
            group_of=_aggregated_group,
            time_of=_aggregated_time,
            resume=resume,
        ):
            yield response

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _stream(
        self,
        path: str,
        request: BaseModel,
        response_type: type[ResponseT],
        *,
        original_time_filter: TimeFilter | None,
        groups: set[Hashable],
        group_of: Callable[[ResponseT], Hashable],
        time_of: Callable[[ResponseT], datetime | None],
        resume: Callable[[datetime | None], BaseModel],
    ) -> AsyncIterator[ResponseT]:
        """Run a stream, reconnecting and deduplicating after interruptions."""
        delivered: dict[Hashable, datetime] = {}
        # Latest timestamp per group delivered before the last reconnect.
        replayed: dict[Hashable, datetime] = {}
        failures = 0
        attempt = request
        started_at = self._clock()

        while True:
            try:
                async for response in self._open(path, attempt, response_type):
                    group = group_of(response)
                    ts = time_of(response)
                    if ts is not None:
                        mark = replayed.get(group)
                        if mark is not None and ts <= mark:
                            continue
                        if group not in delivered or ts > delivered[group]:
                            delivered[group] = ts
                    failures = 0
                    self._reset_backoff()
                    yield response
                return
            except httpx.TransportError as exc:
                failures += 1
                if self._max_retries is not None and failures > self._max_retries:
                    logger.error(
                        "Stream %s failed after %d reconnect attempt(s)",
                        path,
                        failures - 1,
                    )
                    raise
                logger.warning(
                    "Stream %s interrupted (%s), reconnecting in %.1fs",
                    path,
                    exc,
                    self._current_backoff,
                )
                await self._sleep(self._current_backoff)
                self._increase_backoff()

            replayed = dict(delivered)
            attempt = resume(
                _resume_start(original_time_filter, started_at, groups, delivered)
            )

    async def _open(
        self, path: str, request: BaseModel, response_type: type[ResponseT]
    ) -> AsyncIterator[ResponseT]:
        """POST a stream request and yield decoded messages until it ends."""
        async with self._client.stream(
            "POST",
            path,
            content=request.model_dump_json(),
            headers={"Content-Type": "application/json"},
        ) as response:
            if response.status_code != 200:
                body = await response.aread()
                raise ReportingApiError(response.status_code, _detail(body))

            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                data = json.loads(line)
                if "error" in data:
                    error = data["error"]
                    raise ReportingStreamError(
                        error.get("code", "UNKNOWN"), error.get("message", "")
                    )
                yield response_type.model_validate(data)

    def _increase_backoff(self) -> None:
        """Double the backoff delay, capped at max_backoff_s."""
        self._current_backoff = min(
            self._current_backoff * 2,
            self._max_backoff_s,
        )

    def _reset_backoff(self) -> None:
        """Reset backoff to the initial value (1s)."""
        self._current_backoff = _INITIAL_BACKOFF_S


def _detail(body: bytes) -> Any:
    try:
        return json.loads(body).get("detail")
    except (ValueError, AttributeError):
        return body.decode("utf-8", errors="replace")
