import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

import httpx
from pydantic import ValidationError

from app.schemas.entities import Developer, Sprint
from app.schemas.insight import AnalysisMetadata, AnalysisRequest, AnalysisResponse
from app.schemas.performance import Metrics, PerformanceRecord
from app.services import prompts
from app.services.errors import InsightUnavailable
from app.services.metrics import active_developers, filter_active_developers, normalize_efficiency

log = logging.getLogger(__name__)


class InsightClient(Protocol):
    async def analyze(self, request: AnalysisRequest) -> AnalysisResponse: ...

    async def recommendations(self, sprint_id: Optional[int] = None) -> List[str]: ...


class HttpInsightClient:
    """Talks to a narrative-insight service over plain HTTP with a bearer credential."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        analysis_url: str,
        recommendations_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.http_client = http_client
        self.analysis_url = analysis_url
        self.recommendations_url = recommendations_url
        self.token = token
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            log.debug(f"Insight request: {method} {url}")
            response = await self.http_client.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except httpx.HTTPError as e:
            raise InsightUnavailable(f"Insight service transport error: {e}") from e

        if not response.is_success:
            raise InsightUnavailable(
                f"Insight service answered {response.status_code}: {response.reason_phrase}"
            )
        if not response.content.strip():
            raise InsightUnavailable("Empty response from insight service")
        return response

    async def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        response = await self._request(
            "POST", self.analysis_url, content=request.model_dump_json(by_alias=True)
        )
        try:
            return AnalysisResponse.model_validate_json(response.content)
        except ValidationError as ve:
            raise InsightUnavailable(f"Malformed insight response: {ve}") from ve

    async def recommendations(self, sprint_id: Optional[int] = None) -> List[str]:
        if not self.recommendations_url:
            raise InsightUnavailable("Recommendations endpoint is not configured")
        params = {"sprintId": sprint_id} if sprint_id is not None else None
        response = await self._request("GET", self.recommendations_url, params=params)
        try:
            payload = response.json()
        except ValueError as e:
            raise InsightUnavailable(f"Malformed recommendations response: {e}") from e
        items = payload.get("recommendations") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise InsightUnavailable("Recommendations response has no list")
        return [str(item) for item in items]


class InsightGateway:
    """
    Single request/response boundary to the insight collaborator.

    The request only ever contains active developers with normalized
    efficiency. Any failure (timeout, transport, non-2xx, empty or malformed
    body) is turned into a success=False response with a local summary; the
    only thing that escapes is cancellation of the caller.
    """

    def __init__(self, client: InsightClient, timeout: float = 30.0):
        self.client = client
        self.timeout = timeout

    @staticmethod
    def build_request(
        records: Sequence[PerformanceRecord],
        sprints: Sequence[Sprint],
        developers: Sequence[Developer],
        metrics: Metrics,
    ) -> AnalysisRequest:
        active = active_developers(records, developers)
        active_ids = {d.id for d in active}
        return AnalysisRequest(
            performance_data=normalize_efficiency(filter_active_developers(records)),
            sprints=list(sprints),
            developers=active,
            inactive_developers=[d for d in developers if d.id not in active_ids],
            metrics=metrics,
        )

    @staticmethod
    def fallback_summary(metrics: Metrics) -> str:
        if metrics.active_developers == 0:
            return "AI analysis unavailable. No developer activity in the selected scope."
        return (
            f"AI analysis unavailable. {metrics.active_developers} active developers "
            f"completed {metrics.total_tasks_completed} of {metrics.total_tasks_assigned} tasks "
            f"({metrics.completion_rate.value:.1f}%) and logged "
            f"{metrics.total_hours_worked:.1f}h."
        )

    def _fallback(self, reason: str, metrics: Metrics) -> AnalysisResponse:
        return AnalysisResponse(
            success=False,
            insights=[],
            summary=self.fallback_summary(metrics),
            error=reason,
            metadata=AnalysisMetadata(
                analysis_timestamp=datetime.now(timezone.utc),
            ),
        )

    async def analyze_performance(
        self,
        records: Sequence[PerformanceRecord],
        sprints: Sequence[Sprint],
        developers: Sequence[Developer],
        metrics: Metrics,
    ) -> AnalysisResponse:
        request = self.build_request(records, sprints, developers, metrics)
        log.info(
            f"Requesting insights for {len(request.developers)} active developers "
            f"({len(request.inactive_developers)} inactive excluded)"
        )

        try:
            response = await asyncio.wait_for(self.client.analyze(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            log.error(f"Insight service timed out after {self.timeout}s")
            return self._fallback(f"Insight service timeout ({self.timeout:g}s)", metrics)
        except InsightUnavailable as e:
            log.error(f"Insight service unavailable: {e}")
            return self._fallback(str(e), metrics)
        except Exception as e:
            log.exception(f"Unexpected insight client failure: {e}")
            return self._fallback(f"Insight client error: {e}", metrics)

        if not response.success:
            log.warning(f"Insight service reported failure: {response.error}")
            return self._fallback(response.error or "Insight service reported failure", metrics)

        if response.metadata is None:
            response = response.model_copy(
                update={
                    "metadata": AnalysisMetadata(
                        active_developers=len(request.developers),
                        total_developers=len(developers),
                        normalized_efficiency=True,
                        analysis_timestamp=datetime.now(timezone.utc),
                    )
                }
            )
        log.info(f"Received {len(response.insights)} insights")
        return response

    async def get_recommendations(self, sprint_id: Optional[int] = None) -> List[str]:
        try:
            items = await asyncio.wait_for(
                self.client.recommendations(sprint_id), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            log.error(f"Recommendations timed out after {self.timeout}s")
            return list(prompts.DEFAULT_RECOMMENDATIONS)
        except Exception as e:
            log.error(f"Recommendations unavailable: {e}")
            return list(prompts.DEFAULT_RECOMMENDATIONS)
        return items or list(prompts.DEFAULT_RECOMMENDATIONS)
