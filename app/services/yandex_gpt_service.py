import logging
from datetime import datetime, timezone
from typing import List, Optional, Type

from pydantic import BaseModel, ValidationError
from yandex_cloud_ml_sdk import AsyncYCloudML

from app.config import Settings
from app.schemas.insight import (
    AnalysisMetadata,
    AnalysisRequest,
    AnalysisResponse,
    InsightPayload,
    RecommendationsPayload,
)
from app.services import prompts
from app.services.errors import InsightUnavailable

log = logging.getLogger(__name__)


def format_analysis_prompt(request: AnalysisRequest) -> str:
    """Render the user prompt; only active developers are described in detail."""
    records = request.performance_data
    metrics = request.metrics

    by_developer = {}
    for record in records:
        stats = by_developer.setdefault(
            record.developer_id,
            {"name": record.developer_name, "tasks": 0, "efficiency": record.normalized_efficiency},
        )
        stats["tasks"] += record.tasks_completed

    developer_lines = "\n".join(
        f"- {stats['name']}: {stats['tasks']} tasks, {stats['efficiency']:.0f}% efficiency"
        for stats in list(by_developer.values())[:10]
    ) or "- no active developers"

    inactive_block = ""
    if request.inactive_developers:
        lines = "\n".join(f"- {d.display_name}" for d in request.inactive_developers[:10])
        extra = len(request.inactive_developers) - 10
        if extra > 0:
            lines += f"\n... and {extra} more"
        inactive_block = prompts.INACTIVE_DEVELOPERS_BLOCK.format(lines=lines)

    sprint_lines = "\n".join(
        f"- {s.name}: {s.start_date.date() if s.start_date else 'N/A'} - "
        f"{s.end_date.date() if s.end_date else 'N/A'}"
        for s in request.sprints
    ) or "- no sprints"

    return prompts.PERFORMANCE_ANALYSIS_USER.format(
        active_developers=len(request.developers),
        inactive_developers=len(request.inactive_developers),
        sprint_count=len(request.sprints),
        total_hours=sum(r.hours_worked for r in records),
        total_tasks=metrics.total_tasks_assigned,
        completed_tasks=metrics.total_tasks_completed,
        completion_rate=metrics.completion_rate.value,
        average_efficiency=metrics.average_efficiency.value,
        developer_lines=developer_lines,
        inactive_block=inactive_block,
        sprint_lines=sprint_lines,
    )


class YandexGPTInsightClient:
    """
    Insight collaborator backed by Yandex GPT via yandex-cloud-ml-sdk.
    Uses the SDK's asynchronous interface (AsyncYCloudML), configures response_format
    with the target Pydantic model, extracts JSON from the result object, and parses it.
    """

    def __init__(self, config: Settings):
        self.config = config
        self.base_model = None

    def _get_base_model(self):
        """
        SDK создается при первом обращении; ошибки настройки поднимаются как InsightUnavailable.
        """
        if self.base_model is not None:
            return self.base_model

        config = self.config
        if not config.yc_folder_id:
            raise InsightUnavailable("Yandex Cloud Folder ID (YC_FOLDER_ID) is not configured.")

        auth_param = config.yc_api_key or config.yc_iam_token
        if not auth_param:
            log.warning("No YC_API_KEY or YC_IAM_TOKEN found. Attempting SDK default auth.")

        try:
            self.sdk = AsyncYCloudML(folder_id=config.yc_folder_id, auth=auth_param)
            self.base_model = self.sdk.models.completions(
                config.yc_gpt_model, model_version=config.yc_gpt_version
            ).configure(
                temperature=config.yc_gpt_temperature,
                max_tokens=config.yc_gpt_max_tokens,
            )
        except Exception as e:
            raise InsightUnavailable(
                f"Failed to initialize Yandex Cloud ML SDK: {e}. Ensure credentials are set."
            ) from e
        return self.base_model

    async def _call_llm_structured(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        response_model: Type[BaseModel],
    ) -> BaseModel:
        """Calls Yandex GPT API async, requests structured output, extracts JSON from result, parses and returns Pydantic instance."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "text": system_prompt})
        messages.append({"role": "user", "text": user_prompt})

        result = None
        json_string = None
        try:
            configured_model = self._get_base_model().configure(response_format=response_model)

            log.debug(f"Run configured model: {configured_model}")
            result = await configured_model.run(messages)

            alternatives = getattr(result, "alternatives", None)
            if not alternatives:
                raise InsightUnavailable(
                    f"Received no alternatives from the model. Value: {result}"
                )

            json_string = getattr(alternatives[0], "text", None)
            if not json_string or not json_string.strip():
                raise InsightUnavailable(
                    f"Invalid or empty alternative in model result. Alternative: {alternatives[0]}"
                )

            cleaned = json_string.replace("```json", "").replace("```", "").strip()
            return response_model.model_validate_json(cleaned)

        except ValidationError as ve:
            log.error(f"Yandex GPT validation error: {ve}. Extracted text: '{json_string}'")
            raise InsightUnavailable(
                f"LLM response failed validation for {response_model.__name__}: {ve}"
            ) from ve
        except InsightUnavailable:
            raise
        except Exception as e:
            log.error(f"Yandex GPT ML SDK async error: {e}. Raw result: {result}")
            error_suffix = f". Raw result: {result}" if result else ""
            raise InsightUnavailable(
                f"Failed async call via Yandex GPT ML SDK: {e}{error_suffix}"
            ) from e

    async def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        user_prompt = format_analysis_prompt(request)
        log.debug(f"Analysis prompt length: {len(user_prompt)} characters")

        payload: InsightPayload = await self._call_llm_structured(
            prompts.PERFORMANCE_ANALYSIS_SYSTEM, user_prompt, response_model=InsightPayload
        )
        return AnalysisResponse(
            success=True,
            insights=payload.insights,
            summary=payload.summary,
            metadata=AnalysisMetadata(
                active_developers=len(request.developers),
                total_developers=len(request.developers) + len(request.inactive_developers),
                normalized_efficiency=True,
                analysis_timestamp=datetime.now(timezone.utc),
            ),
        )

    async def recommendations(self, sprint_id: Optional[int] = None) -> List[str]:
        sprint_clause = f" in sprint {sprint_id}" if sprint_id is not None else ""
        payload: RecommendationsPayload = await self._call_llm_structured(
            prompts.RECOMMENDATIONS_SYSTEM,
            prompts.RECOMMENDATIONS_USER.format(sprint_clause=sprint_clause),
            response_model=RecommendationsPayload,
        )
        return payload.recommendations[:5]
