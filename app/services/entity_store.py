import asyncio
import logging
from typing import Any, List, Optional, Type, TypeVar

import httpx
from fastapi import HTTPException, status
from pydantic import BaseModel, ValidationError

from app.schemas.entities import (
    Developer,
    EntitySnapshot,
    Project,
    Sprint,
    Task,
    TaskAssignment,
)

log = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class EntityStoreService:
    """Read-only client for the project-tracking store (tasks, sprints, projects, users)."""

    PROJECTS_PATH = "/projectlist"
    SPRINTS_PATH = "/sprintlist"
    TASKS_PATH = "/tasklist"
    USERS_PATH = "/userlist"
    ASSIGNEES_PATH = "/task-assignees"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _make_store_request(self, path: str, params: Optional[dict] = None) -> Any:
        """Общий метод для GET-запросов к хранилищу, с повтором при 500 и сетевых ошибках"""
        url = f"{self.base_url}{path}"
        params = {k: v for k, v in (params or {}).items() if v is not None}
        attempt = 0
        while True:
            try:
                log.debug(f"Making request to entity store: GET {url} {params}")
                response = await self.http_client.get(
                    url, params=params, headers=self._headers(), timeout=self.timeout
                )
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                code = e.response.status_code
                if code == 500 and attempt < self.max_retries:
                    attempt += 1
                    log.warning(
                        f"Entity store returned 500, retrying ({attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(self.retry_delay * 2)
                    continue
                if code == 401:
                    raise HTTPException(
                        status_code=status.HTTP_401_UNAUTHORIZED,
                        detail="Invalid or expired entity store credentials",
                    )
                elif code == 403:
                    raise HTTPException(
                        status_code=status.HTTP_403_FORBIDDEN,
                        detail="Not enough permissions to read from the entity store",
                    )
                elif code == 404:
                    raise HTTPException(
                        status_code=status.HTTP_404_NOT_FOUND,
                        detail="Requested resource not found",
                    )
                else:
                    log.error(f"Entity store request failed: {e}")
                    raise HTTPException(
                        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                        detail="Entity store is temporarily unavailable",
                    )
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    attempt += 1
                    log.warning(
                        f"Entity store request failed ({e}), retrying ({attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise HTTPException(
                    status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                    detail="Entity store did not respond in time",
                )

    async def _get_collection(
        self, path: str, model: Type[ModelT], params: Optional[dict] = None
    ) -> List[ModelT]:
        payload = await self._make_store_request(path, params)
        if not isinstance(payload, list):
            log.error(f"Entity store returned non-list payload for {path}: {type(payload)}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Unexpected payload from entity store for {path}",
            )
        try:
            return [model.model_validate(item) for item in payload]
        except ValidationError as e:
            log.error(f"Invalid {model.__name__} payload from entity store: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Invalid {model.__name__} data from entity store",
            )

    async def get_projects(self) -> List[Project]:
        """Получение списка проектов"""
        return await self._get_collection(self.PROJECTS_PATH, Project)

    async def get_sprints(self, project_id: Optional[int] = None) -> List[Sprint]:
        """Получение списка спринтов"""
        return await self._get_collection(
            self.SPRINTS_PATH, Sprint, {"project_id": project_id}
        )

    async def get_tasks(
        self,
        project_id: Optional[int] = None,
        sprint_id: Optional[int] = None,
        task_status: Optional[int] = None,
    ) -> List[Task]:
        """Получение списка задач"""
        return await self._get_collection(
            self.TASKS_PATH,
            Task,
            {
                "project_id": project_id,
                "sprint_id": sprint_id,
                "status": int(task_status) if task_status is not None else None,
            },
        )

    async def get_developers(self) -> List[Developer]:
        """Получение списка пользователей"""
        return await self._get_collection(self.USERS_PATH, Developer)

    async def get_assignments(self, sprint_id: Optional[int] = None) -> List[TaskAssignment]:
        """Получение связей задача-исполнитель"""
        return await self._get_collection(
            self.ASSIGNEES_PATH, TaskAssignment, {"sprint_id": sprint_id}
        )

    async def load_snapshot(self, project_id: Optional[int] = None) -> EntitySnapshot:
        """
        Fetch every collection needed for one aggregation pass.

        Tasks are fetched unfiltered: the project is derived through the
        sprint, so a project filter on tasks could miss sprint-linked rows.
        """
        projects = await self.get_projects()
        sprints = await self.get_sprints(project_id)
        tasks = await self.get_tasks()
        developers = await self.get_developers()
        assignments = await self.get_assignments()
        log.info(
            f"Loaded snapshot: {len(sprints)} sprints, {len(tasks)} tasks, "
            f"{len(developers)} developers, {len(assignments)} assignments"
        )
        return EntitySnapshot(
            projects=projects,
            sprints=sprints,
            tasks=tasks,
            developers=developers,
            assignments=assignments,
            project_id=project_id,
        )
