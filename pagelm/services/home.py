from __future__ import annotations

import logging

from pagelm.db.preferences import PreferenceStore
from pagelm.models.subject import Subject
from pagelm.services.api_client import PageLMClient, PageLMError
from pagelm.services.subscription import SubscriptionManager
from pagelm.services.workspace import Workspace

logger = logging.getLogger(__name__)


class Home:
    """Subject list; creating a subject opens its workspace."""

    def __init__(
        self,
        api: PageLMClient,
        store: PreferenceStore,
        streams: SubscriptionManager | None = None,
    ) -> None:
        self.api = api
        self.store = store
        self.streams = streams
        self.subjects: list[Subject] = []
        self.error: str | None = None
        self.path = "/"

    async def refresh(self) -> list[Subject]:
        try:
            self.subjects = await self.api.list_subjects()
        except PageLMError as e:
            logger.warning("Failed to load subjects: %s", e)
            self.error = str(e)
        return self.subjects

    async def open(self, subject_id: str) -> Workspace:
        ws = await Workspace.open(self.api, subject_id, self.store, self.streams)
        self.path = ws.path
        return ws

    async def create(self, name: str) -> Workspace | None:
        name = name.strip()
        if not name:
            return None
        subject = await self.api.create_subject(name)
        logger.info("Created subject %s (%s)", subject.id, subject.name)
        return await self.open(subject.id)

    async def delete(self, subject_id: str) -> None:
        await self.api.delete_subject(subject_id)
        self.subjects = [s for s in self.subjects if s.id != subject_id]
