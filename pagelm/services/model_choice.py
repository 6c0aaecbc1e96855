from __future__ import annotations

import logging

from pagelm.models.setup import ProviderInfo
from pagelm.services.api_client import PageLMClient, PageLMError

logger = logging.getLogger(__name__)


class ModelChoice:
    """Provider/model picked for chat and generation; empty means backend default."""

    def __init__(self) -> None:
        self.providers: list[ProviderInfo] = []
        self.provider: str = ""
        self.model: str = ""
        self.loaded = False

    async def load(self, api: PageLMClient) -> None:
        try:
            res = await api.list_models()
        except PageLMError as e:
            # the backend default is used when the catalog cannot be read
            logger.warning("Could not load model catalog: %s", e)
            self.loaded = True
            return
        self.providers = res.providers
        if res.default_provider:
            default = next((p for p in res.providers if p.id == res.default_provider), None)
            self.provider = res.default_provider
            self.model = default.default_model if default else ""
        self.loaded = True

    def select(self, provider: str, model: str = "") -> None:
        info = next((p for p in self.providers if p.id == provider), None)
        if self.providers and info is None:
            raise ValueError(f"Unknown provider: {provider}")
        self.provider = provider
        self.model = model or (info.default_model if info else "")

    def as_override(self) -> dict[str, str]:
        return {k: v for k, v in (("provider", self.provider), ("model", self.model)) if v}
