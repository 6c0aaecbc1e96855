from enum import Enum

from pydantic import field_validator

from pagelm.models.base import ApiModel


class SourceType(str, Enum):
    MATERIAL = "material"
    EXERCISE = "exercise"
    WEBSEARCH = "websearch"


class SearchMode(str, Enum):
    QUICK = "quick"
    DEEP = "deep"


class Subject(ApiModel):
    id: str
    name: str
    created_at: int = 0
    updated_at: int = 0
    source_count: int = 0
    system_prompt: str | None = None


class Source(ApiModel):
    id: str
    filename: str
    original_name: str = ""
    mime_type: str = ""
    size: int = 0
    uploaded_at: int = 0
    source_type: SourceType = SourceType.MATERIAL
    search_query: str | None = None
    search_mode: SearchMode | None = None
    source_url: str | None = None

    @field_validator("source_type", mode="before")
    @classmethod
    def _default_material(cls, v):
        # older records were stored before source types existed
        return v or SourceType.MATERIAL

    @property
    def display_name(self) -> str:
        return self.original_name or self.filename


class UploadResult(ApiModel):
    sources: list[Source]
    warnings: list[str] = []


class WebSearchHit(ApiModel):
    title: str = ""
    url: str = ""
    content: str = ""
    score: float | None = None
