from pagelm.models.base import ApiModel


class ProviderInfo(ApiModel):
    id: str
    name: str
    default_model: str = ""


class ModelsResponse(ApiModel):
    providers: list[ProviderInfo] = []
    default_provider: str = ""


class TranscriptionResult(ApiModel):
    ok: bool
    transcription: str | None = None
    provider: str | None = None
    confidence: float | None = None  # 0.0–1.0 when the provider reports it
    error: str | None = None
