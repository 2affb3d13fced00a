from pydantic import BaseModel, Field


class AnalysisMeta(BaseModel):
    namespace: str
    pod: str
    container: str
    cluster: str | None = None


class AnalysisRequest(BaseModel):
    meta: AnalysisMeta
    recent_log_chunk: str = Field(alias="recentLogChunk")  # already-redacted excerpt
    question: str | None = None  # free-text question from the viewer, if any

    model_config = {"populate_by_name": True}
