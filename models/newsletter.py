"""Newsletter models: the artifact produced by a completed run."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NewsletterArticle(BaseModel):
    """Single entry in a rendered newsletter."""

    title: str = Field(description="Article headline")
    url: str = Field(description="Article URL")
    summary: str = Field(description="2-3 sentence summary written for the reader")
    reason: str = Field(default="", description="Why this article was selected")
    source: str = Field(description="Hostname of the source page")


class Newsletter(BaseModel):
    """Personalized newsletter document.

    Serialized with camelCase ``generatedAt`` so stored artifacts and HTTP
    responses share one JSON shape. Always dump with ``by_alias=True``.
    """

    model_config = ConfigDict(populate_by_name=True)

    intro: str = Field(description="Short conversational intro paragraph")
    articles: list[NewsletterArticle] = Field(default_factory=list)
    generated_at: datetime = Field(alias="generatedAt", description="Render completion time (UTC)")

    def to_json(self) -> str:
        """Serialize for storage or transport."""
        return self.model_dump_json(by_alias=True)

    def to_dict(self) -> dict:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
