"""Request and response bodies exchanged with the parse/generate services."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

CONTENT_TYPES = ["rules", "setup", "reference"]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ParseRequest(_WireModel):
    game_id: int = Field(..., alias="gameId")
    url: str


class ParseResponse(_WireModel):
    success: bool = False
    error: str | None = None


class GenerateRequest(_WireModel):
    game_id: int = Field(..., alias="gameId")
    content_types: list[str] = Field(default_factory=lambda: list(CONTENT_TYPES), alias="contentTypes")
    quality_tier: str = Field("sonnet", alias="model")
    family_context: dict[str, Any] | None = Field(None, alias="familyContext")
    # Rendered prompt sections: enrichment, family and expansionNote
    context: dict[str, str | None] | None = None


class GenerateResponse(_WireModel):
    success: bool = False
    error: str | None = None
    # Per content type failures, e.g. {"rules": "timeout"}
    errors: dict[str, str] | None = None

    def failure_message(self) -> str:
        """Compose a diagnostic message, keeping sub-error detail for triage."""
        if self.errors:
            failed_types = ", ".join(self.errors)
            first_error = next(iter(self.errors.values()))
            detail = f"Generation failed for {failed_types}: {first_error}"
            return f"{self.error}: {detail}" if self.error else detail
        return self.error or "Generation failed"
