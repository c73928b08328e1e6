"""Reusable LLM generation parameters.

Each agent declares its own ``LLMConfig`` (the tutor runs warm, the
architect and translator run cool) and merges it over the global defaults
from Settings.

Priority chain (low → high):
    .env global defaults  →  agent-level LLMConfig  →  per-call overrides
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM generation parameters.  ``None`` means "use the model's default"."""

    model: str | None = Field(default=None, description="'provider/model' identifier")
    max_tokens: int | None = Field(default=None, description="Max tokens to generate")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    seed: int | None = Field(default=None, description="Random seed for reproducibility")
    stop: list[str] | None = Field(default=None, description="Stop sequences")

    def merge(self, overrides: LLMConfig) -> LLMConfig:
        """Return a new LLMConfig: *self* as base, *overrides* wins on non-None fields."""
        base = self.model_dump(exclude_none=True)
        base.update(overrides.model_dump(exclude_none=True))
        return LLMConfig(**base)

    def to_model_settings(self) -> dict:
        """Convert to PydanticAI ``model_settings`` (a ``ModelSettings`` dict)."""
        settings: dict = {}
        for field in ("max_tokens", "temperature", "top_p", "seed"):
            val = getattr(self, field)
            if val is not None:
                settings[field] = val
        if self.stop:
            settings["stop_sequences"] = list(self.stop)
        return settings
