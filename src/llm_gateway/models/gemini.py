"""Pydantic models for Gemini generateContent request schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Part(BaseModel):
    """One part of a Gemini content turn."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    text: str | None = None
    inline_data: dict[str, Any] | None = Field(None, alias="inlineData")
    function_call: dict[str, Any] | None = Field(None, alias="functionCall")
    function_response: dict[str, Any] | None = Field(None, alias="functionResponse")


class Content(BaseModel):
    role: Literal["user", "model", "function"] = "user"
    parts: list[Part]


class SystemInstruction(BaseModel):
    parts: list[Part]


class GenerationConfig(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    temperature: float | None = None
    top_p: float | None = Field(None, alias="topP")
    max_output_tokens: int | None = Field(None, alias="maxOutputTokens")
    stop_sequences: list[str] | None = Field(None, alias="stopSequences")


class GenerateContentRequest(BaseModel):
    """Request body for models/{model}:generateContent."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    contents: list[Content]
    system_instruction: SystemInstruction | None = Field(None, alias="systemInstruction")
    generation_config: GenerationConfig | None = Field(None, alias="generationConfig")
    tools: list[dict[str, Any]] | None = None
