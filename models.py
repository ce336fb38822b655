from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Inbound edit request ---
class EditFileRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_file: str
    instructions: str
    edit_snippet: str = Field(alias="editSnippet")
    stream: bool = False

    @field_validator("target_file", "instructions", "edit_snippet", mode="before")
    @classmethod
    def _non_blank(cls, value: object) -> object:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("stream", mode="before")
    @classmethod
    def _literal_true(cls, value: object) -> bool:
        # Anything but a JSON true means buffered.
        return value is True


# --- Upstream request ---
class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    messages: tuple[Message, Message]
    stream: bool = False


# --- Upstream response ---
class Usage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class AssistantMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None


class Choice(BaseModel):
    index: int = 0
    message: AssistantMessage | None = None
    finish_reason: str | None = None


class CompletionResponse(BaseModel):
    id: str | None = None
    model: str | None = None
    choices: list[Choice] = []
    usage: Usage | None = None

    def first_content(self) -> str | None:
        if not self.choices or self.choices[0].message is None:
            return None
        return self.choices[0].message.content


# --- Response returned to the caller ---
class EditFileResponse(BaseModel):
    updatedCode: str
    model: str
    usage: Usage | None = None
