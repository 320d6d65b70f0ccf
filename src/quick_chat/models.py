import uuid
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


def new_message_id() -> str:
    return uuid.uuid4().hex


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolInvocation(BaseModel):
    """A tool call requested by the model, plus its result once executed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    args: Dict[str, Any] = Field(default_factory=dict)
    state: Literal["call", "result"] = "call"
    result: Any = None


class ToolInvocationPart(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_invocation: ToolInvocation = Field(alias="toolInvocation")


Part = Annotated[Union[TextPart, ToolInvocationPart], Field(discriminator="type")]


class Message(BaseModel):
    """A single conversation turn.

    ``content`` carries the plain text of the message. ``parts`` keeps the
    ordered text and tool-invocation pieces; when a client only sends
    ``content`` the message is treated as a single text part.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_message_id)
    role: Literal["user", "assistant", "system"]
    content: str = ""
    parts: Tuple[Part, ...] = ()

    @property
    def text(self) -> str:
        """Full text of the message, as copied to the clipboard."""
        if not self.parts:
            return self.content
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def iter_parts(self):
        if self.parts:
            return iter(self.parts)
        return iter([TextPart(text=self.content)] if self.content else [])


class ChatRequest(BaseModel):
    messages: list[Message]


class ErrorBody(BaseModel):
    error: str
    type: Optional[str] = None
    details: Optional[str] = None
