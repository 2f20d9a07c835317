from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from mjml_api.compiler import Diagnostic


class DiagnosticModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    line: int
    message: str
    tag_name: str = Field(alias="tagName")
    formatted_message: str = Field(alias="formattedMessage")

    @classmethod
    def from_diagnostic(cls, diagnostic: Diagnostic) -> DiagnosticModel:
        return cls(
            line=diagnostic.line,
            message=diagnostic.message,
            tag_name=diagnostic.tag_name,
            formatted_message=diagnostic.formatted_message,
        )


class RenderResponse(BaseModel):
    html: str | None = None
    mjml: str
    mjml_version: str
    errors: list[DiagnosticModel] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str


class CompileFailureResponse(MessageResponse):
    errors: list[DiagnosticModel] = Field(default_factory=list)
