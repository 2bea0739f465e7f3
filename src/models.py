# File: models.py
# Pydantic models for preprocessing options and API request/response validation.

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MarkdownOptions(BaseModel):
    """
    Resolved option set deciding which preprocessing stages run and which
    renderer plugins are requested. Accepts snake_case or camelCase names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    allow_html: bool = Field(
        False, alias="allowHtml", description="Let raw HTML through to the renderer."
    )
    animated: bool = Field(
        False, alias="animated", description="Request the streaming fade-in plugin."
    )
    enable_custom_footnotes: bool = Field(
        False,
        alias="enableCustomFootnotes",
        description="Rewrite [n] markers into citation links.",
    )
    enable_latex: bool = Field(
        False,
        alias="enableLatex",
        description="Normalize LaTeX delimiters and escape mhchem/currency dollars.",
    )
    is_chat_mode: bool = Field(
        False, alias="isChatMode", description="Chat rendering (soft line breaks, external links)."
    )
    citations_length: int = Field(
        0,
        ge=0,
        alias="citationsLength",
        description="Number of known citations; markers above it are left untouched.",
    )
    fix_markdown_bold: bool = Field(
        False,
        alias="fixMarkdownBold",
        description="Insert a space after a closing ** that follows punctuation.",
    )


class OptionOverrides(BaseModel):
    """Request-level overrides applied on top of the selected profile."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    allow_html: Optional[bool] = Field(None, alias="allowHtml")
    animated: Optional[bool] = Field(None, alias="animated")
    enable_custom_footnotes: Optional[bool] = Field(None, alias="enableCustomFootnotes")
    enable_latex: Optional[bool] = Field(None, alias="enableLatex")
    is_chat_mode: Optional[bool] = Field(None, alias="isChatMode")
    citations_length: Optional[int] = Field(None, ge=0, alias="citationsLength")
    fix_markdown_bold: Optional[bool] = Field(None, alias="fixMarkdownBold")


class PreprocessRequest(BaseModel):
    """Request model for the /preprocess endpoint."""

    content: str = Field("", description="Raw markdown content of one message.")
    profile: Optional[str] = Field(
        None,
        description="Named option profile (chat, document, plain). Defaults to the active profile.",
    )
    options: Optional[OptionOverrides] = Field(
        None, description="Overrides applied on top of the profile."
    )
    cache_key: Optional[str] = Field(
        None,
        description="Caller-supplied cache namespace such as a message id, combined with the content and options.",
    )


class PreprocessResponse(BaseModel):
    content: str = Field(..., description="Preprocessed markdown, ready for the renderer.")
    cached: bool = Field(False, description="True when the output came from the cache.")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IncompleteFormulaRequest(BaseModel):
    content: str = Field("", description="Latest streamed content.")


class IncompleteFormulaResponse(BaseModel):
    formula: str = Field(..., description="Dangling display formula, empty when none.")
    renderable: bool = Field(..., description="Whether the dangling formula can be rendered yet.")


class PluginRequest(BaseModel):
    profile: Optional[str] = None
    options: Optional[OptionOverrides] = None


class PluginResponse(BaseModel):
    remark_plugins: List[Any] = Field(default_factory=list)
    rehype_plugins: List[Any] = Field(default_factory=list)


class CacheStatusResponse(BaseModel):
    size: int
    capacity: int


class ErrorResponse(BaseModel):
    """Standard error response model for API errors."""

    detail: str = Field(..., description="A human-readable explanation of the error.")


class UpdateStatusResponse(BaseModel):
    """Response model for state-changing calls such as clearing the cache."""

    message: str = Field(
        ..., description="A message describing the result of the operation."
    )
    cleared_entries: int = Field(0, description="Number of cache entries removed.")
