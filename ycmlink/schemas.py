"""Request and response documents exchanged with the daemon."""

from pydantic import BaseModel, Field

FILE_READY_TO_PARSE = "FileReadyToParse"


class FileData(BaseModel):
    contents: str
    filetypes: list[str]


class BaseRequest(BaseModel):
    line_num: int = Field(ge=1)
    column_num: int = Field(ge=1)
    filepath: str
    file_data: dict[str, FileData]


class EventNotification(BaseRequest):
    event_name: str = FILE_READY_TO_PARSE


class ExtraConfRequest(BaseModel):
    filepath: str


class CompletionCandidate(BaseModel):
    insertion_text: str
    detailed_info: str | None = None
    kind: str | None = None
    extra_menu_info: str | None = None
    menu_text: str | None = None

    model_config = {"frozen": True}


class CompletionsResponse(BaseModel):
    completions: list[CompletionCandidate]
    completion_start_column: int | None = None
