"""Tool names and their declared input schemas.

The tool set is closed: each ToolName member is bound to exactly one input
model in TOOL_SPECS. Arguments from the model are validated against that
input model before any handler runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolName(str, Enum):
    READ_FILE = "read-file"
    GET_LINE_RANGE = "get-line-range"
    GET_FILE_INFO = "get-file-info"
    SEARCH_IN_PROJECT = "search-in-project"
    SEARCH_IN_FILE = "search-in-file"
    SEARCH_BY_REGEX = "search-by-regex"
    FIND_FILES_BY_NAME = "find-files-by-name"
    LIST_FILES = "list-files"
    GET_PROJECT_STRUCTURE = "get-project-structure"
    GET_PROJECT_INFO = "get-project-info"
    WRITE_FILE = "write-file"
    REPLACE_IN_FILE = "replace-in-file"
    INSERT_AT_LINE = "insert-at-line"
    APPEND_TO_FILE = "append-to-file"
    CREATE_FILE = "create-file"
    DELETE_FILE = "delete-file"
    COPY_FILE = "copy-file"
    MOVE_FILE = "move-file"
    RUN_COMMAND = "run-command"


class ToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ReadFileInput(ToolInput):
    path: str = Field(description="File path relative to the project root")


class GetLineRangeInput(ToolInput):
    path: str = Field(description="File path relative to the project root")
    start_line: int = Field(ge=1, description="First line to return (1-indexed)")
    end_line: int = Field(ge=1, description="Last line to return (inclusive)")


class GetFileInfoInput(ToolInput):
    path: str = Field(description="File path relative to the project root")


class SearchInProjectInput(ToolInput):
    query: str = Field(min_length=1, description="Text to search for")
    extensions: list[str] | None = Field(
        default=None, description='Only search files with these extensions, e.g. [".ts", ".py"]'
    )
    case_sensitive: bool = False
    max_results: int | None = Field(default=None, ge=1, description="Maximum files to report")


class SearchInFileInput(ToolInput):
    path: str = Field(description="File path relative to the project root")
    query: str = Field(min_length=1, description="Text to search for")
    context_lines: int = Field(default=2, ge=0, le=20, description="Lines of context around each match")
    case_sensitive: bool = False


class SearchByRegexInput(ToolInput):
    pattern: str = Field(min_length=1, description="Python regular expression")
    flags: str = Field(default="", description="Any of: i (ignore case), m (multiline), s (dotall)")
    directory: str = Field(default=".", description="Directory to search, relative to the project root")
    extensions: list[str] | None = None
    max_results: int | None = Field(default=None, ge=1)


class FindFilesByNameInput(ToolInput):
    pattern: str = Field(min_length=1, description='Glob matched against file names, e.g. "*.test.ts"')
    directory: str = "."


class ListFilesInput(ToolInput):
    directory: str = Field(default=".", description="Directory relative to the project root")
    recursive: bool = False


class GetProjectStructureInput(ToolInput):
    directory: str = "."
    max_depth: int = Field(default=3, ge=1, le=10)


class GetProjectInfoInput(ToolInput):
    pass


class WriteFileInput(ToolInput):
    path: str = Field(description="File path relative to the project root")
    content: str = Field(description="Complete new file content")
    explanation: str = Field(default="", description="Why this change is being made")


class ReplaceInFileInput(ToolInput):
    path: str = Field(description="File path relative to the project root")
    search: str = Field(min_length=1, description="Exact block of existing text to replace")
    replace: str = Field(description="Replacement text")
    explanation: str = ""


class InsertAtLineInput(ToolInput):
    path: str
    line: int = Field(ge=1, description="1-indexed line to insert before; line count + 1 appends")
    content: str
    explanation: str = ""


class AppendToFileInput(ToolInput):
    path: str
    content: str
    explanation: str = ""


class CreateFileInput(ToolInput):
    path: str
    content: str = ""
    explanation: str = ""


class DeleteFileInput(ToolInput):
    path: str
    explanation: str = ""


class CopyFileInput(ToolInput):
    source: str
    destination: str


class MoveFileInput(ToolInput):
    source: str
    destination: str


class RunCommandInput(ToolInput):
    command: str = Field(min_length=1, description="Shell command line, run in the project root")
    timeout: float | None = Field(default=None, gt=0, description="Seconds before the command is killed")


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    input_model: type[ToolInput]
    description: str
    mutating: bool = False

    def function_schema(self) -> dict[str, Any]:
        """OpenAI-style function definition for this tool."""
        parameters = self.input_model.model_json_schema()
        parameters.pop("title", None)
        for prop in parameters.get("properties", {}).values():
            prop.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": parameters,
            },
        }


TOOL_SPECS: dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in [
        ToolSpec(ToolName.READ_FILE, ReadFileInput, "Read a whole text file."),
        ToolSpec(
            ToolName.GET_LINE_RANGE,
            GetLineRangeInput,
            "Read a range of lines from a file. Use for large files.",
        ),
        ToolSpec(
            ToolName.GET_FILE_INFO,
            GetFileInfoInput,
            "Get size, line count and modification time of a file before reading it.",
        ),
        ToolSpec(
            ToolName.SEARCH_IN_PROJECT,
            SearchInProjectInput,
            "Search every text file in the project for a string.",
        ),
        ToolSpec(
            ToolName.SEARCH_IN_FILE,
            SearchInFileInput,
            "Search one file for a string and show surrounding lines.",
        ),
        ToolSpec(
            ToolName.SEARCH_BY_REGEX,
            SearchByRegexInput,
            "Search project files with a regular expression.",
        ),
        ToolSpec(
            ToolName.FIND_FILES_BY_NAME,
            FindFilesByNameInput,
            "Find files whose name matches a glob pattern.",
        ),
        ToolSpec(ToolName.LIST_FILES, ListFilesInput, "List the entries of a directory."),
        ToolSpec(
            ToolName.GET_PROJECT_STRUCTURE,
            GetProjectStructureInput,
            "Show the project directory tree up to a depth.",
        ),
        ToolSpec(
            ToolName.GET_PROJECT_INFO,
            GetProjectInfoInput,
            "Read project metadata from package.json or pyproject.toml.",
        ),
        ToolSpec(
            ToolName.WRITE_FILE,
            WriteFileInput,
            "Replace the entire content of a file. Prefer replace-in-file for small edits.",
            mutating=True,
        ),
        ToolSpec(
            ToolName.REPLACE_IN_FILE,
            ReplaceInFileInput,
            "Replace an exact block of text in a file. Read the file first to copy the block verbatim.",
            mutating=True,
        ),
        ToolSpec(
            ToolName.INSERT_AT_LINE,
            InsertAtLineInput,
            "Insert content before a given line of a file.",
            mutating=True,
        ),
        ToolSpec(
            ToolName.APPEND_TO_FILE,
            AppendToFileInput,
            "Append content to the end of an existing file.",
            mutating=True,
        ),
        ToolSpec(
            ToolName.CREATE_FILE,
            CreateFileInput,
            "Create a new file. Fails if the file already exists.",
            mutating=True,
        ),
        ToolSpec(ToolName.DELETE_FILE, DeleteFileInput, "Delete a file.", mutating=True),
        ToolSpec(
            ToolName.COPY_FILE,
            CopyFileInput,
            "Copy a file to a new path. Fails if the destination exists.",
            mutating=True,
        ),
        ToolSpec(
            ToolName.MOVE_FILE,
            MoveFileInput,
            "Move or rename a file. Fails if the destination exists.",
            mutating=True,
        ),
        ToolSpec(
            ToolName.RUN_COMMAND,
            RunCommandInput,
            "Run a shell command in the project root. Output is truncated; destructive commands are refused.",
        ),
    ]
}
