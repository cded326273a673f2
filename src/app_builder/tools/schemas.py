"""Strict Pydantic schemas for sandbox tool inputs."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class StrictModel(BaseModel):
    """Base model for strict schema validation."""

    model_config = ConfigDict(extra="forbid")


class TerminalInput(StrictModel):
    command: str = Field(min_length=1)


class FileEntry(StrictModel):
    path: str = Field(min_length=1)
    content: str


class CreateOrUpdateFilesInput(StrictModel):
    files: list[FileEntry]


class ReadFilesInput(StrictModel):
    files: list[str]
