from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator, model_validator

from notes_client.core.paths import ROOT, name_of, normalize_path, parent_of

from .base import RemoteModel


class Folder(RemoteModel):
    """Folder node, identified by its path."""

    path: str = Field(description="Normalized folder path, e.g. /work/2024")
    name: str = Field(default="", description="Last path segment")

    @field_validator("path", mode="before")
    @classmethod
    def validate_path(cls, v: Any) -> str:
        path = normalize_path(v)
        if path == ROOT:
            raise ValueError("The root is not a folder record")
        return path

    @model_validator(mode="after")
    def derive_name(self) -> Folder:
        # The path is authoritative; a stale name from the wire is ignored
        self.name = name_of(self.path)
        return self

    @property
    def parent_path(self) -> str:
        return parent_of(self.path) or ROOT

    @classmethod
    def at(cls, path: str) -> Folder:
        return cls(path=path)
