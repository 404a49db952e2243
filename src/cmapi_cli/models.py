"""Pydantic models for the JSON documents the CLI writes.

- ProsProjectFile: the ``project.pros`` marker the vendor toolchain reads
- RepositoryPayload: the repository creation request body
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ProjectState",
    "ProsProjectFile",
    "RepositoryProject",
    "RepositoryPayload",
]

PROS_PROJECT_CLASS = "pros.conductor.project.Project"


class ProjectState(BaseModel):
    """The ``py/state`` part of ``project.pros``."""

    model_config = ConfigDict(extra="ignore")

    project_name: str
    target: str = "v5"
    templates: dict[str, Any] = Field(default_factory=dict)
    upload_options: dict[str, Any] = Field(default_factory=dict)


class ProsProjectFile(BaseModel):
    """A minimal ``project.pros``.

    Serialized with the jsonpickle-style keys the toolchain expects::

        {"py/object": "pros.conductor.project.Project",
         "py/state": {"project_name": ..., "target": "v5", ...}}
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    py_object: str = Field(default=PROS_PROJECT_CLASS, alias="py/object")
    py_state: ProjectState = Field(alias="py/state")

    @classmethod
    def for_project(cls, project_name: str) -> "ProsProjectFile":
        return cls(py_state=ProjectState(project_name=project_name))

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=4)


class RepositoryProject(BaseModel):
    key: str


class RepositoryPayload(BaseModel):
    """Body of ``POST /2.0/repositories/{workspace}/{slug}``."""

    scm: str = "git"
    project: RepositoryProject
    name: str
    language: str = "c++"
    is_private: bool = True
