"""Settings shared by the container manager and the image builder."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ManagerSettings(BaseModel):
    """Naming, timeout, label and cache tunables."""

    name_prefix: str = Field(default="apex", description="Prefix for generated container names.")
    name_separator: str = Field(default="-", description="Separator between name components.")
    include_task_id: bool = Field(default=True, description="Include the task id in generated names.")
    include_timestamp: bool = Field(
        default=False,
        description="Append a base-36 millisecond timestamp to generated names.",
    )

    create_timeout: float = Field(default=30.0, gt=0, description="Seconds allowed for ``create``.")
    start_timeout: float = Field(default=30.0, gt=0, description="Seconds allowed for ``start``.")
    inspect_timeout: float = Field(default=10.0, gt=0, description="Seconds allowed for ``inspect``.")
    remove_timeout: float = Field(default=30.0, gt=0, description="Seconds allowed for ``rm``.")
    build_timeout: float = Field(default=600.0, gt=0, description="Seconds allowed for ``build``.")

    managed_label: str = Field(default="apex.managed", description="Label marking managed containers.")
    name_label: str = Field(
        default="apex.container-name",
        description="Label carrying the resolved container name.",
    )

    project_tag_prefix: str = Field(
        default="apex-project-",
        description="Prefix of generated image tags.",
    )
    cache_dir: str = Field(default=".apex", description="Cache directory, relative to the project root.")
    cache_file: str = Field(default="image-cache.json", description="Image cache file name.")
    cache_max_entries: int = Field(default=50, ge=1, description="LRU bound for the image cache.")
