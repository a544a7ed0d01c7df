"""Run options of a sync, loadable from YAML and overridable from the CLI."""

from __future__ import annotations

from pathlib import Path
import re
from typing import Any, Self

import fsspec
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import pydantic
import yaml

from release_sync.build import DEFAULT_BUILD_COMMAND
from release_sync.exceptions import ValidationError
from release_sync.log import get_logger
from release_sync.models import Config
from release_sync.transport import is_remote


logger = get_logger(__name__)

_REPO = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

ReduceSpec = tuple[int | None, ...]


def parse_reduce(value: str) -> ReduceSpec:
    """Parse a `major[,minor[,patch]]` limit string, `*` meaning unlimited.

    Example:
        `"2,3,*"` -> `(2, 3, None)`
    """
    parts = value.split(",")
    if not 1 <= len(parts) <= 3 or not all(p == "*" or p.isdigit() for p in parts):  # noqa: PLR2004
        msg = f"Invalid reduce spec {value!r}, expected major[,minor[,patch]]"
        raise ValueError(msg)
    return tuple(None if p == "*" else int(p) for p in parts)


class SyncSettings(BaseModel):
    """Options of a single sync run."""

    model_config = ConfigDict(extra="forbid")

    repo: str
    """Repository full name (`owner/name`)."""

    download_target: str | None = None
    """Local path or fsspec URL the release files are mirrored to."""

    url_template: str | None = None
    """Template for user-facing download URLs (`{tag}`, `{name}`, `{release}`, `{url}`)."""

    fast_fail: bool = False
    """Abort the run on the first failed download."""

    fast_sync: bool = False
    """Move each file into the target right after its download."""

    concurrency: int = Field(default=1, ge=1)
    """Maximum number of downloads in flight."""

    retries: int = Field(default=3, ge=0)
    """Additional download attempts per file."""

    build_base: str | None = None
    """Base URL passed to the site build."""

    www_root: str | None = None
    """Local path or fsspec URL the built site is mirrored to."""

    save: str | None = None
    """Where to write the current config document after the run."""

    compare: str | None = None
    """Config document of the previous run."""

    from_config: str | None = None
    """Use this config document instead of ingesting from the API."""

    build_command: str | None = DEFAULT_BUILD_COMMAND
    """Site build command, empty to skip the build."""

    token: str | None = Field(default=None, repr=False)
    """GitHub API token."""

    reduce: ReduceSpec = ()
    """Limits on kept majors, minors per major and patches per minor."""

    ignore_empty_assets: bool = False
    """Drop releases without assets during ingestion."""

    @field_validator("repo")
    @classmethod
    def _check_repo(cls, value: str) -> str:
        if not _REPO.match(value):
            msg = f"Invalid repository {value!r}, expected owner/name"
            raise ValueError(msg)
        return value

    @field_validator("reduce", mode="before")
    @classmethod
    def _parse_reduce(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_reduce(value) if value else ()
        return value

    @model_validator(mode="after")
    def _check_protocols(self) -> Self:
        for field_name in ("download_target", "www_root", "save", "compare", "from_config"):
            location = getattr(self, field_name)
            if not location or not is_remote(location):
                continue
            protocol, _ = fsspec.core.split_protocol(location)
            if protocol not in fsspec.available_protocols():
                msg = f"Unknown protocol {protocol!r} in {field_name}: {location}"
                raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _check_local_paths(self) -> Self:
        for field_name in ("download_target", "www_root"):
            location = getattr(self, field_name)
            if not location or is_remote(location):
                continue
            path = Path(location.removeprefix("file://"))
            if path.exists() and not path.is_dir():
                msg = f"{field_name} is not a directory: {location}"
                raise ValueError(msg)
            if not path.exists() and not path.parent.is_dir():
                msg = f"Parent directory of {field_name} does not exist: {location}"
                raise ValueError(msg)
        for field_name in ("compare", "from_config"):
            location = getattr(self, field_name)
            if location and not is_remote(location) and Path(location).is_dir():
                msg = f"{field_name} is not a file: {location}"
                raise ValueError(msg)
        return self

    @classmethod
    def create(cls, settings_file: str | Path | None = None, **options: Any) -> SyncSettings:
        """Build settings from an optional YAML file and explicit options.

        Options that are None are ignored so file values are kept.

        Raises:
            ValidationError: If the file or the combined options are invalid
        """
        data: dict[str, Any] = {}
        if settings_file is not None:
            data.update(load_settings_file(settings_file))
        data.update({k: v for k, v in options.items() if v is not None})
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
                for err in e.errors()
            )
            msg = f"Invalid options: {errors}"
            raise ValidationError(msg) from e

    def load_compare(self) -> Config | None:
        """Load the compare snapshot.

        A missing file is logged and treated as no snapshot at all.

        Raises:
            ValidationError: If the file exists but is not a valid config document
        """
        if not self.compare:
            return None
        try:
            fs, path = fsspec.core.url_to_fs(self.compare)
        except ValueError as e:
            msg = f"Unsupported compare location {self.compare}: {e}"
            raise ValidationError(msg) from e
        if not fs.exists(path):
            logger.warning("Compare file does not exist, skipping comparison", path=self.compare)
            return None
        try:
            return Config.load(self.compare)
        except (pydantic.ValidationError, UnicodeDecodeError) as e:
            msg = f"Failed to parse compare file {self.compare}: {e}"
            raise ValidationError(msg) from e


def load_settings_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML settings file into a mapping, dashes in keys become underscores."""
    try:
        with fsspec.open(str(path), "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        msg = f"Settings file does not exist: {path}"
        raise ValidationError(msg) from e
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        msg = f"Failed to parse settings file {path}: {e}"
        raise ValidationError(msg) from e
    except ValueError as e:
        msg = f"Unsupported settings location {path}: {e}"
        raise ValidationError(msg) from e
    if not isinstance(data, dict):
        msg = f"Settings file {path} must contain a mapping"
        raise ValidationError(msg)
    return {str(k).replace("-", "_"): v for k, v in data.items()}
