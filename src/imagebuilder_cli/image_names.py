from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Mapping

from imagebuilder_cli.errors import ImageNamesError


IMAGE_BUILDER_LINUX = "ImageBuilderLinux"
IMAGE_BUILDER_WINDOWS = "ImageBuilderWindows"
REQUIRED_IMAGE_NAMES = (IMAGE_BUILDER_LINUX, IMAGE_BUILDER_WINDOWS)

DEFAULT_IMAGE_NAMES: dict[str, str] = {
    IMAGE_BUILDER_LINUX: "mcr.microsoft.com/dotnet-buildtools/image-builder:latest",
    IMAGE_BUILDER_WINDOWS: "mcr.microsoft.com/dotnet-buildtools/image-builder:windowsservercore-ltsc2022",
}
ENV_OVERRIDES: dict[str, str] = {
    IMAGE_BUILDER_LINUX: "IMAGEBUILDER_LINUX_IMAGE",
    IMAGE_BUILDER_WINDOWS: "IMAGEBUILDER_WINDOWS_IMAGE",
}


def _read_image_names_file(path: Path) -> dict[str, str]:
    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except OSError as exc:
        raise ImageNamesError(f"Unable to read image names file {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ImageNamesError(f"Invalid image names file {path}: {exc}") from exc

    table = parsed.get("image_names", {})
    if not isinstance(table, dict):
        raise ImageNamesError(f"Invalid image names file {path}: [image_names] must be a table")

    names: dict[str, str] = {}
    for key, value in table.items():
        if not isinstance(value, str):
            raise ImageNamesError(f"Invalid image name for {key!r} in {path}: expected a string")
        names[str(key)] = value.strip()
    return names


def load_image_names(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Resolve image roles to registry tags.

    Built-in defaults are overlaid by the ``[image_names]`` table of ``path``
    (when given) and then by the ``IMAGEBUILDER_*_IMAGE`` environment variables.
    """
    environ = os.environ if env is None else env
    names = dict(DEFAULT_IMAGE_NAMES)
    if path is not None:
        names.update(_read_image_names_file(path))

    for key, env_name in ENV_OVERRIDES.items():
        override = str(environ.get(env_name) or "").strip()
        if override:
            names[key] = override

    missing = [key for key in REQUIRED_IMAGE_NAMES if not names.get(key)]
    if missing:
        raise ImageNamesError(f"Missing image names: {', '.join(missing)}")
    return names
