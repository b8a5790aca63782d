"""Parsing the ``/run/.containerenv`` file generated by podman."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# Relative to the container rootfs (assumed to be /)
PATH = "run/.containerenv"


class NotInContainerError(RuntimeError):
    """Raised when the container environment file is missing."""


@dataclass
class ContainerExecutionInfo:
    """Information about the container engine and image we run in."""

    engine: str = ""
    name: str = ""
    id: str = ""
    image: str = ""
    imageid: str = ""
    rootless: str | None = None


_FIELDS = {"engine", "name", "id", "image", "imageid", "rootless"}


def parse_container_env(text: str) -> ContainerExecutionInfo:
    """Parse the ``key=value`` contents of a containerenv file."""
    info = ContainerExecutionInfo()
    for raw in text.splitlines():
        line = raw.strip()
        key, sep, value = line.partition("=")
        if not sep:
            continue
        # Values are assumed not to contain embedded quotes
        value = value.lstrip('"').rstrip('"')
        if key in _FIELDS:
            setattr(info, key, value)
    return info


def get_container_execution_info(rootfs: str | os.PathLike[str]) -> ContainerExecutionInfo:
    """Load and parse the containerenv file below ``rootfs``."""
    path = Path(rootfs) / PATH
    try:
        text = path.read_text()
    except FileNotFoundError:
        raise NotInContainerError(
            "Querying container: This command must be executed inside a podman "
            f"container (missing /{PATH})"
        ) from None
    return parse_container_env(text)