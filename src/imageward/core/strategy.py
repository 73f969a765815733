"""Build strategy selection"""

import enum
import os


class BuildStrategy(enum.Enum):
    """How a build source is handed to the engine"""

    DIRECTORY = "directory"
    TAR = "tar"
    DOCKERFILE_TEXT = "dockerfile_text"


def select_strategy(source: str) -> BuildStrategy:
    """Choose the build strategy for a source path

    A directory is a build context, a .tar file is a pre-packed context, and
    anything else is a Dockerfile whose contents are sent as-is. Paths that
    do not exist fall into the last case.

    Args:
        source: Path given as the build source

    Returns:
        Selected BuildStrategy
    """
    if os.path.isdir(source):
        return BuildStrategy.DIRECTORY
    if os.path.splitext(source)[1] == ".tar":
        return BuildStrategy.TAR
    return BuildStrategy.DOCKERFILE_TEXT
