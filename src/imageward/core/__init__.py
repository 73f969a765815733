"""Core image lifecycle logic"""

from .actions import Action, ActionResult, ImageActionEngine
from .auth import AuthStore, registry_host
from .identifier import image_identifier
from .retry import RetryPolicy, with_retries
from .spec import ImageSpec
from .strategy import BuildStrategy, select_strategy

__all__ = [
    "Action",
    "ActionResult",
    "ImageActionEngine",
    "AuthStore",
    "registry_host",
    "image_identifier",
    "RetryPolicy",
    "with_retries",
    "ImageSpec",
    "BuildStrategy",
    "select_strategy",
]
