"""Environment variables for configuration expansion"""

import logging
import os
import re
from typing import Any, Dict, Iterable

logger = logging.getLogger(__name__)

_BRACED = re.compile(r"\$\{([^}]+)\}")
_BARE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")


class EnvManager:
    """Variables available to ${VAR} references in a configuration file

    Layers, lowest precedence first: the process environment, .env files in
    the order given, then variables declared directly in the configuration.
    """

    def __init__(self, system: bool = True):
        """Initialize with the process environment

        Args:
            system: Seed the variables from os.environ
        """
        self.env: Dict[str, str] = dict(os.environ) if system else {}

    @staticmethod
    def read_env_file(file_path: str) -> Dict[str, str]:
        """Parse a KEY=VALUE file

        Blank lines and '#' comments are skipped; values may be single or
        double quoted. A missing file yields no variables.

        Args:
            file_path: Path to the .env file

        Returns:
            Variables defined by the file
        """
        path = os.path.expanduser(file_path)
        variables: Dict[str, str] = {}

        if not os.path.exists(path):
            logger.warning(f"Environment file not found: {path}")
            return variables

        with open(path, "r") as f:
            for line_num, raw in enumerate(f, 1):
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].lstrip()
                if "=" not in line:
                    logger.warning(f"Skipping malformed line {path}:{line_num}")
                    continue

                key, value = (part.strip() for part in line.split("=", 1))
                if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                    value = value[1:-1]
                variables[key] = value

        logger.info(f"Loaded {len(variables)} variable(s) from {path}")
        return variables

    def add_files(self, file_paths: Iterable[str]) -> None:
        """Layer variables from .env files; later files win"""
        for file_path in file_paths:
            self.env.update(self.read_env_file(file_path))

    def add(self, variables: Dict[str, Any]) -> None:
        """Layer variables declared directly in the configuration"""
        self.env.update({str(k): str(v) for k, v in variables.items()})

    def expand(self, value: str) -> str:
        """Expand $VAR, ${VAR}, ${VAR:-default} and ${VAR:?message}

        Unknown plain references are left untouched.

        Raises:
            ValueError: If a ${VAR:?message} variable is unset
        """

        def braced(match: "re.Match") -> str:
            expr = match.group(1)
            if ":-" in expr:
                name, default = expr.split(":-", 1)
                return self.env.get(name.strip(), default)
            if ":?" in expr:
                name, message = expr.split(":?", 1)
                name = name.strip()
                if name not in self.env:
                    raise ValueError(f"Required variable not set: {name} ({message})")
                return self.env[name]
            return self.env.get(expr.strip(), match.group(0))

        result = _BRACED.sub(braced, value)
        return _BARE.sub(lambda m: self.env.get(m.group(1), m.group(0)), result)

    def expand_tree(self, data: Any) -> Any:
        """Expand every string (and string key) inside nested dicts and lists"""
        if isinstance(data, str):
            return self.expand(data)
        if isinstance(data, dict):
            return {self.expand_tree(key): self.expand_tree(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self.expand_tree(item) for item in data]
        return data
