import random
import re

from .errors import InvalidContainerNameError

_CONTAINER_NAME = re.compile(r"^[a-z0-9](?!.*--)[a-z0-9-]{1,61}[a-z0-9]$")


def validate_container_name(name: str) -> str:
    """
    Check a container name against the service rules:
    3-63 chars of lowercase letters, digits and single hyphens,
    starting and ending with a letter or digit.
    """
    if not isinstance(name, str) or not _CONTAINER_NAME.match(name):
        raise InvalidContainerNameError(f"Invalid container name: {name!r}")
    return name


class NameGenerator:
    """
    Random identifiers for containers and sample files.

    Owns its own random source, seeded once, so concurrent callers never
    share hidden global state. Pass a seed for reproducible names.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def token(self) -> str:
        return str(self._rng.getrandbits(63))

    def container_name(self, prefix: str = "quickstart") -> str:
        return validate_container_name(f"{prefix}-{self.token()}")

    def file_name(self) -> str:
        return self.token()
