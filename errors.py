from typing import Optional


class RoadmapError(Exception):
    kind = "error"


class ConfigError(RoadmapError):
    kind = "config"


class FetchError(RoadmapError):
    """A page request failed; the whole fetch is abandoned."""

    kind = "fetch"

    def __init__(self, message: str, status: Optional[int] = None, offset: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.offset = offset

    def describe(self) -> str:
        parts = [self.kind]
        if self.status is not None:
            parts.append(f"HTTP {self.status}")
        if self.offset is not None:
            parts.append(f"offset {self.offset}")
        return f"[{', '.join(parts)}] {self}"


class NetworkError(FetchError):
    kind = "network"


class FetchTimeout(FetchError):
    kind = "timeout"


class UpstreamServerError(FetchError):
    kind = "upstream"


class ParseError(FetchError):
    kind = "parse"
