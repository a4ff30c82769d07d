import enum
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Union


class Method(enum.Enum):
    GET = "GET"
    PUT = "PUT"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, token: str) -> "Method":
        # Method tokens are case-sensitive.
        if token == "GET":
            return cls.GET
        if token == "PUT":
            return cls.PUT
        return cls.OTHER


class RequestBody(Protocol):
    def read(self, size: int = -1) -> bytes: ...

    def discard(self) -> None: ...


class EmptyBody:
    def read(self, size: int = -1) -> bytes:
        return b""

    def discard(self) -> None:
        pass


@dataclass(frozen=True)
class Request:
    method: Method
    method_name: str
    target: str
    path: str
    version: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: RequestBody = field(default_factory=EmptyBody)


@dataclass(frozen=True)
class ResponseSpec:
    status: int
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)
    body_path: Optional[str] = None
    # None means the response carries no Content-Length framing.
    body_size: Optional[int] = 0


@dataclass(frozen=True)
class Resolved:
    path: str


@dataclass(frozen=True)
class PathRejected:
    reason: str
    # Status the handler answers with.
    status: int = 400


Resolution = Union[Resolved, PathRejected]
