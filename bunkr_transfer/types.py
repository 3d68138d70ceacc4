from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
import re


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)
DOWNLOAD_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:146.0) Gecko/20100101 Firefox/146.0",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Referer": "https://get.bunkrr.su/",
}
RESOLVE_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": "https://bunkr.su",
}
API_BASE = "https://dash.bunkr.cr/api"
RESOLVE_API_URL = "https://apidl.bunkr.ru/api/_001_v2"
INVALID_FS_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]+')
STREAM_READ_SIZE = 1024 * 512
MAX_SIZE_HEADROOM = 0.95


class BunkrError(Exception):
    pass


class AuthError(BunkrError):
    pass


class ConfigParseError(BunkrError):
    pass


class TransportError(BunkrError):
    pass


class ServerError(BunkrError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(BunkrError):
    pass


class ScrapeError(BunkrError):
    pass


class DecodeError(BunkrError):
    pass


class PreprocessError(BunkrError):
    pass


@dataclass(frozen=True)
class Session:
    token: str
    upload_url: str
    max_file_size: int
    chunk_size: int
    api_base: str = API_BASE

    @property
    def headers(self) -> dict[str, str]:
        return {"token": self.token}


@dataclass(frozen=True)
class TransferUnit:
    path: Path
    size: int

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class ChunkTask:
    unit: TransferUnit
    index: int
    offset: int
    length: int
    batch_id: str


@dataclass(frozen=True)
class FailureRecord:
    path: str
    message: str
    file_size: int
    status_code: Optional[int] = None


@dataclass(frozen=True)
class TransferOutcome:
    unit: TransferUnit
    url: Optional[str] = None
    failure: Optional[FailureRecord] = None

    def __post_init__(self) -> None:
        if (self.url is None) == (self.failure is None):
            raise ValueError("an outcome carries exactly one of url or failure")

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class BatchResult:
    urls: list[str] = field(default_factory=list)
    failures: list[FailureRecord] = field(default_factory=list)
    outcomes: list[TransferOutcome] = field(default_factory=list)


@dataclass(frozen=True)
class Album:
    id: int
    name: str


@dataclass(frozen=True)
class AlbumFile:
    id: int
    name: str
    original: str
    slug: str = ""
    file_type: str = ""
    extension: str = ""
    size: int = 0
    timestamp: str = ""
    thumbnail: str = ""
    cdn_endpoint: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlbumFile":
        try:
            file_id = int(data["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseError(f"album entry without a numeric id: {data!r}") from exc
        original = str(data.get("original") or data.get("name") or "")
        try:
            size = int(data.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(
            id=file_id,
            name=str(data.get("name") or original),
            original=original,
            slug=str(data.get("slug") or ""),
            file_type=str(data.get("type") or ""),
            extension=str(data.get("extension") or ""),
            size=size,
            timestamp=str(data.get("timestamp") or ""),
            thumbnail=str(data.get("thumbnail") or ""),
            cdn_endpoint=str(data.get("cdnEndpoint") or ""),
        )


@dataclass(frozen=True)
class ResolvedLink:
    url: str
    bucket: int
