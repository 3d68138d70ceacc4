import html
import mimetypes
import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlparse

from .types import INVALID_FS_CHARS, ConfigParseError


SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}
SIZE_PATTERN = re.compile(r"^(\d+)(B|KB|MB|GB)$")


def parse_size(value: str) -> int:
    if not isinstance(value, str):
        raise ConfigParseError(f"Invalid size format: {value!r}")
    m = SIZE_PATTERN.match(value.strip().upper())
    if not m:
        raise ConfigParseError(f"Invalid size format: {value!r}")
    return int(m.group(1)) * SIZE_UNITS[m.group(2)]


def parse_album_id(value: Optional[str]) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    text = str(value).strip()
    if not re.fullmatch(r"[0-9]+", text):
        raise ValueError(f"Album id must be numeric, got {value!r}")
    return text


def human_bytes(value: Optional[float]) -> str:
    if value is None:
        return "?"
    value = float(max(0.0, value))
    units = ["B", "KB", "MB", "GB", "TB"]
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024.0
        idx += 1
    return f"{value:.2f}{units[idx]}"


def clean_filename(name: str, fallback: str) -> str:
    name = html.unescape(name or "").strip()
    name = re.sub(r"\s+", " ", name)
    name = INVALID_FS_CHARS.sub("_", name).strip(" .")
    if name in {"", ".", ".."}:
        return fallback
    return name


def ensure_url(url: str) -> str:
    url = url.strip()
    if not url:
        raise ValueError("Empty URL")
    parsed = urlparse(url)
    if not parsed.scheme:
        url = "https://" + url
        parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")
    return url


def extract_url_ids(url: str) -> tuple[Optional[str], Optional[str]]:
    path = urlparse(url).path
    m_album = re.match(r"^/a/([A-Za-z0-9]+)", path)
    if m_album:
        return m_album.group(1), None
    m_file = re.match(r"^/f/([A-Za-z0-9]+)", path)
    if m_file:
        return None, m_file.group(1)
    return None, None


def add_query_param(url: str, key: str, value: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{key}={quote(value, safe='')}"


def guess_mime(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


def unique_path(path: Path) -> Path:
    if not path.exists():
        return path
    stem = path.stem
    suffix = path.suffix
    parent = path.parent
    n = 1
    while True:
        candidate = parent / f"{stem} ({n}){suffix}"
        if not candidate.exists():
            return candidate
        n += 1


def collect_upload_paths(inputs: list[str]) -> list[Path]:
    files: list[Path] = []
    for raw in inputs:
        p = Path(raw)
        if p.is_file():
            files.append(p)
        elif p.is_dir():
            files.extend(sorted(child for child in p.iterdir() if child.is_file()))
        else:
            raise ValueError(f"Invalid path: {raw}")
    return files
