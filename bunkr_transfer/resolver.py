import html
import json
import re

import httpx

from .retry import DEFAULT_RETRY, RetryPolicy, request_with_retry
from .types import AlbumFile, ParseError, ScrapeError, ServerError
from .utils import add_query_param, extract_url_ids


ALBUM_FILES_PATTERN = re.compile(r"window\.albumFiles\s*=\s*(\[[\s\S]*?\])\s*;")
# Quoted strings match first and are passed through untouched.
STRING_LITERAL = r'(?P<string>"(?:[^"\\]|\\.)*")'
TRAILING_COMMA_PATTERN = re.compile(STRING_LITERAL + r"|,\s*(?P<close>[}\]])")
# Bare keys at the start of a line, or right after "{" or "," on the same line.
BARE_KEY_PATTERN = re.compile(
    STRING_LITERAL + r"|(?P<lead>^|[{,])(?P<pre>\s*)(?P<key>[A-Za-z_$][\w$]*)(?P<post>\s*):",
    re.MULTILINE,
)
FILE_ID_PATTERN = re.compile(r'data-file-id="(\d+)"')
HEADING_PATTERN = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)


def _drop_trailing_comma(m: re.Match) -> str:
    return m.group("string") or m.group("close")


def _quote_key(m: re.Match) -> str:
    if m.group("string"):
        return m.group("string")
    return f'{m.group("lead")}{m.group("pre")}"{m.group("key")}"{m.group("post")}:'


def js_to_json(js_text: str) -> str:
    text = TRAILING_COMMA_PATTERN.sub(_drop_trailing_comma, js_text)
    return BARE_KEY_PATTERN.sub(_quote_key, text)


def parse_album_listing(js_text: str) -> list[AlbumFile]:
    text = js_to_json(js_text).strip()
    if not text.startswith("["):
        text = f"[{text}]"
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise ParseError(f"album listing is not valid after normalization: {exc}") from exc
    if not isinstance(payload, list):
        raise ParseError("album listing is not an array")
    return [AlbumFile.from_dict(item) for item in payload if isinstance(item, dict)]


def extract_album_files(page_html: str, page_url: str) -> list[AlbumFile]:
    m = ALBUM_FILES_PATTERN.search(page_html)
    if not m:
        raise ScrapeError(f"Could not find albumFiles in {page_url}")
    try:
        return parse_album_listing(m.group(1))
    except ParseError as exc:
        raise ScrapeError(f"Could not parse albumFiles in {page_url}: {exc}") from exc


def extract_single_file(page_html: str, page_url: str) -> AlbumFile:
    m_id = FILE_ID_PATTERN.search(page_html)
    if not m_id:
        raise ScrapeError(f"Could not find file id in {page_url}")
    m_name = HEADING_PATTERN.search(page_html)
    original = ""
    if m_name:
        original = html.unescape(re.sub(r"<[^>]+>", "", m_name.group(1))).strip()
    if not original:
        raise ScrapeError(f"Could not find file name in {page_url}")
    return AlbumFile(id=int(m_id.group(1)), name=original, original=original)


async def fetch_page(client: httpx.AsyncClient, url: str, retry: RetryPolicy) -> str:
    r = await request_with_retry(lambda: client.get(url), retry)
    if not r.is_success:
        raise ServerError(f"Failed to fetch {url}: HTTP {r.status_code}", status_code=r.status_code)
    return r.text


async def fetch_files(
    client: httpx.AsyncClient,
    url: str,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[AlbumFile]:
    album_id, file_slug = extract_url_ids(url)
    if album_id:
        page_url = add_query_param(url, "advanced", "1")
        return extract_album_files(await fetch_page(client, page_url, retry), url)
    if file_slug:
        return [extract_single_file(await fetch_page(client, url, retry), url)]
    raise ScrapeError(f"Unsupported URL, expected an album (/a/...) or file (/f/...) link: {url}")
