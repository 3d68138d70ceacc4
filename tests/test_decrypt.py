import base64
import json

import httpx
import pytest

from bunkr_transfer.decrypt import (
    decrypt_url,
    derive_key,
    parse_resolution,
    resolve_download_link,
    time_bucket,
    xor_bytes,
)
from bunkr_transfer.types import AlbumFile, DecodeError, ParseError, ServerError

from conftest import NO_WAIT, encrypt_url, make_client


FIXTURE_URL = "https://c7.bunkr.ru/demo-file.mp4"
FIXTURE_CIPHERTEXT = "OzE3IjZucGQmbnFQJisoIGsmKmQhPDJdfiMqPiB6Mjtx"


def test_bucket_and_key_for_two_hours():
    assert time_bucket(7200) == 2
    assert derive_key(2) == b"SECRET_KEY_2"


@pytest.mark.parametrize("timestamp,bucket", [(0, 0), (3599, 0), (3600, 1), (1735689600, 482136)])
def test_bucket_is_hour_floor(timestamp, bucket):
    assert time_bucket(timestamp) == bucket


def test_known_ciphertext_decrypts_to_fixture_url():
    link = decrypt_url(FIXTURE_CIPHERTEXT, 7200)
    assert link.url == FIXTURE_URL
    assert link.bucket == 2


def test_same_hour_shares_key():
    assert decrypt_url(FIXTURE_CIPHERTEXT, 7200 + 3599).url == FIXTURE_URL


def test_wrong_bucket_does_not_reproduce_url():
    assert decrypt_url(FIXTURE_CIPHERTEXT, 3600).url != FIXTURE_URL


@pytest.mark.parametrize("timestamp", [0, 3600, 7200, 86399, 1735689600])
def test_xor_is_self_inverse(timestamp):
    key = derive_key(time_bucket(timestamp))
    plain = bytes(range(256))
    assert xor_bytes(xor_bytes(plain, key), key) == plain
    url = f"https://cdn.test/{timestamp}/file name.zip?x=1"
    assert decrypt_url(encrypt_url(url, timestamp), timestamp).url == url


def test_invalid_base64_is_decode_error():
    with pytest.raises(DecodeError):
        decrypt_url("not*base64!", 7200)


def test_invalid_utf8_is_decode_error():
    encoded = base64.b64encode(xor_bytes(b"\xff\xfe\xfd", derive_key(2))).decode()
    with pytest.raises(DecodeError):
        decrypt_url(encoded, 7200)


class TestParseResolution:
    def test_valid(self):
        body = json.dumps({"encrypted": True, "timestamp": 7200, "url": FIXTURE_CIPHERTEXT})
        assert parse_resolution(body) == (FIXTURE_CIPHERTEXT, 7200)

    def test_unencrypted_is_rejected(self):
        body = json.dumps({"encrypted": False, "timestamp": 7200, "url": "https://plain.test/x"})
        with pytest.raises(ParseError, match="not encrypted"):
            parse_resolution(body)

    def test_non_json(self):
        with pytest.raises(ParseError, match="non-JSON"):
            parse_resolution("<html>blocked</html>")

    def test_missing_fields(self):
        with pytest.raises(ParseError):
            parse_resolution('{"encrypted": true}')


class TestResolveDownloadLink:
    @pytest.mark.asyncio
    async def test_posts_id_and_appends_name(self):
        bodies = []

        async def handler(request):
            bodies.append(json.loads(await request.aread()))
            return httpx.Response(200, json={"encrypted": True, "timestamp": 7200, "url": FIXTURE_CIPHERTEXT})

        file = AlbumFile(id=101, name="clip.mp4", original="holiday clip.mp4")
        async with make_client(handler) as client:
            link = await resolve_download_link(client, file, "https://api.test/resolve", NO_WAIT)

        assert bodies == [{"id": "101"}]
        assert link.url == FIXTURE_URL + "?n=holiday%20clip.mp4"
        assert link.bucket == 2

    @pytest.mark.asyncio
    async def test_existing_query_uses_ampersand(self):
        encrypted = encrypt_url("https://cdn.test/f.mp4?token=abc", 7200)

        async with make_client(lambda r: httpx.Response(200, json={"encrypted": True, "timestamp": 7200, "url": encrypted})) as client:
            link = await resolve_download_link(client, AlbumFile(id=1, name="a", original="a.mp4"), "https://api.test/r", NO_WAIT)

        assert link.url == "https://cdn.test/f.mp4?token=abc&n=a.mp4"

    @pytest.mark.asyncio
    async def test_error_status(self):
        async with make_client(lambda r: httpx.Response(403)) as client:
            with pytest.raises(ServerError) as info:
                await resolve_download_link(client, AlbumFile(id=1, name="a", original="a"), "https://api.test/r", NO_WAIT)
        assert info.value.status_code == 403
