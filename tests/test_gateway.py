import json

import pytest
from aiohttp import web
from aiohttp import test_utils

from app.gateway import (
    BadRequestError,
    InvalidIpError,
    InvalidTokenError,
    OversizedBodyError,
    build_ip_filter,
    gateway_middleware,
    is_telegram_ip,
    parse_update_body,
    resolve_remote_ip,
    validate_update_request,
)

TELEGRAM_IP = "149.154.167.220"
UPDATE = {"update_id": 1, "message": {"message_id": 1, "text": "15"}}


@pytest.fixture
def ip_filter():
    return build_ip_filter()


def _validate(ip_filter, remote_ip=TELEGRAM_IP, headers=None, body=None, **kwargs):
    payload = json.dumps(UPDATE).encode() if body is None else body
    kwargs.setdefault("max_body_size", 1024)
    return validate_update_request(
        remote_ip, headers or {}, payload, ip_filter=ip_filter, **kwargs
    )


class TestIpFilter:
    @pytest.mark.parametrize("ip", [TELEGRAM_IP, "91.108.4.10"])
    def test_telegram_networks(self, ip_filter, ip):
        assert is_telegram_ip(ip, ip_filter)

    @pytest.mark.parametrize("ip", ["127.0.0.1", "8.8.8.8", "::1", "not-an-ip", ""])
    def test_other_addresses(self, ip_filter, ip):
        assert not is_telegram_ip(ip, ip_filter)

    def test_extra_ips(self):
        ip_filter = build_ip_filter(["127.0.0.1", "10.1.0.0/30"])
        assert is_telegram_ip("127.0.0.1", ip_filter)
        assert is_telegram_ip("10.1.0.1", ip_filter)
        assert is_telegram_ip(TELEGRAM_IP, ip_filter)

    def test_invalid_extra_ips_are_skipped(self):
        ip_filter = build_ip_filter(["garbage", "::1", "127.0.0.2"])
        assert is_telegram_ip("127.0.0.2", ip_filter)


class TestRemoteIp:
    def test_peer_by_default(self):
        headers = {"X-Forwarded-For": TELEGRAM_IP}
        assert resolve_remote_ip(headers, "10.0.0.5") == "10.0.0.5"

    def test_first_forwarded_hop_when_trusted(self):
        headers = {"x-forwarded-for": f"{TELEGRAM_IP}, 10.0.0.1"}
        assert resolve_remote_ip(headers, "10.0.0.5", trust_forwarded=True) == TELEGRAM_IP

    def test_trusted_without_header(self):
        assert resolve_remote_ip({}, "10.0.0.5", trust_forwarded=True) == "10.0.0.5"
        assert resolve_remote_ip({}, None) == ""


class TestValidation:
    def test_valid_update(self, ip_filter):
        assert _validate(ip_filter) == UPDATE

    def test_callback_query_update(self, ip_filter):
        body = json.dumps({"update_id": 2, "callback_query": {"id": "1"}}).encode()
        assert "callback_query" in _validate(ip_filter, body=body)

    def test_foreign_ip(self, ip_filter):
        with pytest.raises(InvalidIpError) as exc_info:
            _validate(ip_filter, remote_ip="8.8.8.8")
        assert exc_info.value.status == 403

    def test_secret_token(self, ip_filter):
        header = "X-Telegram-Bot-Api-Secret-Token"
        assert _validate(ip_filter, headers={header: "s3cret"}, secret="s3cret") == UPDATE
        assert _validate(ip_filter, headers={header.lower(): "s3cret"}, secret="s3cret")
        with pytest.raises(InvalidTokenError):
            _validate(ip_filter, headers={header: "wrong"}, secret="s3cret")
        with pytest.raises(InvalidTokenError):
            _validate(ip_filter, secret="s3cret")

    def test_ip_checked_before_token(self, ip_filter):
        with pytest.raises(InvalidIpError):
            _validate(ip_filter, remote_ip="8.8.8.8", secret="s3cret")

    def test_declared_size(self, ip_filter):
        with pytest.raises(OversizedBodyError) as exc_info:
            _validate(ip_filter, headers={"Content-Length": "5000"})
        assert exc_info.value.status == 413

    def test_bad_content_length(self, ip_filter):
        with pytest.raises(BadRequestError):
            _validate(ip_filter, headers={"Content-Length": "lots"})

    def test_actual_size(self, ip_filter):
        with pytest.raises(OversizedBodyError):
            _validate(ip_filter, body=b" " * 2000)

    @pytest.mark.parametrize(
        "body",
        [b"", b"   ", b"{not json", b"[1, 2]", b'"text"', b'{"update_id": 3}'],
    )
    def test_bad_bodies(self, body):
        with pytest.raises(BadRequestError) as exc_info:
            parse_update_body(body, max_body_size=1024)
        assert exc_info.value.status == 400


class TestMiddleware:
    @pytest.fixture
    async def client(self):
        async def handle(request: web.Request) -> web.Response:
            payload = await request.json()
            return web.json_response({"ok": True, "update_id": payload["update_id"]})

        async def health(request: web.Request) -> web.Response:
            return web.Response(text="alive")

        app = web.Application(
            middlewares=[
                gateway_middleware(
                    "/webhook",
                    ip_filter=build_ip_filter(["127.0.0.1"]),
                    secret="s3cret",
                    max_body_size=256,
                )
            ]
        )
        app.router.add_post("/webhook", handle)
        app.router.add_get("/health", health)

        async with test_utils.TestClient(test_utils.TestServer(app)) as test_client:
            yield test_client

    async def test_accepted_update_reaches_handler(self, client):
        response = await client.post(
            "/webhook",
            json=UPDATE,
            headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
        )
        assert response.status == 200
        assert await response.json() == {"ok": True, "update_id": 1}

    async def test_wrong_token(self, client):
        response = await client.post(
            "/webhook",
            json=UPDATE,
            headers={"X-Telegram-Bot-Api-Secret-Token": "nope"},
        )
        assert response.status == 403
        assert (await response.json())["ok"] is False

    async def test_oversized_body(self, client):
        response = await client.post(
            "/webhook",
            data=json.dumps({**UPDATE, "padding": "x" * 512}),
            headers={
                "X-Telegram-Bot-Api-Secret-Token": "s3cret",
                "Content-Type": "application/json",
            },
        )
        assert response.status == 413

    async def test_malformed_json(self, client):
        response = await client.post(
            "/webhook",
            data=b"{broken",
            headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
        )
        assert response.status == 400

    async def test_other_routes_are_untouched(self, client):
        response = await client.get("/health")
        assert response.status == 200
        assert await response.text() == "alive"
