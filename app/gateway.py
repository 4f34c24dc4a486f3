"""Validation of inbound Telegram webhook requests.

Checks run in this order: sender IP, secret token, declared body size, actual
body size, JSON shape. Each failure is a typed exception carrying the HTTP
status the aiohttp middleware answers with.
"""

from __future__ import annotations

import hmac
import json
import logging
from typing import Any, Iterable, Mapping

from aiogram.webhook.security import IPFilter
from aiohttp import web

from app.constants import ALLOWED_UPDATES, SECRET_TOKEN_HEADER

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    status = 400


class InvalidIpError(GatewayError):
    status = 403


class InvalidTokenError(GatewayError):
    status = 403


class OversizedBodyError(GatewayError):
    status = 413


class BadRequestError(GatewayError):
    status = 400


def build_ip_filter(extra_ips: Iterable[str] = ()) -> IPFilter:
    """Telegram's published networks plus any configured extras."""

    ip_filter = IPFilter.default()
    for item in extra_ips:
        try:
            ip_filter.allow(item)
        except ValueError as exc:
            logger.warning("Ignoring invalid EXTRA_ALLOWED_IPS entry %r: %s", item, exc)
    return ip_filter


def is_telegram_ip(ip: str, ip_filter: IPFilter) -> bool:
    try:
        return ip_filter.check(ip)
    except ValueError:
        # IPv6 и мусор в адресе
        return False


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}


def resolve_remote_ip(
    headers: Mapping[str, str], peer_ip: str | None, trust_forwarded: bool = False
) -> str:
    """Sender IP: first X-Forwarded-For hop when trusted, else the socket peer."""

    if trust_forwarded:
        forwarded = _lower_keys(headers).get("x-forwarded-for", "")
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    return peer_ip or ""


def _mask_token(token: str) -> str:
    return f"{token[:4]}***" if token else ""


def check_request_headers(
    remote_ip: str,
    headers: Mapping[str, str],
    *,
    ip_filter: IPFilter,
    secret: str = "",
    max_body_size: int,
) -> None:
    """Everything that can be rejected before the body is read."""

    if not is_telegram_ip(remote_ip, ip_filter):
        logger.error("Rejected webhook request: IP %s", remote_ip)
        raise InvalidIpError(f"Forbidden IP address: {remote_ip}")

    lowered = _lower_keys(headers)
    if secret:
        token = lowered.get(SECRET_TOKEN_HEADER.lower(), "")
        if not token or not hmac.compare_digest(secret, token):
            logger.error("Rejected webhook request: token %s, IP %s", _mask_token(token), remote_ip)
            raise InvalidTokenError("Invalid secret token")

    try:
        declared = int(lowered.get("content-length") or 0)
    except ValueError:
        raise BadRequestError("Invalid Content-Length header") from None
    if declared > max_body_size:
        logger.error("Rejected webhook request: declared body size %s bytes", declared)
        raise OversizedBodyError("Declared body size is too large")


def parse_update_body(body: bytes, *, max_body_size: int) -> dict[str, Any]:
    """Decode the JSON update and make sure it carries a supported payload."""

    if len(body) > max_body_size:
        logger.error("Rejected webhook request: body size %s bytes", len(body))
        raise OversizedBodyError("Body size exceeds the limit")

    if not body.strip():
        raise BadRequestError("Empty request body")

    try:
        update = json.loads(body)
    except ValueError as exc:
        logger.error("Malformed webhook JSON: %s", exc)
        raise BadRequestError(f"Malformed JSON: {exc}") from exc

    if not isinstance(update, dict):
        raise BadRequestError("Update must be a JSON object")

    if not any(kind in update for kind in ALLOWED_UPDATES):
        logger.error("Update without a supported payload: keys=%s", sorted(update))
        raise BadRequestError("Update has no supported payload")

    return update


def validate_update_request(
    remote_ip: str,
    headers: Mapping[str, str],
    body: bytes,
    *,
    ip_filter: IPFilter,
    secret: str = "",
    max_body_size: int,
) -> dict[str, Any]:
    check_request_headers(
        remote_ip,
        headers,
        ip_filter=ip_filter,
        secret=secret,
        max_body_size=max_body_size,
    )
    return parse_update_body(body, max_body_size=max_body_size)


def gateway_middleware(
    path: str,
    *,
    ip_filter: IPFilter,
    secret: str = "",
    max_body_size: int,
    trust_forwarded: bool = False,
):
    """aiohttp middleware guarding the webhook route."""

    @web.middleware
    async def middleware(request: web.Request, handler):
        if request.path != path or request.method != "POST":
            return await handler(request)

        remote_ip = resolve_remote_ip(request.headers, request.remote, trust_forwarded)
        try:
            check_request_headers(
                remote_ip,
                request.headers,
                ip_filter=ip_filter,
                secret=secret,
                max_body_size=max_body_size,
            )
            try:
                body = await request.read()
            except web.HTTPRequestEntityTooLarge:
                raise OversizedBodyError("Body size exceeds the limit") from None
            update = parse_update_body(body, max_body_size=max_body_size)
        except GatewayError as exc:
            return web.json_response({"ok": False, "error": str(exc)}, status=exc.status)

        logger.debug("Webhook update %s accepted from %s", update.get("update_id"), remote_ip)
        # тело уже прочитано и закешировано в request, обработчик aiogram прочтёт его снова
        return await handler(request)

    return middleware
