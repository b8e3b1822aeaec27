# tracesdk/client/http.py
"""
Thin async client for the account, trace and media services.

Handles (re-)authentication: a bearer token is obtained on the first
request and renewed once when a request comes back with 401.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import bcrypt
import httpx

from tracesdk.client.auth import (
    CredentialSecret,
    PrivateKeySecret,
    ProtectedKeySecret,
    Secret,
    make_auth_payload,
)
from tracesdk.client.graphql import operation_name
from tracesdk.core.canon import to_plain
from tracesdk.core.errors import GraphQLError, HttpError, ServiceError, UnsupportedSecretError
from tracesdk.crypto.keys import SigningKeyPair
from tracesdk.files.record import FileRecord
from tracesdk.files.wrapper import FileWrapper
from tracesdk.settings import make_endpoints

logger = logging.getLogger(__name__)

DEFAULT_RETRY = 1


def _error_body(rsp: httpx.Response) -> Any:
    try:
        return rsp.json()
    except ValueError:
        return rsp.text


class Client:
    """
    Exposes get, post, graphql, upload_files and download_file.
    Pass ``transport`` (e.g. httpx.MockTransport) to swap the network out.
    """

    def __init__(
        self,
        secret: Secret,
        endpoints: Union[None, str, Mapping[str, str]] = None,
        enable_debugging: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoints = make_endpoints(endpoints)
        self.secret = secret
        self.enable_debugging = enable_debugging
        self._token: Optional[str] = None
        self._lock = asyncio.Lock()
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ── auth ─────────────────────────────────────────────────────────

    @staticmethod
    def _make_authorization_header(token: Optional[str] = None) -> str:
        return f"Bearer {token}" if token else ""

    async def _get_authorization_header(
        self, auth_token: Optional[str] = None, skip_auth: bool = False
    ) -> str:
        if auth_token:
            return self._make_authorization_header(auth_token)
        if skip_auth:
            return self._make_authorization_header()
        await self.login()
        return self._make_authorization_header(self._token)

    def clear_token(self) -> None:
        self._token = None

    async def _login_with_signing_private_key(self, pem: str) -> None:
        key = SigningKeyPair.from_pem(pem)
        signed = make_auth_payload(key)
        rsp = await self.get("account", "login", auth_token=signed)
        self._token = rsp["token"]

    async def _login_with_credentials(self, email: str, password: str) -> None:
        salt_rsp = await self.get("account", "salt", params={"email": email}, skip_auth=True)
        password_hash = await asyncio.to_thread(
            bcrypt.hashpw, password.encode("utf-8"), salt_rsp["salt"].encode("utf-8")
        )
        rsp = await self.post(
            "account",
            "login",
            {"email": email, "passwordHash": password_hash.decode("utf-8")},
            skip_auth=True,
        )
        self._token = rsp["token"]

    async def login(self) -> None:
        """Authenticate once; concurrent callers wait for the same login."""
        async with self._lock:
            if self._token:
                return
            if isinstance(self.secret, CredentialSecret):
                await self._login_with_credentials(self.secret.email, self.secret.password)
            elif isinstance(self.secret, PrivateKeySecret):
                await self._login_with_signing_private_key(self.secret.private_key)
            elif isinstance(self.secret, ProtectedKeySecret):
                raise UnsupportedSecretError("Authentication via password protected key is not handled")
            else:
                raise UnsupportedSecretError("The provided secret does not have the right format")

    # ── REST ─────────────────────────────────────────────────────────

    def _url(self, service: str, route: str) -> str:
        return f"{self.endpoints[service].rstrip('/')}/{route.lstrip('/')}"

    async def _fetch(
        self,
        service: str,
        route: str,
        method: str = "GET",
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        files: Any = None,
        auth_token: Optional[str] = None,
        skip_auth: bool = False,
        retry: int = DEFAULT_RETRY,
    ) -> Any:
        headers = {"Authorization": await self._get_authorization_header(auth_token, skip_auth)}
        rsp = await self._http.request(
            method,
            self._url(service, route),
            params=params,
            json=json,
            files=files,
            headers=headers,
        )

        if rsp.is_error:
            if rsp.status_code == 401 and retry and not auth_token and not skip_auth:
                # the token probably expired
                logger.warning("[tracesdk] %s %s returned 401, logging in again", method, route)
                self.clear_token()
                return await self._fetch(
                    service, route, method, params=params, json=json, files=files,
                    retry=retry - 1,
                )
            raise HttpError(rsp.status_code, rsp.reason_phrase, _error_body(rsp))

        if rsp.status_code == 204:
            return None
        return rsp.json()

    async def get(
        self,
        service: str,
        route: str,
        params: Optional[Mapping[str, Any]] = None,
        **opts: Any,
    ) -> Any:
        return await self._fetch(service, route, "GET", params=params, **opts)

    async def post(self, service: str, route: str, body: Any, **opts: Any) -> Any:
        return await self._fetch(service, route, "POST", json=to_plain(body), **opts)

    # ── GraphQL ──────────────────────────────────────────────────────

    async def graphql(
        self,
        query: str,
        variables: Optional[Mapping[str, Any]] = None,
        retry: int = DEFAULT_RETRY,
    ) -> Dict[str, Any]:
        payload = {"query": query, "variables": to_plain(dict(variables or {}))}
        if self.enable_debugging:
            logger.debug("[tracesdk] GraphQL request %s variables=%s", operation_name(query), payload["variables"])

        rsp = await self._http.post(
            self._url("trace", "graphql"),
            json=payload,
            headers={"Authorization": await self._get_authorization_header()},
        )

        if rsp.status_code == 401 and retry:
            logger.warning("[tracesdk] GraphQL request returned 401, logging in again")
            self.clear_token()
            return await self.graphql(query, variables, retry=retry - 1)

        body = _error_body(rsp)
        if self.enable_debugging:
            logger.debug("[tracesdk] GraphQL response %s status=%s body=%s", operation_name(query), rsp.status_code, body)

        if isinstance(body, dict) and body.get("errors"):
            raise GraphQLError(body["errors"], rsp.status_code, body.get("data"))
        if rsp.is_error:
            raise HttpError(rsp.status_code, rsp.reason_phrase, body)
        if not isinstance(body, dict) or not body.get("data"):
            raise ServiceError("The graphql response is empty.")
        return body["data"]

    # ── media ────────────────────────────────────────────────────────

    async def upload_files(self, files: Sequence[FileWrapper]) -> List[Dict[str, Any]]:
        """Upload encrypted file contents in one multipart request; records come back in order."""
        if not files:
            return []
        parts = []
        for f in files:
            info = await f.info()
            parts.append((info.name, (info.name, await f.encrypted_data(), info.mimetype)))
        return await self._fetch("media", "files", "POST", files=parts)

    async def download_file(self, record: FileRecord) -> bytes:
        info = await self.get("media", f"files/{record.digest}/info")
        # the storage url is pre-signed, no bearer token
        rsp = await self._http.get(info["download_url"])
        if rsp.is_error:
            raise HttpError(rsp.status_code, rsp.reason_phrase, _error_body(rsp))
        return rsp.content
