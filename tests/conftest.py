# tests/conftest.py
import hashlib
import json
import re
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

import httpx
import pytest

from tracesdk.client.auth import PrivateKeySecret
from tracesdk.client.graphql import operation_name
from tracesdk.core.encoding import b64url_encode
from tracesdk.sdk import Sdk
from tracesdk.settings import SdkOptions

ENDPOINTS = {
    "account": "https://account.test",
    "trace": "https://trace.test",
    "media": "https://media.test",
}

PEM_PRIVATE_KEY = """-----BEGIN ED25519 PRIVATE KEY-----
MFACAQAwBwYDK2VwBQAEQgRA3YYGIIAg4D7hsT5bXYE/OZsZrOon3h2u5R4ugDC1
gjwSP9BQ2Dx7GyfNr8QX5fp695xnBr53x9i6YJCrLtWS8A==
-----END ED25519 PRIVATE KEY-----
"""

PEM_PUBLIC_KEY = """-----BEGIN ED25519 PUBLIC KEY-----
MCowBQYDK2VwAyEAEj/QUNg8exsnza/EF+X6evecZwa+d8fYumCQqy7VkvA=
-----END ED25519 PUBLIC KEY-----
"""

WORKFLOW_ID = "591"
ACCOUNT_ID = "19"
TEAM_ID = "53"
GROUP_ID = "1744"

CONFIG_QUERY = "query configQuery"
CREATE_LINK = "mutation createLinkMutation"
GET_HEAD_LINK = "query getHeadLinkQuery"
GET_TRACE_STATE = "query getTraceStateQuery"
GET_TRACE_DETAILS = "query getTraceDetailsQuery"
GET_TRACES_IN_STAGE = "query getTracesInStageQuery"
SEARCH_TRACES = "query searchTracesQuery"
ADD_TAGS = "mutation addTagsToTraceMutation"


def config_response(config_id: str = "66", groups: Optional[List[dict]] = None) -> dict:
    if groups is None:
        groups = [{"groupId": GROUP_ID, "label": "group1", "members": {"nodes": [{"accountId": TEAM_ID}]}}]
    return {
        "data": {
            "account": {
                "accountId": ACCOUNT_ID,
                "signingKey": {"privateKey": {"passwordProtected": False, "decrypted": PEM_PRIVATE_KEY}},
                "user": {"memberOf": {"nodes": [{"accountId": TEAM_ID}]}},
                "bot": None,
            },
            "workflow": {"config": {"id": config_id}, "groups": {"nodes": groups}},
        }
    }


def trace_payload(link: dict, data: Any = None, tags: Optional[List[str]] = None) -> dict:
    return {
        "updatedAt": "2026-10-19T10:00:00.000Z",
        "state": {"data": data},
        "head": {"raw": link, "data": data},
        "tags": tags or [],
    }


class FakeServices:
    """
    In-memory account, trace and media services behind an httpx.MockTransport.

    GraphQL operations are dispatched on their operation name. Override
    ``graphql_handlers[op]`` to change what an operation returns; every
    operation called is appended to ``operations``.
    """

    def __init__(self):
        self.operations: List[str] = []
        self.variables: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self.blobs: Dict[str, bytes] = {}
        self.uploads = 0
        self.heads: Dict[str, dict] = {}
        self.graphql_handlers: Dict[str, Callable[[Dict[str, Any]], dict]] = {
            CONFIG_QUERY: lambda v: config_response(),
            CREATE_LINK: self._create_link,
            GET_HEAD_LINK: self._get_head_link,
        }
        self.transport = httpx.MockTransport(self.handle)

    def count(self, op: str) -> int:
        return self.operations.count(op)

    # ── trace ────────────────────────────────────────────────────────

    def _create_link(self, variables: Dict[str, Any]) -> dict:
        link = variables["link"]
        self.heads[link["meta"]["mapId"]] = link
        return {"data": {"createLink": {"trace": trace_payload(link, variables.get("data"))}}}

    def _get_head_link(self, variables: Dict[str, Any]) -> dict:
        link = self.heads.get(variables["traceId"])
        if link is None:
            return {"data": {"trace": None}}
        return {"data": {"trace": {"head": {"raw": link, "data": None}}}}

    def _graphql(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        op = operation_name(body["query"])
        self.operations.append(op)
        self.variables.append(body.get("variables") or {})
        handler = self.graphql_handlers.get(op)
        if handler is None:
            return httpx.Response(200, json={"errors": [{"message": f"unexpected operation {op}"}]})
        return httpx.Response(200, json=handler(body.get("variables") or {}))

    # ── media ────────────────────────────────────────────────────────

    def _upload(self, request: httpx.Request) -> httpx.Response:
        boundary = request.headers["content-type"].split("boundary=")[1].encode()
        records = []
        for part in request.content.split(b"--" + boundary)[1:-1]:
            head, blob = part[2:].split(b"\r\n\r\n", 1)
            blob = blob[:-2]
            name = re.search(rb'filename="([^"]*)"', head).group(1).decode()
            digest = b64url_encode(hashlib.sha256(blob).digest())
            self.blobs[digest] = blob
            records.append({"digest": digest, "name": name})
        self.uploads += 1
        return httpx.Response(200, json=records)

    # ── routing ──────────────────────────────────────────────────────

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = urlparse(str(request.url))
        host, path = url.netloc, url.path

        if host == "account.test" and path == "/login":
            return httpx.Response(200, json={"token": "valid-token"})
        if host == "trace.test" and path == "/graphql":
            return self._graphql(request)
        if host == "media.test" and path == "/files" and request.method == "POST":
            return self._upload(request)
        if host == "media.test" and path.startswith("/files/") and path.endswith("/info"):
            digest = path[len("/files/"):-len("/info")]
            return httpx.Response(200, json={"download_url": f"https://storage.test/{digest}"})
        if host == "storage.test":
            digest = path.lstrip("/")
            if digest not in self.blobs:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, content=self.blobs[digest])
        return httpx.Response(404, json={"message": f"no route for {request.method} {request.url}"})


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def options() -> SdkOptions:
    return SdkOptions(
        workflow_id=WORKFLOW_ID,
        secret=PrivateKeySecret(PEM_PRIVATE_KEY),
        endpoints=ENDPOINTS,
    )


@pytest.fixture
def sdk(options: SdkOptions, services: FakeServices) -> Sdk:
    return Sdk(options, transport=services.transport)
