# tests/test_client.py
import json

import bcrypt
import httpx
import pytest

from tracesdk.client.auth import CredentialSecret, PrivateKeySecret, ProtectedKeySecret
from tracesdk.client.graphql import CONFIG_QUERY, operation_name
from tracesdk.client.http import Client
from tracesdk.core.errors import (
    GraphQLError,
    HttpError,
    InvalidEndpointsError,
    ServiceError,
    UnsupportedSecretError,
)
from tracesdk.core.types import FileInfo
from tracesdk.crypto.cipher import SymmetricKey
from tracesdk.files.record import FileRecord
from tracesdk.files.wrapper import FileWrapper
from tracesdk.settings import RELEASE_ENDPOINTS, STAGING_ENDPOINTS, SdkOptions, make_endpoints

from conftest import ENDPOINTS, PEM_PRIVATE_KEY


def make_client(handler, secret=None):
    return Client(
        secret or PrivateKeySecret(PEM_PRIVATE_KEY),
        endpoints=ENDPOINTS,
        transport=httpx.MockTransport(handler),
    )


def graphql_ok(data):
    return httpx.Response(200, json={"data": data})


# ── endpoints / options ──────────────────────────────────────────────

def test_make_endpoints():
    assert make_endpoints() == RELEASE_ENDPOINTS
    assert make_endpoints("staging") == STAGING_ENDPOINTS
    assert make_endpoints(ENDPOINTS) == ENDPOINTS
    with pytest.raises(InvalidEndpointsError):
        make_endpoints("production")
    with pytest.raises(InvalidEndpointsError):
        make_endpoints({"account": "https://a.test"})


def test_options_from_env(tmp_path):
    key_file = tmp_path / "key.pem"
    key_file.write_text(PEM_PRIVATE_KEY)
    env = {
        "TRACESDK_WORKFLOW_ID": "591",
        "TRACESDK_PRIVATE_KEY": str(key_file),
        "TRACESDK_ENDPOINTS": json.dumps(ENDPOINTS),
        "TRACESDK_GROUP_LABEL": "group1",
    }
    options = SdkOptions.from_env(environ=env)
    assert options.workflow_id == "591"
    assert options.secret == PrivateKeySecret(PEM_PRIVATE_KEY)
    assert options.endpoints == ENDPOINTS
    assert options.group_label == "group1"

    overridden = SdkOptions.from_env(workflow_id="7", group_label="other", environ=env)
    assert overridden.workflow_id == "7"
    assert overridden.group_label == "other"


def test_options_from_env_credentials():
    env = {"TRACESDK_WORKFLOW_ID": "591", "TRACESDK_EMAIL": "a@b.c", "TRACESDK_PASSWORD": "pw"}
    assert SdkOptions.from_env(environ=env).secret == CredentialSecret("a@b.c", "pw")


def test_options_need_a_secret():
    with pytest.raises(UnsupportedSecretError):
        SdkOptions.from_env(environ={"TRACESDK_WORKFLOW_ID": "591"})


def test_options_accept_mapping_secret():
    options = SdkOptions(workflow_id="591", secret={"privateKey": PEM_PRIVATE_KEY})
    assert isinstance(options.secret, PrivateKeySecret)


# ── auth ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_private_key_login_then_bearer_token():
    seen = []

    def handler(request):
        seen.append((request.url.path, request.headers.get("authorization")))
        if request.url.path == "/login":
            return httpx.Response(200, json={"token": "tok-1"})
        return graphql_ok({"ok": True})

    async with make_client(handler) as client:
        assert await client.graphql(CONFIG_QUERY, {"workflowId": "591"}) == {"ok": True}
        await client.graphql(CONFIG_QUERY, {"workflowId": "591"})

    assert seen[0][0] == "/login"
    assert seen[0][1].startswith("Bearer ")
    assert seen[1:] == [("/graphql", "Bearer tok-1"), ("/graphql", "Bearer tok-1")]


@pytest.mark.asyncio
async def test_credentials_login_hashes_password_with_salt():
    salt = bcrypt.gensalt(rounds=4)
    logins = []

    def handler(request):
        if request.url.path == "/salt":
            assert request.url.params["email"] == "alice@example.com"
            return httpx.Response(200, json={"salt": salt.decode()})
        if request.url.path == "/login":
            logins.append(json.loads(request.content))
            return httpx.Response(200, json={"token": "tok"})
        return graphql_ok({"ok": True})

    secret = CredentialSecret("alice@example.com", "hunter2")
    async with make_client(handler, secret) as client:
        await client.graphql(CONFIG_QUERY)

    assert logins == [{
        "email": "alice@example.com",
        "passwordHash": bcrypt.hashpw(b"hunter2", salt).decode(),
    }]


@pytest.mark.asyncio
async def test_protected_key_secret_is_unsupported():
    client = make_client(lambda r: graphql_ok({}), ProtectedKeySecret("pub", "pw"))
    with pytest.raises(UnsupportedSecretError):
        await client.login()
    await client.close()


@pytest.mark.asyncio
async def test_401_logs_in_again_once():
    tokens = iter(["expired", "fresh"])
    graphql_calls = []

    def handler(request):
        if request.url.path == "/login":
            return httpx.Response(200, json={"token": next(tokens)})
        graphql_calls.append(request.headers["authorization"])
        if request.headers["authorization"] == "Bearer expired":
            return httpx.Response(401, json={"message": "expired"})
        return graphql_ok({"ok": True})

    async with make_client(handler) as client:
        assert await client.graphql(CONFIG_QUERY) == {"ok": True}
    assert graphql_calls == ["Bearer expired", "Bearer fresh"]


@pytest.mark.asyncio
async def test_rest_401_twice_raises_http_error():
    def handler(request):
        if request.url.path == "/login":
            return httpx.Response(200, json={"token": "tok"})
        return httpx.Response(401, json={"errors": [{"message": "denied"}]})

    async with make_client(handler) as client:
        with pytest.raises(HttpError) as exc:
            await client.get("account", "me")
    assert exc.value.status == 401
    assert exc.value.body == [{"message": "denied"}]


# ── graphql ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_graphql_errors_raise():
    def handler(request):
        if request.url.path == "/login":
            return httpx.Response(200, json={"token": "tok"})
        return httpx.Response(200, json={"errors": [{"message": "link config deprecated"}]})

    async with make_client(handler) as client:
        with pytest.raises(GraphQLError) as exc:
            await client.graphql(CONFIG_QUERY)
    assert exc.value.is_config_deprecated


@pytest.mark.asyncio
async def test_graphql_empty_response_raises():
    def handler(request):
        if request.url.path == "/login":
            return httpx.Response(200, json={"token": "tok"})
        return httpx.Response(200, json={"data": None})

    async with make_client(handler) as client:
        with pytest.raises(ServiceError, match="empty"):
            await client.graphql(CONFIG_QUERY)


def test_operation_name():
    assert operation_name(CONFIG_QUERY) == "query configQuery"


# ── media ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_upload_nothing_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    async with make_client(handler) as client:
        assert await client.upload_files([]) == []


@pytest.mark.asyncio
async def test_upload_and_download(services):
    info = FileInfo(mimetype="text/plain", size=5, name="a.txt")
    wrapper = FileWrapper.from_file_blob(b"hello", info)

    async with Client(PrivateKeySecret(PEM_PRIVATE_KEY), ENDPOINTS, transport=services.transport) as client:
        media = await client.upload_files([wrapper])
        assert len(media) == 1
        assert media[0]["name"] == "a.txt"

        record = FileRecord.from_media(media[0], await wrapper.info())
        blob = await client.download_file(record)

    assert blob != b"hello"
    assert SymmetricKey.from_b64(record.key).decrypt(blob) == b"hello"
    assert services.uploads == 1
    # the storage url is fetched without credentials
    assert "authorization" not in services.requests[-1].headers
