# tracesdk/settings.py
"""
SDK options and their resolution from the environment.

Precedence: explicit argument, then environment variable, then default.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from tracesdk.client.auth import (
    CredentialSecret,
    PrivateKeySecret,
    Secret,
    secret_from_mapping,
)
from tracesdk.core.errors import InvalidEndpointsError, UnsupportedSecretError

ENV_WORKFLOW_ID = "TRACESDK_WORKFLOW_ID"
ENV_PRIVATE_KEY = "TRACESDK_PRIVATE_KEY"
ENV_EMAIL = "TRACESDK_EMAIL"
ENV_PASSWORD = "TRACESDK_PASSWORD"
ENV_ENDPOINTS = "TRACESDK_ENDPOINTS"
ENV_GROUP_LABEL = "TRACESDK_GROUP_LABEL"

SERVICES = ("account", "trace", "media")

RELEASE_ENDPOINTS: Dict[str, str] = {
    "account": "https://account-api.stratumn.com",
    "trace": "https://trace-api.stratumn.com",
    "media": "https://media-api.stratumn.com",
}

STAGING_ENDPOINTS: Dict[str, str] = {
    "account": "https://account-api.staging.stratumn.com",
    "trace": "https://trace-api.staging.stratumn.com",
    "media": "https://media-api.staging.stratumn.com",
}

NAMED_ENDPOINTS = {"release": RELEASE_ENDPOINTS, "staging": STAGING_ENDPOINTS}

Endpoints = Dict[str, str]


def make_endpoints(endpoints: Union[None, str, Mapping[str, str]] = None) -> Endpoints:
    """
    Build the endpoints map. None means release; "release" / "staging"
    select a named environment; a mapping must provide every service.
    """
    if endpoints is None:
        return dict(RELEASE_ENDPOINTS)
    if isinstance(endpoints, str):
        if endpoints in NAMED_ENDPOINTS:
            return dict(NAMED_ENDPOINTS[endpoints])
        raise InvalidEndpointsError()
    if not isinstance(endpoints, Mapping) or not all(endpoints.get(s) for s in SERVICES):
        raise InvalidEndpointsError()
    return {s: endpoints[s] for s in SERVICES}


def _read_private_key(value: str) -> str:
    """The key may be given inline as PEM or as a path to a PEM file."""
    if "-----BEGIN" in value:
        return value
    path = Path(value).expanduser()
    if path.is_file():
        return path.read_text(encoding="utf-8")
    raise UnsupportedSecretError(f"{ENV_PRIVATE_KEY} is neither a PEM key nor a readable file")


@dataclass
class SdkOptions:
    workflow_id: str
    secret: Secret
    endpoints: Union[None, str, Mapping[str, str]] = None
    group_label: Optional[str] = None
    enable_debugging: bool = False
    timeout: float = 30.0

    def __post_init__(self):
        if isinstance(self.secret, Mapping):
            self.secret = secret_from_mapping(self.secret)

    @classmethod
    def from_env(
        cls,
        workflow_id: Optional[str] = None,
        endpoints: Optional[str] = None,
        group_label: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "SdkOptions":
        env = os.environ if environ is None else environ

        workflow_id = workflow_id or env.get(ENV_WORKFLOW_ID)
        if not workflow_id:
            raise ValueError(f"A workflow id is required (set {ENV_WORKFLOW_ID})")

        secret: Secret
        if env.get(ENV_PRIVATE_KEY):
            secret = PrivateKeySecret(_read_private_key(env[ENV_PRIVATE_KEY]))
        elif env.get(ENV_EMAIL) and env.get(ENV_PASSWORD):
            secret = CredentialSecret(env[ENV_EMAIL], env[ENV_PASSWORD])
        else:
            raise UnsupportedSecretError(
                f"No secret found: set {ENV_PRIVATE_KEY} or {ENV_EMAIL}/{ENV_PASSWORD}"
            )

        raw_endpoints = endpoints or env.get(ENV_ENDPOINTS)
        resolved: Union[None, str, Mapping[str, str]] = raw_endpoints
        if raw_endpoints and raw_endpoints.lstrip().startswith("{"):
            resolved = json.loads(raw_endpoints)

        return cls(
            workflow_id=workflow_id,
            secret=secret,
            endpoints=make_endpoints(resolved),
            group_label=group_label or env.get(ENV_GROUP_LABEL),
        )
