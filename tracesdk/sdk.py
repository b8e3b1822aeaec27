# tracesdk/sdk.py
"""
The trace SDK: builds, signs and submits links, and queries traces.

One Sdk instance serves one workflow. Its session config (account,
group memberships, signing key, config version) is resolved lazily once
and shared by every concurrent call on the instance.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from tracesdk.chain.builder import TraceLinkBuilder
from tracesdk.chain.link import TraceLink, from_object
from tracesdk.client.auth import PrivateKeySecret
from tracesdk.client.graphql import (
    ADD_TAGS_TO_TRACE_MUTATION,
    CONFIG_QUERY,
    CREATE_LINK_MUTATION,
    GET_HEAD_LINK_QUERY,
    GET_TRACE_DETAILS_QUERY,
    GET_TRACE_STATE_QUERY,
    GET_TRACES_IN_STAGE_QUERY,
    SEARCH_TRACES_QUERY,
)
from tracesdk.client.http import Client
from tracesdk.core.errors import (
    CannotResolveKeyError,
    ConfigDeprecatedError,
    FileUploadError,
    GraphQLError,
    MissingActionError,
    MissingTraceOrParentError,
    NoGroupError,
    PreconditionError,
    StageNotFoundError,
    TraceNotFoundError,
    WorkflowNotFoundError,
)
from tracesdk.core.types import (
    FileInfo,
    PageInfo,
    PaginationInfo,
    TraceDetails,
    TraceStageType,
    TracesState,
    TraceState,
)
from tracesdk.crypto.keys import SigningKeyPair
from tracesdk.files.record import FileRecord
from tracesdk.files.substitution import (
    assign_objects,
    extract_file_records,
    extract_file_wrappers,
    format_path,
)
from tracesdk.files.wrapper import EncryptedBlobWrapper, FileWrapper
from tracesdk.session.cache import ConfigCache
from tracesdk.session.config import SdkConfig
from tracesdk.settings import SdkOptions

logger = logging.getLogger(__name__)

Pagination = Union[None, PaginationInfo, Mapping[str, Any]]


def _pagination(pagination: Pagination) -> PaginationInfo:
    if pagination is None:
        return PaginationInfo()
    if isinstance(pagination, PaginationInfo):
        return pagination.validate()
    return PaginationInfo(**pagination).validate()


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _require_action(action_key: Optional[str]) -> str:
    if not action_key:
        raise MissingActionError("An action key (form id) must be provided")
    return action_key


class Sdk:
    def __init__(
        self,
        options: SdkOptions,
        client: Optional[Client] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.options = options
        self.client = client or Client(
            options.secret,
            endpoints=options.endpoints,
            enable_debugging=options.enable_debugging,
            timeout=options.timeout,
            transport=transport,
        )
        self._group_label = options.group_label
        self._config_cache = ConfigCache(self._resolve_config)

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> "Sdk":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ── session config ───────────────────────────────────────────────

    def _resolve_signing_key(self, signing_key: Optional[Mapping[str, Any]]) -> SigningKeyPair:
        """
        A private key given in the secret always wins. Otherwise the key
        held by the account service is used if it is not password protected.
        """
        if isinstance(self.options.secret, PrivateKeySecret):
            return SigningKeyPair.from_pem(self.options.secret.private_key)
        private_key = (signing_key or {}).get("privateKey") or {}
        if private_key.get("decrypted") and not private_key.get("passwordProtected"):
            return SigningKeyPair.from_pem(private_key["decrypted"])
        raise CannotResolveKeyError()

    async def _resolve_config(self) -> SdkConfig:
        workflow_id = self.options.workflow_id
        rsp = await self.client.graphql(CONFIG_QUERY, {"workflowId": workflow_id})

        account = rsp.get("account") or {}
        workflow = rsp.get("workflow")
        if not workflow or not workflow.get("groups"):
            raise WorkflowNotFoundError(f"Cannot find workflow {workflow_id}")

        # accounts I act as: my teams for a user, the bot's teams for a bot
        user, bot = account.get("user") or {}, account.get("bot") or {}
        memberships = user.get("memberOf") or bot.get("teams") or {}
        my_accounts = {n["accountId"] for n in memberships.get("nodes", [])}

        my_groups = [
            g for g in workflow["groups"]["nodes"]
            if any(m["accountId"] in my_accounts for m in g["members"]["nodes"])
        ]
        if not my_groups:
            raise NoGroupError()

        config = SdkConfig(
            workflow_id=workflow_id,
            config_id=workflow["config"]["id"],
            account_id=account["accountId"],
            group_label_to_id={g.get("label") or g["groupId"]: g["groupId"] for g in my_groups},
            signing_key=self._resolve_signing_key(account.get("signingKey")),
            group_label=self._group_label,
        )
        logger.info(
            "[tracesdk] Resolved config %s for workflow %s (%d group(s))",
            config.config_id, workflow_id, len(config.group_label_to_id),
        )
        return config

    async def _get_config(self, force_update: bool = False) -> SdkConfig:
        return await self._config_cache.get(force_update)

    def set_group_label(self, group_label: Optional[str]) -> None:
        """Select the group to act as when the account belongs to several."""
        self._group_label = group_label
        self._config_cache.set_group_label(group_label)

    # ── helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _make_trace_state(trace: Mapping[str, Any]) -> TraceState:
        head = trace["head"]
        head_link = from_object(head["raw"], head.get("data"))
        state = trace.get("state") or {}
        return TraceState(
            trace_id=head_link.trace_id(),
            head_link=head_link,
            updated_at=_parse_datetime(trace.get("updatedAt")),
            updated_by=head_link.created_by(),
            updated_by_group=head_link.group(),
            data=state.get("data"),
            tags=list(trace.get("tags") or []),
        )

    async def _create_link(self, builder: TraceLinkBuilder, first_try: bool = True) -> TraceState:
        """Build, sign and submit; refresh the config and resubmit once if it is deprecated."""
        config = await self._get_config()
        link = builder.build().sign(config.signing_key)

        try:
            rsp = await self.client.graphql(
                CREATE_LINK_MUTATION, {"link": link.to_object(), "data": link.form_data}
            )
        except GraphQLError as err:
            if not err.is_config_deprecated:
                raise
            if not first_try:
                raise ConfigDeprecatedError(
                    "Workflow config is still deprecated after refresh"
                ) from err
            logger.info("[tracesdk] Link config deprecated, refreshing session config")
            config = await self._get_config(force_update=True)
            # build() starts from a clean, unsigned link
            builder.with_config_id(config.config_id)
            return await self._create_link(builder, first_try=False)

        return self._make_trace_state(rsp["createLink"]["trace"])

    async def _get_head_link(
        self, trace_id: Optional[str] = None, prev_link: Optional[TraceLink] = None
    ) -> TraceLink:
        if prev_link is not None:
            return prev_link
        if not trace_id:
            raise MissingTraceOrParentError()
        rsp = await self.client.graphql(GET_HEAD_LINK_QUERY, {"traceId": trace_id})
        trace = rsp.get("trace")
        if not trace or not trace.get("head"):
            raise TraceNotFoundError(f"Cannot find trace {trace_id}")
        return from_object(trace["head"]["raw"], trace["head"].get("data"))

    async def _upload_files(self, id_to_wrapper: Dict[str, FileWrapper]) -> Dict[str, FileRecord]:
        if not id_to_wrapper:
            return {}
        ids = list(id_to_wrapper)
        wrappers = [id_to_wrapper[i] for i in ids]
        try:
            infos: List[FileInfo] = await asyncio.gather(*(w.info() for w in wrappers))
            media = await self.client.upload_files(wrappers)
        except Exception as e:
            raise FileUploadError(f"Failed to upload {len(wrappers)} file(s): {e}") from e
        if len(media) != len(wrappers):
            raise FileUploadError(
                f"Media service returned {len(media)} record(s) for {len(wrappers)} file(s)"
            )
        # upload order is preserved, zip back positionally
        return {
            file_id: FileRecord.from_media(record, info)
            for file_id, record, info in zip(ids, media, infos)
        }

    async def _upload_files_in_link_data(self, data: Any) -> Any:
        path_to_id, id_to_wrapper = extract_file_wrappers(data)
        if path_to_id:
            logger.debug(
                "[tracesdk] Uploading files at %s", ", ".join(format_path(p) for p in path_to_id)
            )
        id_to_record = await self._upload_files(id_to_wrapper)
        return assign_objects(data, path_to_id, id_to_record)

    async def _download_files(self, id_to_record: Dict[str, FileRecord]) -> Dict[str, FileWrapper]:
        if not id_to_record:
            return {}

        async def download(file_id: str, record: FileRecord):
            blob = await self.client.download_file(record)
            return file_id, EncryptedBlobWrapper(blob, record)

        pairs = await asyncio.gather(*(download(i, r) for i, r in id_to_record.items()))
        return dict(pairs)

    async def _get_traces_in_stage(
        self,
        stage_type: TraceStageType,
        pagination: Pagination,
        action_key: Optional[str] = None,
        group_label: Optional[str] = None,
    ) -> TracesState:
        if (stage_type == TraceStageType.ATTESTATION) != bool(action_key):
            raise PreconditionError(
                "You must and can only provide actionKey when stageType is ATTESTATION"
            )
        page = _pagination(pagination)
        config = await self._get_config()

        variables = {
            "groupId": config.group_id(group_label),
            "stageType": stage_type.value,
            **page.to_variables(),
        }
        if action_key:
            variables["actionKey"] = action_key

        rsp = await self.client.graphql(GET_TRACES_IN_STAGE_QUERY, variables)
        stages = rsp["group"]["stages"]["nodes"]

        if len(stages) == 1:
            traces = stages[0]["traces"]
            return TracesState(
                traces=[self._make_trace_state(t) for t in traces["nodes"]],
                total_count=traces["totalCount"],
                info=PageInfo.from_response(traces.get("info")),
            )

        detail = f"{stage_type.value}:{action_key}" if action_key else stage_type.value
        if not stages:
            raise StageNotFoundError(f"No {detail} stage")
        raise StageNotFoundError(f"Multiple {detail} stages")

    # ── write operations ─────────────────────────────────────────────

    async def new_trace(
        self, action_key: str, data: Any, group_label: Optional[str] = None
    ) -> TraceState:
        """Create a new trace whose first link attests ``data`` with form ``action_key``."""
        action = _require_action(action_key)
        config = await self._get_config()
        group_id = config.group_id(group_label)
        data_after_upload = await self._upload_files_in_link_data(data)

        builder = (
            TraceLinkBuilder(config.workflow_id, config_id=config.config_id)
            .for_attestation(action, data_after_upload)
            .with_group(group_id)
            .with_created_by(config.account_id)
        )
        return await self._create_link(builder)

    async def append_link(
        self,
        action_key: str,
        data: Any,
        trace_id: Optional[str] = None,
        prev_link: Optional[TraceLink] = None,
        group_label: Optional[str] = None,
    ) -> TraceState:
        """
        Append an attestation to a trace. Without ``prev_link`` the current
        head of ``trace_id`` is fetched first.
        """
        action = _require_action(action_key)
        parent_link = await self._get_head_link(trace_id, prev_link)
        config = await self._get_config()
        group_id = config.group_id(group_label)
        data_after_upload = await self._upload_files_in_link_data(data)

        builder = (
            TraceLinkBuilder(config.workflow_id, config_id=config.config_id, parent_link=parent_link)
            .for_attestation(action, data_after_upload)
            .with_group(group_id)
            .with_created_by(config.account_id)
        )
        return await self._create_link(builder)

    async def push_trace(
        self,
        recipient: str,
        trace_id: Optional[str] = None,
        prev_link: Optional[TraceLink] = None,
        data: Any = None,
    ) -> TraceState:
        """Offer the trace to the ``recipient`` group."""
        parent_link = await self._get_head_link(trace_id, prev_link)
        config = await self._get_config()
        builder = (
            TraceLinkBuilder(config.workflow_id, config_id=config.config_id, parent_link=parent_link)
            .for_push_transfer(recipient, data)
            .with_created_by(config.account_id)
        )
        return await self._create_link(builder)

    async def pull_trace(
        self,
        trace_id: Optional[str] = None,
        prev_link: Optional[TraceLink] = None,
        data: Any = None,
        group_label: Optional[str] = None,
    ) -> TraceState:
        """Request ownership of the trace for my group."""
        parent_link = await self._get_head_link(trace_id, prev_link)
        config = await self._get_config()
        builder = (
            TraceLinkBuilder(config.workflow_id, config_id=config.config_id, parent_link=parent_link)
            .for_pull_transfer(config.group_id(group_label), data)
            .with_created_by(config.account_id)
        )
        return await self._create_link(builder)

    async def accept_transfer(
        self,
        trace_id: Optional[str] = None,
        prev_link: Optional[TraceLink] = None,
        data: Any = None,
        group_label: Optional[str] = None,
    ) -> TraceState:
        """Accept a pending transfer; my group becomes the owner."""
        parent_link = await self._get_head_link(trace_id, prev_link)
        config = await self._get_config()
        builder = (
            TraceLinkBuilder(config.workflow_id, config_id=config.config_id, parent_link=parent_link)
            .for_accept_transfer(data)
            .with_group(config.group_id(group_label))
            .with_created_by(config.account_id)
        )
        return await self._create_link(builder)

    async def reject_transfer(
        self,
        trace_id: Optional[str] = None,
        prev_link: Optional[TraceLink] = None,
        data: Any = None,
    ) -> TraceState:
        parent_link = await self._get_head_link(trace_id, prev_link)
        config = await self._get_config()
        builder = (
            TraceLinkBuilder(config.workflow_id, config_id=config.config_id, parent_link=parent_link)
            .for_reject_transfer(data)
            .with_created_by(config.account_id)
        )
        return await self._create_link(builder)

    async def cancel_transfer(
        self,
        trace_id: Optional[str] = None,
        prev_link: Optional[TraceLink] = None,
        data: Any = None,
    ) -> TraceState:
        parent_link = await self._get_head_link(trace_id, prev_link)
        config = await self._get_config()
        builder = (
            TraceLinkBuilder(config.workflow_id, config_id=config.config_id, parent_link=parent_link)
            .for_cancel_transfer(data)
            .with_created_by(config.account_id)
        )
        return await self._create_link(builder)

    async def add_tags_to_trace(self, trace_id: str, tags: List[str]) -> TraceState:
        rsp = await self.client.graphql(
            ADD_TAGS_TO_TRACE_MUTATION, {"traceId": trace_id, "tags": list(tags)}
        )
        return self._make_trace_state(rsp["addTagsToTrace"]["trace"])

    # ── read operations ──────────────────────────────────────────────

    async def get_trace_state(self, trace_id: str) -> TraceState:
        rsp = await self.client.graphql(GET_TRACE_STATE_QUERY, {"traceId": trace_id})
        if not rsp.get("trace"):
            raise TraceNotFoundError(f"Cannot find trace {trace_id}")
        return self._make_trace_state(rsp["trace"])

    async def get_trace_details(self, trace_id: str, pagination: Pagination = None) -> TraceDetails:
        page = _pagination(pagination)
        rsp = await self.client.graphql(
            GET_TRACE_DETAILS_QUERY, {"traceId": trace_id, **page.to_variables()}
        )
        if not rsp.get("trace"):
            raise TraceNotFoundError(f"Cannot find trace {trace_id}")
        links = rsp["trace"]["links"]
        return TraceDetails(
            links=[from_object(n["raw"], n.get("data")) for n in links["nodes"]],
            total_count=links["totalCount"],
            info=PageInfo.from_response(links.get("info")),
        )

    async def get_incoming_traces(self, pagination: Pagination = None, group_label: Optional[str] = None) -> TracesState:
        return await self._get_traces_in_stage(TraceStageType.INCOMING, pagination, group_label=group_label)

    async def get_outgoing_traces(self, pagination: Pagination = None, group_label: Optional[str] = None) -> TracesState:
        return await self._get_traces_in_stage(TraceStageType.OUTGOING, pagination, group_label=group_label)

    async def get_backlog_traces(self, pagination: Pagination = None, group_label: Optional[str] = None) -> TracesState:
        return await self._get_traces_in_stage(TraceStageType.BACKLOG, pagination, group_label=group_label)

    async def get_attestation_traces(
        self, action_key: str, pagination: Pagination = None, group_label: Optional[str] = None
    ) -> TracesState:
        return await self._get_traces_in_stage(
            TraceStageType.ATTESTATION, pagination, action_key=action_key, group_label=group_label
        )

    async def search_traces(self, filter: Mapping[str, Any], pagination: Pagination = None) -> TracesState:
        """Search the workflow's traces, e.g. filter={"tags": {"overlaps": ["urgent"]}}."""
        page = _pagination(pagination)
        config = await self._get_config()
        rsp = await self.client.graphql(
            SEARCH_TRACES_QUERY,
            {"workflowId": config.workflow_id, "filter": dict(filter), **page.to_variables()},
        )
        traces = rsp["workflow"]["traces"]
        return TracesState(
            traces=[self._make_trace_state(t) for t in traces["nodes"]],
            total_count=traces["totalCount"],
            info=PageInfo.from_response(traces.get("info")),
        )

    async def download_files_in_object(self, data: Any) -> Any:
        """Replace every file record found in ``data`` with a wrapper around the downloaded file."""
        path_to_id, id_to_record = extract_file_records(data)
        id_to_wrapper = await self._download_files(id_to_record)
        return assign_objects(data, path_to_id, id_to_wrapper)
