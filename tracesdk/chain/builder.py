# tracesdk/chain/builder.py
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from tracesdk.chain.link import TraceLink
from tracesdk.core.errors import MissingActionError, MissingParentError
from tracesdk.core.types import TraceActionType, TraceLinkType
from tracesdk.crypto.hashing import data_digest


def utc_iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TraceLinkBuilder:
    """
    Assembles links compatible with the trace service.

    If a parent link is provided, the trace id, priority and parent hash
    are derived from it. Otherwise the link starts a new trace: a fresh
    trace id and priority 1.

    Exactly one ``for_*`` call configures the action. Transfer actions
    require a parent link; this precondition is checked when the ``for_*``
    method is called and raises MissingParentError.
    """

    def __init__(
        self,
        workflow_id: str,
        config_id: Optional[str] = None,
        parent_link: Optional[TraceLink] = None,
    ):
        self.workflow_id = workflow_id
        self.parent_link = parent_link

        if parent_link is not None:
            self.map_id = parent_link.trace_id()
            self.priority = parent_link.priority + 1
            self.parent_hash = parent_link.hash()
        else:
            self.map_id = str(uuid4())
            self.priority = 1
            self.parent_hash = ""

        self.out_degree = 1
        self.action: Optional[str] = None
        self.process_state: Optional[TraceLinkType] = None
        self.data: Any = None
        self.form_data: Any = None
        self.metadata: Dict[str, Any] = {"createdAt": utc_iso_now()}
        if config_id is not None:
            self.metadata["configId"] = config_id

    def _require_parent(self) -> TraceLink:
        if self.parent_link is None:
            raise MissingParentError()
        return self.parent_link

    def _with_hashed_data(self, data: Any) -> "TraceLinkBuilder":
        if data is not None:
            self.data = data_digest(data)
            self.form_data = data
        return self

    def _with_action(self, action: str, state: TraceLinkType) -> "TraceLinkBuilder":
        self.action = action
        self.process_state = state
        return self

    # ── actions ──────────────────────────────────────────────────────

    def for_attestation(self, action_key: str, data: Any) -> "TraceLinkBuilder":
        """
        An attestation with form data. The caller still sets group and
        creator. Schema validation of the data is left to the service.
        """
        if not action_key:
            raise MissingActionError("An action key is required for an attestation")
        self._with_hashed_data(data)._with_action(action_key, TraceLinkType.OWNED)
        self.metadata["formId"] = action_key
        return self

    def _for_transfer_request(
        self, to: str, action: TraceActionType, state: TraceLinkType, data: Any
    ) -> "TraceLinkBuilder":
        parent = self._require_parent()
        self.with_group(parent.group())
        self._with_hashed_data(data)._with_action(action.value, state)
        self.metadata["inputs"] = [to]
        self.metadata["lastFormId"] = parent.form() or parent.last_form()
        return self

    def for_push_transfer(self, to: str, data: Any = None) -> "TraceLinkBuilder":
        return self._for_transfer_request(
            to, TraceActionType.PUSH_OWNERSHIP, TraceLinkType.PUSHING, data
        )

    def for_pull_transfer(self, to: str, data: Any = None) -> "TraceLinkBuilder":
        return self._for_transfer_request(
            to, TraceActionType.PULL_OWNERSHIP, TraceLinkType.PULLING, data
        )

    def for_cancel_transfer(self, data: Any = None) -> "TraceLinkBuilder":
        parent = self._require_parent()
        self.with_group(parent.group())
        return self._with_hashed_data(data)._with_action(
            TraceActionType.CANCEL_TRANSFER.value, TraceLinkType.OWNED
        )

    def for_reject_transfer(self, data: Any = None) -> "TraceLinkBuilder":
        parent = self._require_parent()
        self.with_group(parent.group())
        return self._with_hashed_data(data)._with_action(
            TraceActionType.REJECT_TRANSFER.value, TraceLinkType.OWNED
        )

    def for_accept_transfer(self, data: Any = None) -> "TraceLinkBuilder":
        """The accepting group becomes the owner; set it with with_group()."""
        self._require_parent()
        return self._with_hashed_data(data)._with_action(
            TraceActionType.ACCEPT_TRANSFER.value, TraceLinkType.OWNED
        )

    # ── metadata ─────────────────────────────────────────────────────

    def with_group(self, group_id: Optional[str]) -> "TraceLinkBuilder":
        self.metadata["groupId"] = group_id
        return self

    def with_created_by(self, account_id: str) -> "TraceLinkBuilder":
        self.metadata["createdById"] = account_id
        return self

    def with_config_id(self, config_id: str) -> "TraceLinkBuilder":
        self.metadata["configId"] = config_id
        return self

    def build(self) -> TraceLink:
        """Return a new unsigned link. May be called again after with_config_id()."""
        if self.action is None or self.process_state is None:
            raise MissingActionError("No action configured: call one of the for_* methods before build()")
        return TraceLink(
            process_id=self.workflow_id,
            map_id=self.map_id,
            priority=self.priority,
            action=self.action,
            process_state=self.process_state.value,
            data=self.data,
            metadata={k: v for k, v in self.metadata.items() if v is not None},
            parent_hash=self.parent_hash,
            out_degree=self.out_degree,
            form_data=self.form_data,
        )
