# tracesdk/session/config.py
from dataclasses import dataclass, field
from typing import Dict, Optional

from tracesdk.core.errors import AmbiguousGroupError, NoGroupError
from tracesdk.crypto.keys import SigningKeyPair


@dataclass
class SdkConfig:
    """Workflow scoped identity needed to build and sign links."""
    workflow_id: str
    config_id: str
    account_id: str
    group_label_to_id: Dict[str, str]
    signing_key: SigningKeyPair
    group_label: Optional[str] = field(default=None)

    def group_id(self, group_label: Optional[str] = None) -> str:
        """
        Pick the group to act as. An explicit label wins, then the single
        membership, then the label configured on the SDK.
        """
        if not self.group_label_to_id:
            raise NoGroupError()

        if group_label is not None:
            group_id = self.group_label_to_id.get(group_label)
            if group_id is None:
                raise NoGroupError(f"No group with label '{group_label}' to select from.")
            return group_id

        if len(self.group_label_to_id) == 1:
            return next(iter(self.group_label_to_id.values()))

        if self.group_label and self.group_label in self.group_label_to_id:
            return self.group_label_to_id[self.group_label]

        raise AmbiguousGroupError()
