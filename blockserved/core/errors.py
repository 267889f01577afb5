from __future__ import annotations


class NoticeStoreError(Exception):
    """Base class for notice store failures."""


class NoticeNotFound(NoticeStoreError):
    def __init__(self, ref: str):
        super().__init__(f"No notice record for {ref!r}.")
        self.ref = ref


class InvalidNoticeField(NoticeStoreError):
    pass


class ChainError(Exception):
    """A chain RPC call failed after exhausting retries."""


class ChainUnavailable(ChainError):
    """No chain client configured, or the node could not be reached."""


class RepairRefused(Exception):
    """A repair would mutate recipients without chain confirmation."""


class AcceptanceRefused(NoticeStoreError):
    """The signature transaction offered as acceptance evidence is not confirmed on chain."""
