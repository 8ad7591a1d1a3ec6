"""Assembly of the long-lived engine objects shared by the API and the workers."""
from __future__ import annotations

from dataclasses import dataclass

from inbox_service.application.ports.clock import Clock, SystemClock
from inbox_service.application.ports.gateway import GatewayClient
from inbox_service.application.ports.media_store import MediaStore
from inbox_service.config import Settings
from inbox_service.services.command_dispatcher import CommandDispatcher
from inbox_service.services.locks import ConversationLocks
from inbox_service.services.normalizer import GatewayEventNormalizer
from inbox_service.services.pending_registry import PendingSendRegistry
from inbox_service.services.reconciler import Reconciler
from inbox_service.services.watermark_tracker import UnreadWatermarkTracker


@dataclass(frozen=True, slots=True)
class InboxEngine:
    normalizer: GatewayEventNormalizer
    registry: PendingSendRegistry
    reconciler: Reconciler
    tracker: UnreadWatermarkTracker
    media_store: MediaStore | None = None

    def dispatcher(self, gateway: GatewayClient, settings: Settings) -> CommandDispatcher:
        return CommandDispatcher(
            registry=self.registry,
            reconciler=self.reconciler,
            tracker=self.tracker,
            gateway=gateway,
            timeout_seconds=settings.GATEWAY_TIMEOUT_SECONDS,
            default_suffix=settings.DEFAULT_ADDRESS_SUFFIX,
            media_store=self.media_store,
        )


def build_engine(
    settings: Settings,
    *,
    media_store: MediaStore | None = None,
    clock: Clock | None = None,
) -> InboxEngine:
    """One engine per process: the reconciler's locks only serialize what shares it."""
    clock = clock or SystemClock()
    registry = PendingSendRegistry(
        match_grace_seconds=settings.PENDING_MATCH_GRACE_SECONDS,
        stale_after_seconds=settings.PENDING_STALE_SECONDS,
        clock=clock,
    )
    return InboxEngine(
        normalizer=GatewayEventNormalizer(media_store=media_store, clock=clock),
        registry=registry,
        reconciler=Reconciler(registry, locks=ConversationLocks(), clock=clock),
        tracker=UnreadWatermarkTracker(clock),
        media_store=media_store,
    )
