"""
Reconciliation dispatcher: the single consumer of gateway events.

Events are pulled one at a time from a bounded queue and applied to the state
mirror synchronously, which keeps mirror writes ordered and non-overlapping.
Events that can change who may stay in a voice channel then schedule a prune
for the affected channels as a tracked background task, so a slow removal never
holds up the next event.

Each guild moves through ``UNINITIALIZED -> SYNCING -> READY``. Only ``READY``
guilds react to events; anything received before that is dropped because the
pending snapshot will reflect it. An event that was queued before the snapshot
of its guild was taken is dropped for the same reason.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Set, Tuple

from voice_pruner.api.platform_client import PlatformClient
from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.event_datatypes import (
    ChannelDelete,
    ChannelUpsert,
    ConnectionLost,
    ConnectionReady,
    GatewayEvent,
    MemberRemove,
    MemberUpsert,
    MirrorEvent,
    RoleDelete,
    RoleUpsert,
    ServerAvailable,
    ServerRemove,
    ServerUpdate,
    Unrelated,
)
from voice_pruner.datatypes.guild_datatypes import ChannelKind
from voice_pruner.errors import PermissionDenied, TransientError
from voice_pruner.permissions.monitoring_policy import MonitoringPolicy
from voice_pruner.pruning.prune_engine import PruneEngine, PruneResult
from voice_pruner.state.state_mirror import ServerView, StateMirror
from voice_pruner.util.logger import get_logger

logger = get_logger("reconciliation")

DEFAULT_QUEUE_SIZE = 1000


class SyncState(Enum):
    UNINITIALIZED = "uninitialized"
    SYNCING = "syncing"
    READY = "ready"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class PruneTarget:
    """What to re-check after an event.

    Attributes:
        channel_ids: Specific channels, or ``None`` for every monitored channel.
        role_filter: Only consider holders of this role.
        member_id: Re-check only the channel this member is connected to.
    """

    channel_ids: Tuple[ChannelID, ...] | None = None
    role_filter: RoleID | None = None
    member_id: UserID | None = None


class ReconciliationDispatcher:
    """Consumes gateway events, keeps the mirror current and triggers pruning."""

    def __init__(
        self,
        mirror: StateMirror,
        policy: MonitoringPolicy,
        engine: PruneEngine,
        client: PlatformClient,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.mirror = mirror
        self.policy = policy
        self.engine = engine
        self.client = client
        self._queue: asyncio.Queue[Tuple[int, GatewayEvent]] = asyncio.Queue(maxsize=max(1, queue_size))
        self._states: Dict[GuildID, SyncState] = {}
        self._snapshot_seq: Dict[GuildID, int] = {}
        self._sequence = 0
        self._accepting = True
        self._tasks: Set[asyncio.Task] = set()
        self._runner: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def state(self, guild_id: GuildID) -> SyncState:
        return self._states.get(guild_id, SyncState.UNINITIALIZED)

    @property
    def accepting(self) -> bool:
        return self._accepting

    def start(self) -> asyncio.Task[None]:
        """Start the consumer loop if it is not already running."""
        if self._runner is None or self._runner.done():
            self._runner = asyncio.get_running_loop().create_task(self.run(), name="voice-pruner-dispatcher")
        return self._runner

    def stop(self) -> None:
        """Stop accepting events and stop the consumer loop.

        In-flight prunes keep running; await :meth:`drain` for them.
        """
        self._accepting = False
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
        logger.info("[DISPATCHER] Stopped accepting events (%d queued event(s) discarded)", self._queue.qsize())

    async def drain(self) -> None:
        """Wait until every background prune and sync task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def submit(self, event: GatewayEvent) -> bool:
        """Queue an event for the consumer loop. Returns ``False`` after :meth:`stop`."""
        if not self._accepting:
            return False
        await self._queue.put((self._next_sequence(), event))
        return True

    async def run(self) -> None:
        """Consume queued events forever, one at a time."""
        logger.info("[DISPATCHER] Event loop started")
        while True:
            sequence, event = await self._queue.get()
            try:
                await self.handle_event(event, sequence)
            except Exception:
                logger.exception("[DISPATCHER] Failed to handle %s", type(event).__name__)
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def synchronize(self, guild_ids: Iterable[GuildID]) -> None:
        """Snapshot several guilds concurrently."""
        await asyncio.gather(*(self.sync_guild(guild_id) for guild_id in guild_ids))

    async def sync_guild(self, guild_id: GuildID) -> bool:
        """Snapshot one guild and mark it ``READY``. Returns ``False`` on failure."""
        self._states[guild_id] = SyncState.SYNCING
        try:
            state = await self.client.fetch_server_state(guild_id)
        except (TransientError, PermissionDenied) as exc:
            logger.error("[DISPATCHER] Snapshot of guild %s failed: %s", guild_id, exc)
            self._states[guild_id] = SyncState.UNINITIALIZED
            return False

        if self._states.get(guild_id) is not SyncState.SYNCING:
            # Removed or invalidated while the snapshot was in flight.
            logger.debug("[DISPATCHER] Discarding stale snapshot of guild %s", guild_id)
            return False

        self.mirror.snapshot(state)
        self._snapshot_seq[guild_id] = self._sequence
        self._states[guild_id] = SyncState.READY
        return True

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle_event(self, event: GatewayEvent, sequence: int | None = None) -> None:
        """Handle one event. ``sequence`` defaults to "newer than any snapshot"."""
        if sequence is None:
            sequence = self._next_sequence()

        match event:
            case ConnectionReady(guild_ids=guild_ids):
                logger.info("[DISPATCHER] Connection ready with %d guild(s)", len(guild_ids))
                for guild_id in guild_ids:
                    self._states[guild_id] = SyncState.SYNCING
                self._spawn(self.synchronize(guild_ids), name="voice-pruner-sync")
            case ConnectionLost():
                logger.warning("[DISPATCHER] Connection lost; all guilds need a fresh snapshot")
                for guild_id in list(self._states):
                    self._states[guild_id] = SyncState.UNINITIALIZED
            case ServerAvailable(guild_id=guild_id):
                self._states[guild_id] = SyncState.SYNCING
                self._spawn(self.sync_guild(guild_id), name=f"voice-pruner-sync-{guild_id}")
            case ServerRemove(guild_id=guild_id):
                self._states.pop(guild_id, None)
                self._snapshot_seq.pop(guild_id, None)
                self.mirror.apply(event)
            case Unrelated():
                return
            case _:
                self._handle_mirror_event(event, sequence)

    def _handle_mirror_event(self, event: MirrorEvent, sequence: int) -> None:
        guild_id = event.guild_id
        if self.state(guild_id) is not SyncState.READY:
            logger.debug("[DISPATCHER] Dropping %s for guild %s in state %s", type(event).__name__, guild_id, self.state(guild_id))
            return
        if sequence <= self._snapshot_seq.get(guild_id, -1):
            logger.debug("[DISPATCHER] Dropping %s for guild %s superseded by snapshot", type(event).__name__, guild_id)
            return

        before = self.mirror.get(guild_id)
        if before is None:
            return
        target = self.plan(before, event)
        self.mirror.apply(event)

        if target is None:
            return
        after = self.mirror.get(guild_id)
        if after is None:
            return
        if self.policy.is_exempt(after):
            logger.debug("[DISPATCHER] Guild %s is exempt; skipping automatic prune", guild_id)
            return

        self._spawn(self._auto_prune(guild_id, target), name=f"voice-pruner-prune-{guild_id}")

    def plan(self, view: ServerView, event: MirrorEvent) -> PruneTarget | None:
        """Decide, against the state before ``event``, what must be re-checked after it."""
        match event:
            case ChannelUpsert(channel=channel):
                previous = view.channel(channel.id)
                if (
                    previous is not None
                    and previous.overwrites == channel.overwrites
                    and previous.parent_id == channel.parent_id
                    and previous.kind == channel.kind
                ):
                    return None
                if channel.kind is ChannelKind.CATEGORY:
                    children = tuple(child.id for child in view.children_of(channel.id) if child.is_voice)
                    return PruneTarget(channel_ids=children) if children else None
                if channel.is_voice:
                    return PruneTarget(channel_ids=(channel.id,))
                return None
            case RoleUpsert(role=role):
                previous = view.role(role.id)
                if previous is None or previous.permissions == role.permissions:
                    return None
                return PruneTarget(role_filter=role.id)
            case RoleDelete(role_id=role_id):
                if view.role(role_id) is None:
                    return None
                return PruneTarget()
            case MemberUpsert(member=member):
                previous = view.member(member.user_id)
                if previous is not None and previous.role_ids == member.role_ids:
                    return None
                if member.user_id == self.policy.bot_user_id:
                    return PruneTarget()
                return PruneTarget(member_id=member.user_id)
            case ServerUpdate(owner_id=owner_id):
                # The owner bypasses overwrites; a transfer strips that from the previous owner.
                if owner_id == view.owner_id:
                    return None
                if owner_id is not None and owner_id == self.policy.bot_user_id:
                    return PruneTarget()
                if view.owner_id is None or view.owner_id == self.policy.bot_user_id:
                    return None
                return PruneTarget(member_id=view.owner_id)
            case ChannelDelete() | MemberRemove():
                return None
            case _:
                return None

    async def _auto_prune(self, guild_id: GuildID, target: PruneTarget) -> PruneResult:
        if target.member_id is not None:
            try:
                channel_id = await self.client.fetch_member_voice_channel(guild_id, target.member_id)
            except TransientError as exc:
                logger.debug("[DISPATCHER] Could not locate member %s (%s); checking all monitored channels", target.member_id, exc)
                return await self.engine.prune_guild(guild_id)
            if channel_id is None:
                return PruneResult.empty()
            return await self.engine.prune(guild_id, channel_id)

        if target.channel_ids is not None:
            return await self.engine.prune_channels(guild_id, target.channel_ids, target.role_filter)
        return await self.engine.prune_guild(guild_id, target.role_filter)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _spawn(self, coro, *, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_finished)
        return task

    def _task_finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[DISPATCHER] Background task %s failed: %s", task.get_name(), exc, exc_info=exc)
