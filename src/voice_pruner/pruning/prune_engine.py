"""
Prune engine: disconnects members who may not be in a monitored voice channel.

Design notes
- The engine only reads the state mirror; connected members are fetched live
  from the platform client on every call.
- Removals inside one call run concurrently, bounded by a semaphore shared by
  every call on the engine, and are joined before the result is returned.
- Partial failures never raise. They are collected in :class:`PruneResult`.

Quick usage example
    engine = PruneEngine(mirror, policy, client, max_concurrent_removals=5)
    result = await engine.prune(guild_id, channel_id)
    logger.info(result.summary())
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

from voice_pruner.api.platform_client import DisconnectOutcome, PlatformClient
from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.permission_datatypes import Permissions
from voice_pruner.errors import PartialFailure
from voice_pruner.permissions.calculator import effective
from voice_pruner.permissions.monitoring_policy import MonitoringPolicy
from voice_pruner.state.state_mirror import ServerView, StateMirror
from voice_pruner.util.logger import get_logger

logger = get_logger("prune_engine")

DEFAULT_MAX_CONCURRENT_REMOVALS = 5


class PruneErrorKind(Enum):
    """Why a removal did not happen."""

    PERMISSION_DENIED = "permission_denied"
    TRANSIENT = "transient"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class PruneError:
    channel_id: ChannelID
    user_id: UserID
    kind: PruneErrorKind
    detail: str = ""


@dataclass(slots=True)
class PruneResult:
    """Aggregate outcome of one or more prune runs.

    Attributes:
        attempted: Members found violating policy that a removal was issued for.
        removed: Members no longer connected afterwards, including those who
            had already left on their own.
        errors: Removals that failed.
    """

    attempted: int = 0
    removed: int = 0
    errors: List[PruneError] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "PruneResult":
        return cls()

    @classmethod
    def combine(cls, results: Sequence["PruneResult"]) -> "PruneResult":
        combined = cls.empty()
        for result in results:
            combined = combined.merge(result)
        return combined

    def merge(self, other: "PruneResult") -> "PruneResult":
        return PruneResult(
            attempted=self.attempted + other.attempted,
            removed=self.removed + other.removed,
            errors=[*self.errors, *other.errors],
        )

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        return f"attempted={self.attempted} removed={self.removed} errors={len(self.errors)}"

    def raise_for_errors(self) -> None:
        """Raise :class:`PartialFailure` if any removal failed."""
        if self.ok:
            return
        denied = sum(1 for error in self.errors if error.kind is PruneErrorKind.PERMISSION_DENIED)
        transient = len(self.errors) - denied
        parts = []
        if denied:
            parts.append(f"{denied} missing permission")
        if transient:
            parts.append(f"{transient} temporary failure{'s' if transient != 1 else ''}")
        raise PartialFailure(self, f"Removed {self.removed} of {self.attempted} members ({', '.join(parts)})")


class PruneEngine:
    """Finds and removes connected members lacking ``CONNECT``."""

    def __init__(
        self,
        mirror: StateMirror,
        policy: MonitoringPolicy,
        client: PlatformClient,
        max_concurrent_removals: int = DEFAULT_MAX_CONCURRENT_REMOVALS,
    ) -> None:
        self.mirror = mirror
        self.policy = policy
        self.client = client
        self._removal_slots = asyncio.Semaphore(max(1, max_concurrent_removals))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def prune(self, guild_id: GuildID, channel_id: ChannelID, role_filter: RoleID | None = None) -> PruneResult:
        """Remove every connected member of ``channel_id`` who lacks ``CONNECT``.

        When ``role_filter`` is given only holders of that role are considered.
        Unknown guilds, deleted channels and unmonitored channels produce an
        empty result without any remote call.
        """
        view = self.mirror.get(guild_id)
        if view is None or not self.policy.is_monitored(view, channel_id):
            return PruneResult.empty()

        connected = await self.client.fetch_voice_connections(guild_id, channel_id)
        if not connected:
            return PruneResult.empty()

        # The mirror may have moved on while the connections were fetched.
        view = self.mirror.get(guild_id)
        if view is None or not self.policy.is_monitored(view, channel_id):
            return PruneResult.empty()

        violators = self.find_violators(view, channel_id, connected, role_filter)
        if not violators:
            return PruneResult.empty()

        logger.debug("[PRUNE ENGINE] Removing %d member(s) from channel %s in guild %s", len(violators), channel_id, guild_id)
        outcomes = await asyncio.gather(
            *(self._remove(guild_id, user_id) for user_id in violators),
            return_exceptions=True,
        )

        result = PruneResult(attempted=len(violators))
        for user_id, outcome in zip(violators, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error("[PRUNE ENGINE] Unexpected error removing %s from %s: %s", user_id, channel_id, outcome)
                result.errors.append(PruneError(channel_id, user_id, PruneErrorKind.TRANSIENT, str(outcome)))
                continue
            match outcome:
                case DisconnectOutcome.REMOVED | DisconnectOutcome.NOT_CONNECTED:
                    result.removed += 1
                case DisconnectOutcome.FORBIDDEN:
                    result.errors.append(PruneError(channel_id, user_id, PruneErrorKind.PERMISSION_DENIED, "missing permission to move members"))
                case _:
                    result.errors.append(PruneError(channel_id, user_id, PruneErrorKind.TRANSIENT, str(outcome)))

        if result.ok:
            logger.info("[PRUNE ENGINE] Channel %s in guild %s: %s", channel_id, guild_id, result.summary())
        else:
            logger.warning("[PRUNE ENGINE] Channel %s in guild %s: %s", channel_id, guild_id, result.summary())
        return result

    async def prune_guild(self, guild_id: GuildID, role_filter: RoleID | None = None) -> PruneResult:
        """Run :meth:`prune` on every monitored voice channel of a guild."""
        view = self.mirror.get(guild_id)
        if view is None:
            return PruneResult.empty()
        return await self.prune_channels(guild_id, self.policy.monitored_channels(view), role_filter)

    async def prune_channels(
        self,
        guild_id: GuildID,
        channel_ids: Sequence[ChannelID],
        role_filter: RoleID | None = None,
    ) -> PruneResult:
        results = await asyncio.gather(*(self.prune(guild_id, channel_id, role_filter) for channel_id in channel_ids))
        return PruneResult.combine(results)

    def find_violators(
        self,
        view: ServerView,
        channel_id: ChannelID,
        connected: Sequence[UserID],
        role_filter: RoleID | None = None,
    ) -> List[UserID]:
        """Return the connected users who lack ``CONNECT`` in ``channel_id``."""
        violators = []
        for user_id in connected:
            member = view.member(user_id)
            if member is None:
                logger.warning("[PRUNE ENGINE] Connected user %s is missing from guild %s; skipping", user_id, view.guild_id)
                continue
            if role_filter is not None and not member.has_role(role_filter, view.guild_id):
                continue
            if Permissions.CONNECT not in effective(view, user_id, channel_id):
                violators.append(user_id)
        return violators

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _remove(self, guild_id: GuildID, user_id: UserID) -> DisconnectOutcome:
        async with self._removal_slots:
            return await self.client.disconnect_member(guild_id, user_id)
