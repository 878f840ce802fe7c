"""
Pytest configuration and fixtures for Voice Pruner tests.
"""

import sys
from dataclasses import replace
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from voice_pruner.api.platform_client import DisconnectOutcome  # noqa: E402
from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID  # noqa: E402
from voice_pruner.datatypes.guild_datatypes import Channel, ChannelKind, Member, Role, ServerState  # noqa: E402
from voice_pruner.datatypes.permission_datatypes import PermissionOverwrite, Permissions  # noqa: E402
from voice_pruner.permissions.monitoring_policy import MonitoringPolicy  # noqa: E402
from voice_pruner.pruning.prune_engine import PruneEngine  # noqa: E402
from voice_pruner.state.state_mirror import ServerView, StateMirror  # noqa: E402


class Scenario:
    """A small guild used across tests.

    - @everyone: view, connect, speak, send messages
    - "Pruner" role (held by the bot): move members
    - "Voice" role (held by the member): connect
    - General (voice), Quiet (voice, bot denied move members), Voice Rooms
      (category) containing Lounge (voice), and a text channel
    """

    def __init__(self) -> None:
        self.guild_id = GuildID(1)
        self.everyone = RoleID(1)
        self.pruner_role = RoleID(20)
        self.voice_role = RoleID(21)
        self.owner = UserID(800)
        self.bot = UserID(900)
        self.member = UserID(901)
        self.general = ChannelID(10)
        self.quiet = ChannelID(11)
        self.lounge = ChannelID(12)
        self.category = ChannelID(30)
        self.text = ChannelID(40)

        everyone_permissions = Permissions.VIEW_CHANNEL | Permissions.CONNECT | Permissions.SPEAK | Permissions.SEND_MESSAGES
        self.state = ServerState(
            guild_id=self.guild_id,
            owner_id=self.owner,
            channels=[
                Channel(self.general, "General", ChannelKind.VOICE, position=0),
                Channel(
                    self.quiet,
                    "Quiet",
                    ChannelKind.VOICE,
                    position=1,
                    overwrites=(PermissionOverwrite.for_role(self.pruner_role, deny=Permissions.MOVE_MEMBERS),),
                ),
                Channel(self.category, "Voice Rooms", ChannelKind.CATEGORY, position=2),
                Channel(self.lounge, "Lounge", ChannelKind.VOICE, parent_id=self.category, position=3),
                Channel(self.text, "chat", ChannelKind.TEXT, position=4),
            ],
            roles=[
                Role(self.everyone, "@everyone", everyone_permissions, position=0),
                Role(self.pruner_role, "Pruner", Permissions.MOVE_MEMBERS, position=2),
                Role(self.voice_role, "Voice", Permissions.CONNECT, position=1),
            ],
            members=[
                Member(self.owner),
                Member(self.bot, frozenset({self.pruner_role})),
                Member(self.member, frozenset({self.voice_role})),
            ],
        )

    def channel(self, channel_id: ChannelID) -> Channel:
        return next(channel for channel in self.state.channels if channel.id == channel_id)

    def role(self, role_id: RoleID) -> Role:
        return next(role for role in self.state.roles if role.id == role_id)

    def add_role(self, role_id: int, name: str, permissions: Permissions = Permissions(0)) -> RoleID:
        role = Role(RoleID(role_id), name, permissions, position=len(self.state.roles))
        self.state.roles.append(role)
        return role.id

    def set_role_permissions(self, role_id: RoleID, permissions: Permissions) -> None:
        self.state.roles = [replace(role, permissions=permissions) if role.id == role_id else role for role in self.state.roles]

    def add_member(self, user_id: int, *role_ids: RoleID) -> UserID:
        member = Member(UserID(user_id), frozenset(role_ids))
        self.state.members = [existing for existing in self.state.members if existing.user_id != member.user_id]
        self.state.members.append(member)
        return member.user_id

    def set_overwrites(self, channel_id: ChannelID, *overwrites: PermissionOverwrite) -> None:
        self.state.channels = [
            replace(channel, overwrites=tuple(overwrites)) if channel.id == channel_id else channel
            for channel in self.state.channels
        ]

    def view(self) -> ServerView:
        return StateMirror().snapshot(self.state)


@pytest.fixture
def scenario() -> Scenario:
    return Scenario()


@pytest.fixture
def mirror() -> StateMirror:
    return StateMirror()


@pytest.fixture
def policy(scenario) -> MonitoringPolicy:
    return MonitoringPolicy(scenario.bot)


@pytest.fixture
def client(scenario):
    """Platform client double answering from the scenario."""
    return SimpleNamespace(
        fetch_server_state=AsyncMock(side_effect=lambda guild_id: scenario.state),
        fetch_voice_connections=AsyncMock(return_value=[]),
        fetch_member_voice_channel=AsyncMock(return_value=None),
        disconnect_member=AsyncMock(return_value=DisconnectOutcome.REMOVED),
    )


@pytest.fixture
def engine(mirror, policy, client) -> PruneEngine:
    return PruneEngine(mirror, policy, client)
