"""
Monitoring policy: which voice channels the bot manages, and whether it has
been told to stay out of a guild.
"""

from __future__ import annotations

from voice_pruner.datatypes.discord_datatypes import ChannelID, UserID
from voice_pruner.datatypes.permission_datatypes import Permissions
from voice_pruner.permissions.calculator import effective
from voice_pruner.state.state_mirror import ServerView

DEFAULT_EXEMPTION_ROLE_NAME = "no-auto-prune"

# Permission the bot needs in a channel before it will disconnect anyone there.
MANAGE_PERMISSION = Permissions.MOVE_MEMBERS


class MonitoringPolicy:
    """Decides what the bot acts on.

    A channel is monitored when it is a voice channel and the bot holds
    ``MOVE_MEMBERS`` in it. A guild is exempt when the bot holds a role named
    ``exemption_role_name``; exemption only suppresses automatic pruning.
    """

    def __init__(self, bot_user_id: UserID, exemption_role_name: str = DEFAULT_EXEMPTION_ROLE_NAME) -> None:
        self.bot_user_id = bot_user_id
        self.exemption_role_name = exemption_role_name

    def is_monitored(self, view: ServerView, channel_id: ChannelID) -> bool:
        channel = view.channel(channel_id)
        if channel is None or not channel.is_voice:
            return False
        return MANAGE_PERMISSION in effective(view, self.bot_user_id, channel_id)

    def monitored_channels(self, view: ServerView) -> list[ChannelID]:
        return [channel.id for channel in view.voice_channels() if self.is_monitored(view, channel.id)]

    def is_exempt(self, view: ServerView) -> bool:
        me = view.member(self.bot_user_id)
        if me is None:
            return False
        return any(role.id in me.role_ids for role in view.roles_named(self.exemption_role_name))
