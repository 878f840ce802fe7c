from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from voice_pruner.bot.cogs import voice_cmds
from voice_pruner.datatypes.discord_datatypes import ChannelID, UserID
from voice_pruner.datatypes.permission_datatypes import PermissionOverwrite, Permissions
from voice_pruner.pruning.prune_engine import PruneError, PruneErrorKind, PruneResult
from voice_pruner.pruning.request_facade import ChannelSummary, RequestFacade


def make_ctx(user_id, guild_id=1, name="prune"):
    return SimpleNamespace(
        guild_id=guild_id,
        user=SimpleNamespace(id=user_id.to_int()),
        command=SimpleNamespace(name=name),
        respond=AsyncMock(),
        defer=AsyncMock(),
        send_followup=AsyncMock(),
    )


@pytest.fixture
def facade(mirror, policy, engine) -> RequestFacade:
    return RequestFacade(mirror, policy, engine)


@pytest.fixture
def cog(facade):
    return voice_cmds.VoiceCommandsCog(SimpleNamespace(), facade)


def reply_of(ctx) -> str:
    return ctx.respond.await_args.args[0]


def test_format_channel_list():
    channels = [ChannelSummary(ChannelID(1), "General", True), ChannelSummary(ChannelID(2), "Lounge", False)]

    assert voice_cmds.format_channel_list(channels) == "`• General`\n`• Lounge`"
    assert voice_cmds.format_channel_list([]) == "`None`"


@pytest.mark.asyncio
async def test_is_monitored_replies_true_and_false(cog, mirror, scenario):
    mirror.snapshot(scenario.state)
    callback = voice_cmds.VoiceCommandsCog.is_monitored.callback

    ctx = make_ctx(scenario.bot)
    await callback(cog, ctx, SimpleNamespace(id=scenario.general.to_int()))
    assert reply_of(ctx) == "`true`"
    assert ctx.respond.await_args.kwargs == {"ephemeral": True}

    ctx = make_ctx(scenario.bot)
    await callback(cog, ctx, SimpleNamespace(id=scenario.quiet.to_int()))
    assert reply_of(ctx) == "`false`"


@pytest.mark.asyncio
async def test_commands_unavailable_in_dms(cog, scenario):
    ctx = make_ctx(scenario.bot, guild_id=None)

    await voice_cmds.VoiceCommandsCog.list_all.callback(cog, ctx)

    assert reply_of(ctx) == voice_cmds.UNAVAILABLE_IN_DMS


@pytest.mark.asyncio
async def test_commands_require_move_members(cog, mirror, scenario):
    mirror.snapshot(scenario.state)
    ctx = make_ctx(scenario.member)

    await voice_cmds.VoiceCommandsCog.list_all.callback(cog, ctx)

    assert reply_of(ctx) == voice_cmds.MISSING_PERMISSION


@pytest.mark.asyncio
async def test_unsynchronized_guild_reports_not_found(cog, scenario):
    ctx = make_ctx(scenario.bot)

    await voice_cmds.VoiceCommandsCog.list_monitored.callback(cog, ctx)

    assert reply_of(ctx).startswith(voice_cmds.WARNING)
    assert "not synchronized" in reply_of(ctx)


@pytest.mark.asyncio
async def test_list_commands(cog, mirror, scenario):
    mirror.snapshot(scenario.state)

    ctx = make_ctx(scenario.bot)
    await voice_cmds.VoiceCommandsCog.list_all.callback(cog, ctx)
    assert reply_of(ctx) == "`• General`\n`• Quiet`\n`• Lounge`"

    ctx = make_ctx(scenario.bot)
    await voice_cmds.VoiceCommandsCog.list_monitored.callback(cog, ctx)
    assert reply_of(ctx) == "`• General`\n`• Lounge`"

    ctx = make_ctx(scenario.bot)
    await voice_cmds.VoiceCommandsCog.list_unmonitored.callback(cog, ctx)
    assert reply_of(ctx) == "`• Quiet`"


@pytest.mark.asyncio
async def test_prune_command_reports_removals(cog, mirror, scenario, client):
    scenario.set_overwrites(scenario.general, PermissionOverwrite.for_member(scenario.member, deny=Permissions.CONNECT))
    mirror.snapshot(scenario.state)
    client.fetch_voice_connections.return_value = [scenario.member]
    ctx = make_ctx(scenario.bot)

    await voice_cmds.VoiceCommandsCog.prune.callback(cog, ctx, SimpleNamespace(id=scenario.general.to_int()), None)

    ctx.defer.assert_awaited_once_with(ephemeral=True)
    ctx.send_followup.assert_awaited_once_with("Removed 1 member", ephemeral=True)
    ctx.respond.assert_not_awaited()


@pytest.mark.asyncio
async def test_prune_command_with_nothing_to_do(cog, mirror, scenario):
    mirror.snapshot(scenario.state)
    ctx = make_ctx(scenario.bot)

    await voice_cmds.VoiceCommandsCog.prune.callback(cog, ctx, None, None)

    ctx.send_followup.assert_awaited_once_with("No members needed to be removed", ephemeral=True)


@pytest.mark.asyncio
async def test_prune_command_reports_partial_failure(scenario):
    facade = MagicMock()
    facade.prune_request = AsyncMock(
        return_value=PruneResult(
            attempted=2,
            removed=1,
            errors=[PruneError(ChannelID(10), UserID(5), PruneErrorKind.PERMISSION_DENIED)],
        )
    )
    cog = voice_cmds.VoiceCommandsCog(SimpleNamespace(), facade)
    ctx = make_ctx(scenario.bot)

    await voice_cmds.VoiceCommandsCog.prune.callback(cog, ctx, None, SimpleNamespace(id=21))

    message = ctx.send_followup.await_args.args[0]
    assert message == f"{voice_cmds.WARNING} **Removed 1 of 2 members (1 missing permission)**"
    assert facade.prune_request.await_args.args[2] == 21


@pytest.mark.asyncio
async def test_unexpected_errors_become_internal_error(scenario):
    facade = MagicMock()
    facade.list_channels.side_effect = RuntimeError("boom")
    cog = voice_cmds.VoiceCommandsCog(SimpleNamespace(), facade)
    ctx = make_ctx(scenario.bot, name="all")

    await voice_cmds.VoiceCommandsCog.list_all.callback(cog, ctx)

    assert reply_of(ctx) == voice_cmds.INTERNAL_ERROR


def test_setup_registers_cog(facade):
    bot = SimpleNamespace(add_cog=MagicMock())

    voice_cmds.setup(bot, facade)

    registered = bot.add_cog.call_args.args[0]
    assert isinstance(registered, voice_cmds.VoiceCommandsCog)
    assert registered.facade is facade


@pytest.mark.asyncio
async def test_prune_command_reports_unmonitored_channel(cog, mirror, scenario, client):
    mirror.snapshot(scenario.state)
    ctx = make_ctx(scenario.bot)

    await voice_cmds.VoiceCommandsCog.prune.callback(cog, ctx, SimpleNamespace(id=scenario.quiet.to_int()), None)

    ctx.send_followup.assert_awaited_once_with(voice_cmds.UNMONITORED, ephemeral=True)
    client.fetch_voice_connections.assert_not_awaited()


@pytest.mark.asyncio
async def test_prune_command_reports_non_voice_channel(cog, mirror, scenario):
    mirror.snapshot(scenario.state)
    ctx = make_ctx(scenario.bot)

    await voice_cmds.VoiceCommandsCog.prune.callback(cog, ctx, SimpleNamespace(id=scenario.text.to_int()), None)

    ctx.send_followup.assert_awaited_once_with(voice_cmds.NOT_A_VOICE_CHANNEL, ephemeral=True)


@pytest.mark.asyncio
async def test_interaction_permissions_checked_before_synchronization(cog, scenario):
    ctx = make_ctx(scenario.member)
    ctx.user.guild_permissions = discord.Permissions(connect=True)

    await voice_cmds.VoiceCommandsCog.list_all.callback(cog, ctx)

    assert reply_of(ctx) == voice_cmds.MISSING_PERMISSION


@pytest.mark.asyncio
async def test_interaction_permissions_grant_access(cog, mirror, scenario):
    mirror.snapshot(scenario.state)
    ctx = make_ctx(scenario.member)
    ctx.user.guild_permissions = discord.Permissions(move_members=True)

    await voice_cmds.VoiceCommandsCog.list_monitored.callback(cog, ctx)

    assert reply_of(ctx) == "`• General`\n`• Lounge`"
