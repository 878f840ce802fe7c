from voice_pruner.datatypes.discord_datatypes import ChannelID, UserID
from voice_pruner.datatypes.permission_datatypes import PermissionOverwrite, Permissions
from voice_pruner.permissions.monitoring_policy import MonitoringPolicy


def test_voice_channel_with_move_members_is_monitored(scenario, policy):
    view = scenario.view()

    assert policy.is_monitored(view, scenario.general) is True
    assert policy.is_monitored(view, scenario.lounge) is True


def test_channel_without_move_members_is_not_monitored(scenario, policy):
    view = scenario.view()

    assert policy.is_monitored(view, scenario.quiet) is False


def test_non_voice_and_unknown_channels_are_not_monitored(scenario, policy):
    view = scenario.view()

    assert policy.is_monitored(view, scenario.text) is False
    assert policy.is_monitored(view, scenario.category) is False
    assert policy.is_monitored(view, ChannelID(12345)) is False


def test_category_overwrite_can_unmonitor_children(scenario, policy):
    scenario.set_overwrites(scenario.category, PermissionOverwrite.for_role(scenario.pruner_role, deny=Permissions.MOVE_MEMBERS))
    view = scenario.view()

    assert policy.is_monitored(view, scenario.lounge) is False
    assert policy.monitored_channels(view) == [scenario.general]


def test_monitored_channels_in_display_order(scenario, policy):
    view = scenario.view()

    assert policy.monitored_channels(view) == [scenario.general, scenario.lounge]


def test_nothing_monitored_when_bot_missing(scenario):
    policy = MonitoringPolicy(UserID(424242))
    view = scenario.view()

    assert policy.monitored_channels(view) == []
    assert policy.is_exempt(view) is False


def test_guild_exempt_when_bot_holds_exemption_role(scenario, policy):
    exemption = scenario.add_role(50, "no-auto-prune")
    scenario.add_member(scenario.bot.to_int(), scenario.pruner_role, exemption)
    view = scenario.view()

    assert policy.is_exempt(view) is True


def test_exemption_role_held_by_someone_else_does_not_count(scenario, policy):
    exemption = scenario.add_role(50, "no-auto-prune")
    scenario.add_member(scenario.member.to_int(), exemption)
    view = scenario.view()

    assert policy.is_exempt(view) is False


def test_custom_exemption_role_name(scenario):
    custom = scenario.add_role(51, "leave-voice-alone")
    scenario.add_member(scenario.bot.to_int(), scenario.pruner_role, custom)
    view = scenario.view()

    assert MonitoringPolicy(scenario.bot, "leave-voice-alone").is_exempt(view) is True
    assert MonitoringPolicy(scenario.bot).is_exempt(view) is False
