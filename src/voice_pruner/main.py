"""
Voice Pruner
============

A Discord bot that disconnects members from voice channels they are no longer
allowed to connect to, and gives moderators slash commands to inspect and
prune the channels it monitors.
"""

import os
import sys
from pathlib import Path

def resolve_base_dir() -> Path:
    """Determine the base directory of the project.
    Resolution order:
    1. VOICE_PRUNER_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("VOICE_PRUNER_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]

BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import signal
from dataclasses import dataclass

import discord
from dotenv import load_dotenv

from voice_pruner.api.platform_client import PycordPlatformClient
from voice_pruner.configuration.app_configuration import AppConfig, app_config
from voice_pruner.datatypes.discord_datatypes import UserID
from voice_pruner.errors import ConfigurationError
from voice_pruner.permissions.monitoring_policy import MonitoringPolicy
from voice_pruner.pruning.prune_engine import PruneEngine
from voice_pruner.pruning.reconciliation import ReconciliationDispatcher
from voice_pruner.pruning.request_facade import RequestFacade
from voice_pruner.state.state_mirror import StateMirror
from voice_pruner.util.logger import get_logger, handle_exception


logger = get_logger("main")

# File name of the token inside a systemd credentials directory.
CREDENTIAL_TOKEN_FILE = "token"


@dataclass(slots=True)
class Runtime:
    """The wired components of one bot session."""

    mirror: StateMirror
    policy: MonitoringPolicy
    client: PycordPlatformClient
    engine: PruneEngine
    dispatcher: ReconciliationDispatcher
    facade: RequestFacade


def load_environment() -> str:
    """Return the Discord bot token.

    A token file in ``$CREDENTIALS_DIRECTORY`` (systemd ``LoadCredential=``)
    takes precedence over ``DISCORD_BOT_TOKEN`` from the environment or
    ``.env``.

    Raises
    ------
    ConfigurationError
        If no token can be found.
    """
    if credentials_dir := os.getenv("CREDENTIALS_DIRECTORY"):
        token_path = Path(credentials_dir) / CREDENTIAL_TOKEN_FILE
        if token_path.is_file():
            token = token_path.read_text(encoding="utf-8").strip()
            if token:
                logger.info("Using bot token from %s", token_path)
                return token

    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        raise ConfigurationError("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents the pruner depends on.

    Returns
    -------
    discord.Intents
        Intents enabling guild, member and voice state events.
    """
    intents = discord.Intents.none()
    intents.guilds = True
    intents.members = True
    intents.voice_states = True
    return intents


def build_runtime(discord_bot_instance: discord.Bot, bot_user_id: UserID, config: AppConfig = app_config) -> Runtime:
    """Wire mirror, policy, engine, dispatcher and facade for a logged-in bot."""
    mirror = StateMirror()
    policy = MonitoringPolicy(bot_user_id, config.exemption_role_name)
    client = PycordPlatformClient(discord_bot_instance)
    engine = PruneEngine(mirror, policy, client, max_concurrent_removals=config.max_concurrent_removals)
    dispatcher = ReconciliationDispatcher(mirror, policy, engine, client, queue_size=config.queue_size)
    facade = RequestFacade(mirror, policy, engine)
    return Runtime(mirror, policy, client, engine, dispatcher, facade)


def load_cogs(discord_bot_instance: discord.Bot, runtime: Runtime) -> None:
    """Register the gateway listener and the slash command cogs.

    Parameters
    ----------
    discord_bot_instance:
        Py-Cord bot object that should receive the cogs.
    runtime:
        Components the cogs forward events and requests to.
    """
    from voice_pruner.bot.cogs import gateway_listener, voice_cmds

    gateway_listener.setup(discord_bot_instance, runtime.dispatcher)
    voice_cmds.setup(discord_bot_instance, runtime.facade)

    logger.info("All cogs loaded successfully.")


def create_bot() -> discord.Bot:
    """Instantiate the Discord bot. Cogs are registered once the bot user is known."""
    debug_guilds = app_config.debug_guild_ids or None
    return discord.Bot(intents=build_intents(), debug_guilds=debug_guilds)


def install_signal_handlers(task: asyncio.Task) -> None:
    """Cancel ``task`` on SIGINT or SIGTERM so the session shuts down cleanly."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except NotImplementedError:
            # Windows event loops have no signal handler support; Ctrl+C still raises KeyboardInterrupt.
            logger.debug("Signal handlers unsupported on this platform")
            return


async def shutdown_runtime(discord_bot_instance: discord.Bot, runtime: Runtime | None = None) -> None:
    """Stop event intake, wait for in-flight prunes, then close the bot.

    Parameters
    ----------
    discord_bot_instance:
        Bot instance to close once pruning has drained.
    runtime:
        Components of the session, if it got far enough to build them.
    """
    if runtime is not None:
        runtime.dispatcher.stop()
        await runtime.dispatcher.drain()

    if not discord_bot_instance.is_closed():
        await discord_bot_instance.close()

    logger.info("Shutdown complete.")


async def run_bot_session(discord_bot_instance: discord.Bot, token: str) -> int:
    """Log in, wire the runtime, and stay connected until cancelled. Returns an exit code."""
    runtime: Runtime | None = None
    exit_code = 0

    logger.info("Attempting to connect to Discord…")
    try:
        await discord_bot_instance.login(token)
        runtime = build_runtime(discord_bot_instance, UserID(discord_bot_instance.user.id))
        load_cogs(discord_bot_instance, runtime)
        runtime.dispatcher.start()
        await discord_bot_instance.connect()
    except asyncio.CancelledError:
        logger.info("Bot session cancelled; proceeding to shutdown")
    except discord.LoginFailure as exc:
        logger.critical("Discord rejected the bot token: %s", exc)
        exit_code = 1
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(discord_bot_instance, runtime)

    return exit_code


async def async_main() -> int:
    """Bootstrap the bot and run it, returning an exit code.

    Returns
    -------
    int
        Process exit code reflecting success or failure of the session.
    """
    try:
        token = load_environment()
    except ConfigurationError as exc:
        logger.critical("%s", exc)
        return 1

    try:
        bot = create_bot()
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        return 1

    if (task := asyncio.current_task()) is not None:
        install_signal_handlers(task)

    return await run_bot_session(bot, token)


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code.

    Returns
    -------
    int
        Exit code propagated to the operating system.
    """
    sys.excepthook = handle_exception
    logger.info("Starting Voice Pruner…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        if code is None:
            return 1
        try:
            return int(code)
        except (ValueError, TypeError):
            logger.warning("SystemExit.code is not an int (%r); defaulting to 1", code)
            return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
