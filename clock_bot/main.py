from __future__ import annotations

import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .clock import TimeClock
from .commands import register_commands
from .config import Config, load_config
from .keepalive import KeepAlive
from .mirror import GitHubContentsClient, RemoteMirror
from .presence import PresenceMonitor, in_tracked_channel
from .store import RecordStore
from .timeutil import utc_now


class ClockBot(commands.Bot):
    def __init__(self, config: Config, store: RecordStore) -> None:
        intents = discord.Intents.none()
        intents.guilds = True
        intents.voice_states = True
        intents.members = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.store = store
        self.logger = logging.getLogger("clock-bot")

        self.mirror: RemoteMirror | None = None
        if config.mirror is not None:
            client = GitHubContentsClient(config.mirror.token, config.mirror.repo)
            self.mirror = RemoteMirror(
                client,
                store.dumps,
                path=config.mirror.file_path,
                branch=config.mirror.branch,
                debounce_seconds=config.mirror.debounce_seconds,
            )
            store.attach_mirror(self.mirror)

        self.clock = TimeClock(store, tz=config.timezone)
        self.presence = PresenceMonitor(self.clock, self.is_user_present, self.notify_user)

        self.keepalive: KeepAlive | None = None
        if config.keepalive_port is not None:
            self.keepalive = KeepAlive(config.keepalive_port, config.ping_url)

        # runtime_ready prevents event handlers from running before guild/channel checks pass.
        self.runtime_ready = False
        self.guild_obj: discord.Guild | None = None

    async def setup_hook(self) -> None:
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        if self.keepalive is not None:
            await self.keepalive.start()

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.runtime_ready:
            return

        if await self._validate_runtime_resources():
            self.runtime_ready = True
            self.logger.info("Runtime checks passed")
            self._rearm_absent_sessions()

    async def _validate_runtime_resources(self) -> bool:
        # Fail fast if the guild or tracked channel is misconfigured.
        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()
            return False

        tracked_id = self.config.tracked_voice_channel_id
        if tracked_id is not None and not isinstance(guild.get_channel(tracked_id), discord.VoiceChannel):
            self.logger.error("Tracked channel %s is missing or not a voice channel", tracked_id)
            await self.close()
            return False

        self.guild_obj = guild
        return True

    def _rearm_absent_sessions(self) -> None:
        # Members may have left voice while the bot was offline.
        now = utc_now()
        armed = 0
        for user_id in self.clock.clocked_in_user_ids():
            if not self.is_user_present(user_id) and self.presence.on_presence_lost(user_id, now):
                armed += 1
        self.logger.info("Armed presence guards for %d absent clocked-in users", armed)

    def is_member_present(self, member) -> bool:
        voice = getattr(member, "voice", None)
        channel = voice.channel if voice else None
        return in_tracked_channel(channel.id if channel else None, self.config.tracked_voice_channel_id)

    def is_user_present(self, user_id: str) -> bool:
        if self.guild_obj is None:
            return False
        return self.is_member_present(self.guild_obj.get_member(int(user_id)))

    async def notify_user(self, user_id: str, message: str) -> None:
        user = self.get_user(int(user_id)) or await self.fetch_user(int(user_id))
        await user.send(message)

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if not self.runtime_ready:
            return

        if member.bot:
            return

        if member.guild.id != self.config.guild_id:
            return

        self.presence.handle_voice_move(
            str(member.id),
            before.channel.id if before.channel else None,
            after.channel.id if after.channel else None,
            self.config.tracked_voice_channel_id,
            utc_now(),
        )

    async def close(self) -> None:
        self.presence.cancel_all()
        if self.mirror is not None:
            await self.mirror.aclose()
        if self.keepalive is not None:
            await self.keepalive.stop()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    store = RecordStore(config.timesheet_path, config.history_path)
    store.load()

    bot = ClockBot(config=config, store=store)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
