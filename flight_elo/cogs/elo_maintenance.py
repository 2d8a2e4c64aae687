"""
Elo Maintenance Cog - Hourly Season Replay

Runs the replay cycle once at startup and then every REPLAY_INTERVAL_HOURS,
and gives the owner a manual trigger plus rating overrides and per-pilot logs.
"""

import json

import discord
from discord.ext import commands, tasks

from flight_elo.config import Config
from flight_elo.services.configuration import ELO_CATEGORY
from flight_elo.services.replay_orchestrator import ReplayOrchestrator
from flight_elo.utils.logger import setup_logger

logger = setup_logger(__name__)


class EloMaintenanceCog(commands.Cog):
    """Background rating recomputation"""

    def __init__(self, bot):
        self.bot = bot
        self.orchestrator: ReplayOrchestrator = bot.replay_orchestrator
        self.hourly_replay.change_interval(hours=Config.REPLAY_INTERVAL_HOURS)

    async def cog_load(self):
        self.hourly_replay.start()
        logger.info("EloMaintenanceCog: Hourly replay started")

    async def cog_unload(self):
        self.hourly_replay.cancel()
        logger.info("EloMaintenanceCog: Hourly replay stopped")

    def cog_check(self, ctx):
        """Every command here is owner only"""
        return ctx.author.id == Config.OWNER_DISCORD_ID

    @tasks.loop(hours=1)
    async def hourly_replay(self):
        """First iteration runs immediately, so ratings are fresh right after a restart"""
        try:
            result = await self.orchestrator.run_cycle()
            if not result.succeeded:
                logger.warning(f"Hourly replay did not complete: {result.error or f'exit code {result.exit_code}'}")
        except Exception as e:
            logger.error(f"Error in hourly replay task: {e}", exc_info=True)

    @hourly_replay.before_loop
    async def before_hourly_replay(self):
        await self.bot.wait_until_ready()

    @commands.command(name="replay_now")
    async def replay_now(self, ctx, season_id: int = None):
        """Run a replay cycle immediately, for the active season unless one is given"""
        await ctx.send("⏳ Replaying the active season..." if season_id is None else f"⏳ Replaying season {season_id}...")
        result = await self.orchestrator.run_cycle(season_id)
        if result.succeeded:
            updated = (result.summary or {}).get('users_updated', 0)
            await ctx.send(
                f"✅ Replay finished in {result.duration_ms / 1000:.1f}s: "
                f"{result.multiplier_count} multipliers, {updated} users updated."
            )
        else:
            await ctx.send(f"❌ Replay failed, previous multipliers stay in effect. ({result.error})")

    @commands.command(name="elo_set")
    async def elo_set(self, ctx, key: str, value: str):
        """Override a rating setting, e.g. `elo_set max_steal_points 120`"""
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            raise commands.BadArgument(f"`{value}` is not a number or JSON value")

        full_key = key if key.startswith(f"{ELO_CATEGORY}.") else f"{ELO_CATEGORY}.{key}"
        try:
            await self.bot.config_service.set(full_key, parsed, ctx.author.id)
        except ValueError as e:
            raise commands.BadArgument(str(e))

        logger.info(f"{ctx.author} set {full_key} = {parsed!r}")
        await ctx.send(f"✅ `{full_key}` set to `{parsed}`. Live updates use it now, the next replay picks it up.")

    @commands.command(name="user_log")
    async def user_log(self, ctx, user_id: str, season_id: int = None):
        """Send a pilot's rating history as a text file, for the active season unless one is given"""
        if season_id is None:
            season = await self.bot.db.get_active_season()
        else:
            season = await self.bot.db.get_season(season_id)
            if season is None:
                raise commands.BadArgument(f"Season {season_id} does not exist")
        path = await self.bot.elo_service.write_user_log(user_id, season)
        await ctx.send(file=discord.File(path))

    @commands.command(name="end_season")
    async def end_season(self, ctx):
        """End the active season and archive every pilot's final stats"""
        season = await self.bot.db.get_active_season()
        await self.bot.db.end_season(season.id)
        logger.info(f"{ctx.author} ended season {season.id}")
        await ctx.send(f"⏳ Season {season.id} ended, archiving final stats...")

        result = await self.orchestrator.run_cycle(season.id)
        if result.succeeded:
            archived = (result.summary or {}).get('users_updated', 0)
            await ctx.send(f"✅ Archived season {season.id} stats for {archived} pilots.")
        else:
            await ctx.send(f"❌ Archiving season {season.id} failed, retry with `replay_now {season.id}`. ({result.error})")


async def setup(bot):
    await bot.add_cog(EloMaintenanceCog(bot))
