import asyncio
import datetime
import logging
import discord
import aiosqlite
from discord.ext import commands, tasks

from clock import CIVIL_TZ, CivilClock
from config import DB_PATH
from couples import CoupleDirectory
from maintenance import StreakMaintenance
from streak_engine import CheckInStatus, NotInRelationship, StreakEngine
from streak_format import StreakBox, format_streak_box, format_streak_summary
from streak_store import StreakStore, TransientStoreFailure
from utils import is_guild_owner, display_name

log = logging.getLogger(__name__)

EMOJI_PENDING = "⏳"
EMOJI_COMPLETED = "✅"
EMOJI_FAILED = "\U0001f494"

LAST_CHANCE_MESSAGE = (
    "Your streak was saved, but that was your **last recovery** this month. "
    "Miss another day and the streak is gone!"
)
NOT_MARRIED_HINT = "You need to be married to keep a love streak. Find your partner first!"
SWEEP_RETRY_MINUTES = 5


def streak_box_embed(box: StreakBox, names: dict[int, str]) -> discord.Embed:
    lines = [
        f"{names.get(user_id, f'<@{user_id}>')}: {EMOJI_COMPLETED if done else EMOJI_PENDING}"
        for user_id, done in box.participants
    ]
    embed = discord.Embed(
        title="\U0001f495 Streak Box",
        description="\n".join(lines),
        color=discord.Color.green() if box.all_completed else discord.Color.yellow(),
    )
    embed.set_footer(text=f"Current streak: {box.current_streak} days")
    return embed


class Love(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.db: aiosqlite.Connection = None
        self.clock = CivilClock()
        self.engine: StreakEngine = None
        self.maintenance: StreakMaintenance = None

    async def cog_load(self):
        self.db = await aiosqlite.connect(DB_PATH)
        await self.db.execute("PRAGMA journal_mode=WAL")
        await self.db.execute("PRAGMA busy_timeout=5000")
        couples = CoupleDirectory(self.db)
        store = StreakStore(self.db, self.clock)
        await couples.create_table()
        await store.create_table()
        self.engine = StreakEngine(store, couples, self.clock)
        self.maintenance = StreakMaintenance(store)
        self.civil_midnight_loop.start()

    async def cog_unload(self):
        self.civil_midnight_loop.cancel()
        self.sweep_retry_loop.cancel()
        if self.db:
            await self.db.close()

    async def _names(self, guild: discord.Guild, box: StreakBox) -> dict[int, str]:
        return {user_id: await display_name(guild, user_id) for user_id, _ in box.participants}

    # --- Daily check-in ---

    @commands.command()
    @commands.guild_only()
    async def love(self, ctx: commands.Context):
        """Send your daily love. Both partners must do it every day to keep the streak."""
        async with ctx.typing():
            try:
                result = await self.engine.check_in(ctx.author.id, ctx.guild.id)
            except NotInRelationship:
                await ctx.send(NOT_MARRIED_HINT)
                return
            except TransientStoreFailure:
                await ctx.send("The love archive is busy right now. Please try again in a moment.")
                return

            box = format_streak_box(result.record, result.couple)
            embed = streak_box_embed(box, await self._names(ctx.guild, box))

        content = result.message
        if result.status is CheckInStatus.RECOVERED and result.is_last_recovery:
            content = LAST_CHANCE_MESSAGE
        elif result.status is CheckInStatus.LOST:
            content = f"{EMOJI_FAILED} {result.message}"
        await ctx.send(content, embed=embed)

    # --- Streak summary ---

    @commands.command()
    @commands.guild_only()
    async def streak(self, ctx: commands.Context, member: discord.Member = None):
        """Show your (or another member's) love streak stats."""
        member = member or ctx.author
        record = await self.engine.get_streak_by_participant(member.id, ctx.guild.id)
        if record is None:
            await ctx.send(f"**{member.display_name}** has no love streak yet.")
            return

        summary = format_streak_summary(record, self.clock.snapshot())
        embed = discord.Embed(
            title=f"{member.display_name}'s Love Streak",
            color=discord.Color.pink(),
        )
        embed.add_field(name="Current", value=f"{summary['current_streak']} days")
        embed.add_field(name="Best", value=f"{summary['best_streak']} days")
        embed.add_field(name="Total Days", value=str(summary["total_days"]))
        embed.add_field(name="Recoveries Left", value=f"{summary['recoveries_left']} this month")
        if summary["last_completed_date"]:
            embed.set_footer(text=f"Last completed together: {summary['last_completed_date']}")
        await ctx.send(embed=embed)

    # --- Manual maintenance (Owner only) ---

    @commands.command()
    @commands.guild_only()
    @is_guild_owner()
    async def streakreset(self, ctx: commands.Context, which: str):
        """Run a streak sweep now. Usage: {prefix}streakreset <daily|monthly>. Server owner only."""
        which = which.lower()
        if which == "daily":
            count = await self.maintenance.reset_daily_completions()
            await ctx.send(f"Cleared today's check-ins on **{count}** streak(s).")
        elif which == "monthly":
            count = await self.maintenance.reset_monthly_recoveries()
            await ctx.send(f"Refilled recoveries on **{count}** streak(s).")
        else:
            await ctx.send("Choose `daily` or `monthly`.")

    # --- Civil midnight sweeps ---

    @tasks.loop(time=datetime.time(hour=0, minute=0, tzinfo=CIVIL_TZ))
    async def civil_midnight_loop(self):
        try:
            await self.maintenance.reset_daily_completions()
            if self.clock.local_now().day == 1:
                await self.maintenance.reset_monthly_recoveries()
        except TransientStoreFailure:
            log.exception("Civil midnight sweep failed; retrying every %d minutes", SWEEP_RETRY_MINUTES)
            self._schedule_retry()

    @civil_midnight_loop.before_loop
    async def before_civil_midnight(self):
        await self.bot.wait_until_ready()
        # Sweeps missed while the bot was offline
        if not await self._catch_up():
            self._schedule_retry()

    @tasks.loop(minutes=SWEEP_RETRY_MINUTES)
    async def sweep_retry_loop(self):
        if await self._catch_up():
            self.sweep_retry_loop.stop()

    @sweep_retry_loop.before_loop
    async def before_sweep_retry(self):
        await asyncio.sleep(SWEEP_RETRY_MINUTES * 60)

    def _schedule_retry(self):
        if not self.sweep_retry_loop.is_running():
            self.sweep_retry_loop.start()

    async def _catch_up(self) -> bool:
        try:
            await self.maintenance.catch_up()
        except TransientStoreFailure:
            log.exception("Streak catch-up failed")
            return False
        return True

    # --- Error Handler ---

    @commands.Cog.listener()
    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        if ctx.command is None or ctx.command.cog_name != self.__cog_name__:
            return

        if isinstance(error, commands.NoPrivateMessage):
            await ctx.send("This command only works inside a server.")
        elif isinstance(error, commands.CheckFailure):
            await ctx.send("Only the server owner can use this command.")
        elif isinstance(error, commands.MemberNotFound):
            await ctx.send("Could not find that member.")
        elif isinstance(error, commands.MissingRequiredArgument):
            await ctx.send(f"Missing argument: `{error.param.name}`.")
        elif isinstance(error, commands.BadArgument):
            await ctx.send(f"Invalid argument. Check `{ctx.prefix}help {ctx.command}` for usage.")
        else:
            raise error


async def setup(bot: commands.Bot):
    await bot.add_cog(Love(bot))
