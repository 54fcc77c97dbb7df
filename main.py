import logging
import os
import discord
from discord.ext import commands

from config import DB_PATH, DISCORD_TOKEN, LOG_LEVEL
from utils import PREFIX

intents = discord.Intents.default()
intents.members = True
intents.message_content = True

bot = commands.Bot(command_prefix=PREFIX, intents=intents, help_command=None)


@bot.command()
async def help(ctx: commands.Context, *, command_name: str = None):
    """Show all available commands, grouped by role."""
    p = ctx.prefix

    if command_name:
        cmd = bot.get_command(command_name)
        if cmd is None:
            await ctx.send(f"Unknown command `{p}{command_name}`.")
            return
        embed = discord.Embed(
            title=f"{p}{cmd.qualified_name}",
            description=(cmd.help or "No description.").replace("{prefix}", p),
            color=discord.Color.blurple(),
        )
        if cmd.aliases:
            embed.add_field(
                name="Aliases",
                value=", ".join(f"`{p}{a}`" for a in cmd.aliases),
                inline=False,
            )
        await ctx.send(embed=embed)
        return

    # ── Owner Commands (Server Owner only) ────────────────────────
    owner_embed = discord.Embed(
        title="Owner Commands",
        description="Only the **server owner** can use these.",
        color=discord.Color.red(),
    )
    owner_embed.add_field(
        name="Love Streak Maintenance",
        value=(
            f"`{p}streakreset daily` — Clear today's check-ins now\n"
            f"`{p}streakreset monthly` — Refill everyone's recoveries now"
        ),
        inline=False,
    )

    # ── User Commands (Everyone) ──────────────────────────────────
    user_embed = discord.Embed(
        title="User Commands",
        description="Available to **everyone**.",
        color=discord.Color.green(),
    )
    user_embed.add_field(
        name="Love Streak",
        value=(
            f"`{p}love` — Send your daily love to your partner\n"
            f"  Both partners must do it every day (resets at midnight UTC+7)\n"
            f"  Missed a day? Up to 3 recoveries a month keep the streak alive\n"
            f"`{p}streak [@user]` — View streak stats"
        ),
        inline=False,
    )
    user_embed.add_field(
        name="Other",
        value=f"`{p}ping` — Pong!\n`{p}help [command]` — Show this menu or details for a command",
        inline=False,
    )

    await ctx.send(embeds=[owner_embed, user_embed])


@bot.event
async def setup_hook():
    await bot.load_extension("cogs.love")


@bot.event
async def on_ready():
    logging.getLogger(__name__).info("Logged in as %s", bot.user)


@bot.command()
async def ping(ctx):
    await ctx.send("Pong!")


if __name__ == "__main__":
    os.makedirs(os.path.dirname(DB_PATH) or ".", exist_ok=True)
    bot.run(DISCORD_TOKEN, log_level=logging.getLevelName(LOG_LEVEL))
