import discord
from discord.ext import commands

from config import COMMAND_PREFIX

PREFIX = COMMAND_PREFIX


def is_guild_owner():
    """Check that the command invoker is the server owner."""
    async def predicate(ctx: commands.Context):
        return ctx.author == ctx.guild.owner
    return commands.check(predicate)


async def display_name(guild: discord.Guild, user_id: int) -> str:
    """Member display name, falling back to the raw mention if they left the server."""
    member = guild.get_member(user_id)
    if member is None:
        try:
            member = await guild.fetch_member(user_id)
        except discord.HTTPException:
            return f"<@{user_id}>"
    return member.display_name
