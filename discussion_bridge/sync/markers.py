"""Origin markers that stop relayed content from being relayed back.

Comments the bridge posts on GitHub carry ``VIA_DISCORD_MARKER`` (an HTML
comment, invisible once rendered). Messages the bridge posts on Discord carry
``VIA_GITHUB_MARKER``. Each side drops incoming content bearing the other
side's marker before any id-based dedup runs.
"""

VIA_DISCORD_MARKER = "<!-- [via-discord] -->"
VIA_GITHUB_MARKER = "[github-comment]"

# Also matches bodies whose HTML comment was stripped upstream.
_VIA_DISCORD_TOKEN = "[via-discord]"

DISCORD_MESSAGE_LIMIT = 2000


def tag_for_github(body: str) -> str:
    """Append the Discord-origin marker to a GitHub comment body."""
    return f"{body}\n\n{VIA_DISCORD_MARKER}"


def is_from_discord(body: str | None) -> bool:
    """True if a GitHub comment was posted by the bridge on behalf of Discord."""
    return bool(body) and _VIA_DISCORD_TOKEN in body


def tag_for_discord(content: str) -> str:
    """Append the GitHub-origin marker to a Discord message."""
    return f"{content} {VIA_GITHUB_MARKER}"


def is_from_github(content: str | None) -> bool:
    """True if a Discord message was posted by the bridge on behalf of GitHub."""
    return bool(content) and VIA_GITHUB_MARKER in content


def format_comment_for_github(author_name: str, content: str) -> str:
    """Body for a GitHub comment relaying a Discord message."""
    return tag_for_github(f"**{author_name}** (Discord):\n\n{content}")


def format_comment_for_discord(login: str, body: str, html_url: str) -> str:
    """Discord message relaying a GitHub comment, clipped to Discord's length limit."""
    head = f"**{login}**:\n\n"
    tail = tag_for_discord(f"\n\n<{html_url}>")
    room = DISCORD_MESSAGE_LIMIT - len(head) - len(tail)
    text = body.strip()
    if len(text) > room:
        text = text[: max(room - 1, 0)] + "…"
    return f"{head}{text}{tail}"
