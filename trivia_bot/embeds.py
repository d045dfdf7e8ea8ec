"""
Discord embed builders for questions, the countdown and quiz results.
"""
from typing import List, Sequence

import discord

from .category_catalog import CategoryCatalog
from .config_manager import ConfigManager
from .models import QuizResult
from .quiz_session import QuizSession
from .text_utils import truncate


OPTION_LETTERS = "ABCDEFGHIJ"

# Discord limits
MAX_EMBEDS_PER_MESSAGE = 10
MAX_MESSAGE_EMBED_CHARS = 6000
MAX_FIELD_NAME = 256
MAX_FIELD_VALUE = 1024
MAX_DESCRIPTION = 4096
REVIEW_FIELDS_PER_EMBED = 8
REVIEW_ANSWER_LIMIT = 200

COLOR_GREEN = 0x00ff00
COLOR_ORANGE = 0xff6600
COLOR_RED = 0xff0000
COLOR_MAUVE = 0x996680
COLOR_INFO = 0x6699ff

TIMEOUT_MESSAGE = "Time's up! Got to be quicker than that!"


def format_time(seconds: int) -> str:
    """Format seconds as H:MM:SS from an hour upwards, MM:SS below."""
    seconds = max(seconds, 0)
    if seconds >= 3600:
        hours, rest = divmod(seconds, 3600)
        minutes, secs = divmod(rest, 60)
        return f"{hours}:{minutes:02d}:{secs:02d}"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


def option_letter(index: int) -> str:
    return OPTION_LETTERS[index]


def chunk_embeds(
    embeds: Sequence[discord.Embed],
    size: int = MAX_EMBEDS_PER_MESSAGE,
    max_chars: int = MAX_MESSAGE_EMBED_CHARS
) -> List[List[discord.Embed]]:
    """Split embeds into groups that fit in one message, by count and by total text length."""
    groups: List[List[discord.Embed]] = []
    current: List[discord.Embed] = []
    current_chars = 0
    for embed in embeds:
        embed_chars = len(embed)
        if current and (len(current) >= size or current_chars + embed_chars > max_chars):
            groups.append(current)
            current = []
            current_chars = 0
        current.append(embed)
        current_chars += embed_chars
    if current:
        groups.append(current)
    return groups


def build_question_embed(session: QuizSession, index: int) -> discord.Embed:
    """
    Build the embed for one question.

    Args:
        session: In-progress session holding the decoded questions
        index: 0-based question index

    Returns:
        Embed with the category, question text and lettered choices
    """
    question = session.questions[index]
    selected = session.selected_answer(index)

    lines = []
    for choice_index, choice in enumerate(session.answer_order(index)):
        marker = " ✅" if choice == selected else ""
        lines.append(f"**{option_letter(choice_index)}.** {choice}{marker}")

    embed = discord.Embed(
        title=f"Question {index + 1} of {session.total_questions}",
        description=truncate(question.text, MAX_DESCRIPTION),
        color=COLOR_MAUVE
    )
    embed.add_field(
        name="Choices",
        value=truncate("\n".join(lines), MAX_FIELD_VALUE) or "-",
        inline=False
    )
    embed.set_author(name=truncate(question.category, MAX_FIELD_NAME))
    return embed


def build_question_embeds(session: QuizSession) -> List[discord.Embed]:
    return [build_question_embed(session, index) for index in range(session.total_questions)]


def build_timer_embed(session: QuizSession) -> discord.Embed:
    """
    Build the countdown embed, changing color as time runs out.

    Args:
        session: Session whose countdown to show

    Returns:
        Embed showing the time remaining and answer progress
    """
    remaining = session.remaining_seconds
    if remaining > 10:
        color = COLOR_GREEN
        timer_emoji = "⏱️"
        footer_text = "Use /answer to pick answers and /submit when done"
    elif remaining > 5:
        color = COLOR_ORANGE
        timer_emoji = "⚠️"
        footer_text = "⚡ Time running out!"
    else:
        color = COLOR_RED
        timer_emoji = "🚨"
        footer_text = "🚨 Final seconds!"

    embed = discord.Embed(
        title=f"{timer_emoji} Time Remaining: {format_time(remaining)}",
        color=color
    )
    embed.add_field(
        name="📝 Answered",
        value=f"{session.answered_count}/{session.total_questions}",
        inline=True
    )
    embed.set_footer(text=footer_text)
    return embed


def should_show_timeout_message(result: QuizResult) -> bool:
    """The timeout notice only shows when time ran out with nothing answered."""
    return result.timed_out and result.answered_count == 0


def build_result_embeds(result: QuizResult) -> List[discord.Embed]:
    """
    Build the summary embed followed by the per-question review.

    Args:
        result: Completed quiz result

    Returns:
        Summary embed, then review embeds in question order
    """
    description = f"You got {result.score} out of {result.total} correct."
    if should_show_timeout_message(result):
        description = f"**{TIMEOUT_MESSAGE}**\n\n{description}"

    summary = discord.Embed(
        title="🎉 Quiz Completed!",
        description=description,
        color=COLOR_RED if result.timed_out else COLOR_GREEN
    )
    summary.add_field(name="Score", value=f"{result.percentage}%", inline=True)
    if result.timed_out:
        summary.set_footer(text="⏰ The timer ran out")

    embeds = [summary]
    review = list(result.review)
    for start in range(0, len(review), REVIEW_FIELDS_PER_EMBED):
        embed = discord.Embed(title="Review" if start == 0 else None, color=COLOR_MAUVE)
        for offset, entry in enumerate(review[start:start + REVIEW_FIELDS_PER_EMBED]):
            number = start + offset + 1
            mark = "✅" if entry.is_correct else "❌"
            embed.add_field(
                name=truncate(f"Q{number}: {entry.question}", MAX_FIELD_NAME),
                value=(
                    f"{mark} Your answer: {truncate(entry.user_answer, REVIEW_ANSWER_LIMIT)}\n"
                    f"Correct answer: {truncate(entry.correct_answer, REVIEW_ANSWER_LIMIT)}"
                ),
                inline=False
            )
        embeds.append(embed)
    return embeds


def build_started_embed(session: QuizSession) -> discord.Embed:
    """Announcement sent once the questions have loaded."""
    embed = discord.Embed(
        title="🎯 Quiz Started!",
        description=ConfigManager.describe(session.configuration),
        color=COLOR_GREEN
    )
    embed.add_field(
        name="🎮 Controls",
        value="`/answer <question> <letter>` to answer, `/submit` to finish, `/stop` to quit",
        inline=False
    )
    if session.total_questions == 0:
        embed.add_field(name="⚠️ No Questions", value="The trivia service returned no questions.", inline=False)
    return embed


def build_categories_embed(catalog: CategoryCatalog) -> discord.Embed:
    """
    Build the category list, or the loading / error state in its place.

    Args:
        catalog: Category catalog to show

    Returns:
        Embed describing the catalog
    """
    if catalog.is_loading:
        return discord.Embed(title="📚 Categories", description="Loading categories...", color=COLOR_INFO)

    if catalog.error and not catalog.categories:
        embed = build_error_embed(catalog.error, "❌ Categories Unavailable")
        embed.set_footer(text="Use /reload_categories to try again")
        return embed

    names = catalog.category_names()
    embed = discord.Embed(
        title="📚 Categories",
        description=truncate("\n".join(f"• {name}" for name in names), MAX_DESCRIPTION),
        color=COLOR_INFO
    )
    if catalog.error:
        embed.set_footer(text=f"Last reload failed: {catalog.error}")
    return embed


def build_error_embed(message: str, title: str = "❌ Error") -> discord.Embed:
    return discord.Embed(title=title, description=truncate(message, MAX_DESCRIPTION), color=COLOR_RED)
