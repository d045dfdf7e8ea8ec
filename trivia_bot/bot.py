import discord
from discord import app_commands
from discord.ext import commands
import logging
import os
from typing import Dict, List, Optional

from .category_catalog import CategoryCatalog
from .config_manager import ConfigManager
from .embeds import (
    build_categories_embed,
    build_error_embed,
    build_question_embeds,
    build_result_embeds,
    build_started_embed,
    build_timer_embed,
    chunk_embeds,
    format_time,
)
from .models import TIMER_DURATIONS, Difficulty, QuestionType, QuizResult
from .quiz_controller import QuizController
from .quiz_session import QuizSession, SessionState
from .trivia_api import TriviaApiClient

logger = logging.getLogger(__name__)

# Countdown message edits happen on these ticks only, to stay under Discord rate limits
TIMER_EDIT_INTERVAL = 10
TIMER_EDIT_FINAL_SECONDS = 5
MAX_AUTOCOMPLETE_CHOICES = 25


class TriviaBot(commands.Bot):
    """Discord bot for timed trivia quizzes"""

    def __init__(self, config=None):
        # Minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        # Core components, created in setup_hook
        self.config_manager: Optional[ConfigManager] = None
        self.api_client: Optional[TriviaApiClient] = None
        self.category_catalog: Optional[CategoryCatalog] = None
        self.quiz_controller: Optional[QuizController] = None

        # Channel ID -> where the quiz is shown
        self._quiz_channels: Dict[int, discord.abc.Messageable] = {}
        self._timer_messages: Dict[int, discord.Message] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        logger.info("Setting up bot components...")

        self.config_manager = ConfigManager()
        self.config_manager.apply_config(self.app_config)

        self.api_client = TriviaApiClient(
            base_url=self.config_manager.api_base_url,
            timeout=self.config_manager.request_timeout
        )
        self.category_catalog = CategoryCatalog(self.api_client)
        self.quiz_controller = QuizController(
            self.api_client,
            self.config_manager,
            completion_callback=self.on_quiz_completed,
            tick_callback=self.on_quiz_tick
        )

        await self.load_categories()
        await self.setup_commands()

        logger.info("Bot setup completed successfully")

    async def close(self):
        """Stop running quizzes and release the HTTP client before disconnecting"""
        if self.quiz_controller:
            await self.quiz_controller.shutdown()
        if self.api_client:
            await self.api_client.aclose()
        await super().close()

    async def load_categories(self):
        """Fetch the category list once; failures are shown by /categories"""
        loaded = await self.category_catalog.load()
        if loaded:
            logger.info(f"Category catalog ready with {len(self.category_catalog.categories)} entries")
        else:
            logger.warning(f"Category catalog failed to load: {self.category_catalog.error}")

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="categories", description="List the available trivia categories")
        async def categories_command(interaction: discord.Interaction):
            await self.handle_categories(interaction)

        @self.tree.command(name="reload_categories", description="Fetch the category list again")
        async def reload_categories_command(interaction: discord.Interaction):
            await self.handle_reload_categories(interaction)

        @self.tree.command(name="trivia", description="Start a timed trivia quiz")
        @app_commands.describe(
            questions="Number of questions (1-50, default 10)",
            category="Question category",
            difficulty="Question difficulty",
            question_type="Multiple choice, true/false or both",
            timer="Time allowed for the whole quiz"
        )
        @app_commands.choices(
            difficulty=[app_commands.Choice(name=d.label, value=d.label) for d in Difficulty],
            question_type=[app_commands.Choice(name=t.label, value=t.label) for t in QuestionType],
            timer=[app_commands.Choice(name=label, value=seconds) for label, seconds in TIMER_DURATIONS.items()]
        )
        async def trivia_command(
            interaction: discord.Interaction,
            questions: Optional[str] = None,
            category: Optional[str] = None,
            difficulty: Optional[app_commands.Choice[str]] = None,
            question_type: Optional[app_commands.Choice[str]] = None,
            timer: Optional[app_commands.Choice[int]] = None
        ):
            await self.handle_trivia(
                interaction,
                questions,
                category,
                difficulty.value if difficulty else None,
                question_type.value if question_type else None,
                timer.value if timer else None
            )

        @trivia_command.autocomplete("category")
        async def category_autocomplete(interaction: discord.Interaction, current: str):
            return [app_commands.Choice(name=name, value=name) for name in self.category_suggestions(current)]

        @self.tree.command(name="answer", description="Answer a question by letter or text")
        @app_commands.describe(question="Question number", choice="Option letter (A-D) or the answer text")
        async def answer_command(interaction: discord.Interaction, question: int, choice: str):
            await self.handle_answer(interaction, question, choice)

        @self.tree.command(name="submit", description="Submit your answers and see the score")
        async def submit_command(interaction: discord.Interaction):
            await self.handle_submit(interaction)

        @self.tree.command(name="retry", description="Retry loading questions after an error")
        async def retry_command(interaction: discord.Interaction):
            await self.handle_retry(interaction)

        @self.tree.command(name="stop", description="Stop the current quiz without scoring")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show time remaining and answer progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    def category_suggestions(self, current: str) -> List[str]:
        """Category names containing the typed text, for autocomplete"""
        wanted = current.strip().lower()
        names = [name for name in self.category_catalog.category_names() if wanted in name.lower()]
        return names[:MAX_AUTOCOMPLETE_CHOICES]

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        embed = discord.Embed(
            title="🧠 Trivia Bot Commands",
            description="Configure a round, answer against the clock, then see your score.",
            color=0x6699ff
        )
        embed.add_field(
            name="🎯 Playing",
            value=(
                "`/trivia` - Start a quiz (questions, category, difficulty, type, timer)\n"
                "`/answer <question> <choice>` - Pick an answer by letter or text\n"
                "`/submit` - Finish and see your score\n"
                "`/status` - Time remaining and progress\n"
                "`/stop` - Quit without scoring\n"
                "`/retry` - Retry loading questions after an error"
            ),
            inline=False
        )
        embed.add_field(
            name="📚 Categories",
            value="`/categories` - List categories\n`/reload_categories` - Fetch them again",
            inline=False
        )
        embed.add_field(
            name="⚙️ Defaults",
            value=self.config_manager.get_settings_summary(),
            inline=False
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_categories(self, interaction: discord.Interaction):
        """Handle /categories command"""
        await interaction.response.send_message(embed=build_categories_embed(self.category_catalog), ephemeral=True)

    async def handle_reload_categories(self, interaction: discord.Interaction):
        """Handle /reload_categories command"""
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self.load_categories()
        await interaction.followup.send(embed=build_categories_embed(self.category_catalog), ephemeral=True)

    async def handle_trivia(
        self,
        interaction: discord.Interaction,
        questions: Optional[str] = None,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        question_type: Optional[str] = None,
        timer: Optional[int] = None
    ):
        """Handle /trivia command"""
        channel_id = interaction.channel_id

        built = self.config_manager.build_configuration(
            question_count=questions,
            category=category,
            difficulty=difficulty,
            question_type=question_type,
            timer_duration=timer
        )
        if not built['success']:
            await self.send_error_response(interaction, built['user_message'], "❌ Invalid Quiz Settings")
            return

        # Fetching questions can outlast the interaction's 3 second window
        await interaction.response.defer(thinking=True)

        result = await self.quiz_controller.start_quiz(channel_id, built['configuration'])
        await self._send_load_outcome(interaction, channel_id, result)

    async def handle_retry(self, interaction: discord.Interaction):
        """Handle /retry command"""
        channel_id = interaction.channel_id
        await interaction.response.defer(thinking=True)

        result = await self.quiz_controller.retry_quiz(channel_id)
        await self._send_load_outcome(interaction, channel_id, result)

    async def _send_load_outcome(self, interaction: discord.Interaction, channel_id: int, result: Dict):
        if not result['success']:
            title = "❌ Couldn't Load Questions" if result.get('can_retry') else "❌ Quiz Start Failed"
            await interaction.followup.send(embed=build_error_embed(result['user_message'], title))
            return
        await self.present_quiz(interaction, result['session'])

    async def present_quiz(self, interaction: discord.Interaction, session: QuizSession):
        """Send the start announcement, the questions and the countdown message"""
        channel_id = interaction.channel_id
        self._quiz_channels[channel_id] = interaction.channel
        try:
            await interaction.followup.send(embed=build_started_embed(session))
            for group in chunk_embeds(build_question_embeds(session)):
                await interaction.followup.send(embeds=group)
            # Interaction followups expire after 15 minutes, the countdown can run for an hour
            self._timer_messages[channel_id] = await interaction.channel.send(embed=build_timer_embed(session))
        except discord.HTTPException as e:
            logger.error(f"Failed to present quiz in channel {channel_id}: {e}")

    async def handle_answer(self, interaction: discord.Interaction, question: int, choice: str):
        """Handle /answer command"""
        result = self.quiz_controller.select_answer(interaction.channel_id, question, choice)
        if result['success']:
            await interaction.response.send_message(result['user_message'], ephemeral=True)
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Answer Not Recorded")

    async def handle_submit(self, interaction: discord.Interaction):
        """Handle /submit command; the results are posted by on_quiz_completed"""
        result = self.quiz_controller.submit_quiz(interaction.channel_id)
        if result['success']:
            await interaction.response.send_message(result['user_message'])
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Submit Failed")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        channel_id = interaction.channel_id
        result = self.quiz_controller.stop_quiz(channel_id)
        self._quiz_channels.pop(channel_id, None)
        self._timer_messages.pop(channel_id, None)
        if result['success']:
            await interaction.response.send_message(result['user_message'])
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Stop Failed")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        progress = self.quiz_controller.get_session_progress(interaction.channel_id)
        if progress is None:
            await self.send_info_response(interaction, "No quiz in this channel. Start one with `/trivia`.")
            return

        embed = discord.Embed(title="📊 Quiz Status", color=0x6699ff)
        embed.add_field(name="State", value=progress['state'].replace("_", " ").title(), inline=True)
        embed.add_field(name="Answered", value=f"{progress['answered']}/{progress['total_questions']}", inline=True)
        embed.add_field(name="Time Remaining", value=format_time(progress['remaining_seconds']), inline=True)
        if progress['configuration'] is not None:
            embed.add_field(name="Settings", value=ConfigManager.describe(progress['configuration']), inline=False)
        if progress['error']:
            embed.add_field(name="Last Error", value=progress['error'], inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # Session callbacks

    async def on_quiz_tick(self, channel_id: int, session: QuizSession):
        """Refresh the countdown message on a throttled schedule"""
        if session.state is not SessionState.IN_PROGRESS:
            return
        remaining = session.remaining_seconds
        if remaining % TIMER_EDIT_INTERVAL != 0 and remaining > TIMER_EDIT_FINAL_SECONDS:
            return

        message = self._timer_messages.get(channel_id)
        if message is None:
            return
        try:
            await message.edit(embed=build_timer_embed(session))
        except discord.HTTPException as e:
            # Log error but don't raise to avoid breaking the countdown
            logger.warning(f"Failed to update timer in channel {channel_id}: {e}")

    async def on_quiz_completed(self, channel_id: int, session: QuizSession, result: QuizResult):
        """Post the summary and review once a quiz ends, by submit or timeout"""
        channel = self._quiz_channels.pop(channel_id, None)
        timer_message = self._timer_messages.pop(channel_id, None)

        if timer_message is not None:
            try:
                await timer_message.edit(embed=discord.Embed(
                    title="⏰ Time's Up!" if result.timed_out else "✅ Answers Submitted",
                    color=0xff0000 if result.timed_out else 0x00ff00
                ))
            except discord.HTTPException as e:
                logger.warning(f"Failed to close timer message in channel {channel_id}: {e}")

        if channel is None:
            logger.warning(f"No channel recorded for completed quiz {channel_id}")
            return

        try:
            for group in chunk_embeds(build_result_embeds(result)):
                await channel.send(embeds=group)
        except discord.HTTPException as e:
            logger.error(f"Failed to send quiz results to channel {channel_id}: {e}")

    # Responses

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = build_error_embed(message, title)
            embed.set_footer(text="If this error persists, try using /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0x6699ff
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    # Fall back to environment variable if no token provided
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = TriviaBot(config)

    try:
        logger.info("Starting Trivia Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
