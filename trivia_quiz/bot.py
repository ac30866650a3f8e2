import logging
from typing import Dict, List, Optional

import aiohttp
import discord
from discord.ext import commands

from .config_manager import ConfigManager
from .models import AnswerResult, StateChange, StateChangeKind
from .question_source import QuestionSource
from .quiz_controller import QuizController
from .quiz_engine import InvalidTransitionError
from . import screens

logger = logging.getLogger(__name__)

# Discord limits button labels to 80 characters
MAX_BUTTON_LABEL = 80
TIMER_REFRESH_SECONDS = 5

ALREADY_RUNNING_MESSAGE = "⚠️ A quiz is already running in this channel. Use `/trivia_stop` to end it."

COLOR_INFO = 0x4f46e5
COLOR_SUCCESS = 0x16a34a
COLOR_WARNING = 0xca8a04
COLOR_ERROR = 0xff0000


class QuestionView(discord.ui.View):
    """Option buttons plus a Next button for one question."""

    def __init__(self, renderer: "ChannelQuizRenderer", options: List[str]):
        super().__init__(timeout=None)
        self.renderer = renderer
        self.option_buttons: List[discord.ui.Button] = []

        for index, option in enumerate(options):
            button = discord.ui.Button(
                label=option[:MAX_BUTTON_LABEL],
                style=discord.ButtonStyle.secondary,
                row=index // 5
            )
            button.callback = self._make_option_callback(option)
            self.option_buttons.append(button)
            self.add_item(button)

        self.options = list(options)
        self.next_button = discord.ui.Button(label="Next", style=discord.ButtonStyle.primary, disabled=True, row=4)
        self.next_button.callback = self._on_next
        self.add_item(self.next_button)

    def _make_option_callback(self, option: str):
        async def callback(interaction: discord.Interaction):
            await self.renderer.handle_option(interaction, option)
        return callback

    async def _on_next(self, interaction: discord.Interaction):
        await self.renderer.handle_next(interaction)

    def mark_answered(self, result: AnswerResult) -> None:
        """Highlight the selection and correct answer, lock options, enable Next."""
        for option, button in zip(self.options, self.option_buttons):
            if option == result.correct_answer:
                button.style = discord.ButtonStyle.success
            elif option == result.selected_option:
                button.style = discord.ButtonStyle.danger
            button.disabled = True
        self.next_button.disabled = False

    def lock(self) -> None:
        for item in self.children:
            item.disabled = True


class ActionView(discord.ui.View):
    """Single button that starts a new attempt (Restart or Retry)."""

    def __init__(self, renderer: "ChannelQuizRenderer", label: str):
        super().__init__(timeout=None)
        self.renderer = renderer
        self.action_button = discord.ui.Button(label=label, style=discord.ButtonStyle.primary)
        self.action_button.callback = self._on_action
        self.add_item(self.action_button)

    async def _on_action(self, interaction: discord.Interaction):
        await self.renderer.handle_retry(interaction)

    def lock(self) -> None:
        self.action_button.disabled = True


class ChannelQuizRenderer:
    """
    Renders one channel's quiz controller into Discord messages.

    Subscribes to the controller's state changes and routes button presses
    back into it.
    """

    def __init__(self, channel: discord.abc.Messageable, controller: QuizController):
        self.channel = channel
        self.controller = controller
        self.question_message: Optional[discord.Message] = None
        self.question_view: Optional[QuestionView] = None
        self.status_message: Optional[discord.Message] = None
        self.question_embed: Optional[discord.Embed] = None
        self.action_message: Optional[discord.Message] = None
        self.action_view: Optional[ActionView] = None
        controller.add_listener(self.on_state_change)

    @property
    def screen(self) -> screens.ScreenVisibility:
        """Screens visible for the controller's current phase."""
        return screens.render(self.controller.phase)

    @property
    def is_running(self) -> bool:
        screen = self.screen
        return screen.loading or screen.quiz

    async def on_state_change(self, change: StateChange) -> None:
        handlers = {
            StateChangeKind.LOADING: self._render_loading,
            StateChangeKind.QUESTION_LOADED: self._render_question,
            StateChangeKind.ANSWER_RESULT: self._render_answer,
            StateChangeKind.SCORE_UPDATED: self._render_status,
            StateChangeKind.TIME_UPDATED: self._render_time,
            StateChangeKind.FINISHED: self._render_finished,
            StateChangeKind.ERROR: self._render_error,
        }
        await handlers[change.kind](change)

    async def handle_option(self, interaction: discord.Interaction, option: str) -> None:
        await self._defer(interaction)
        await self.controller.submit_answer(option)

    async def handle_next(self, interaction: discord.Interaction) -> None:
        await self._defer(interaction)
        await self.controller.advance()

    async def handle_retry(self, interaction: discord.Interaction) -> None:
        await self._defer(interaction)
        if self.is_running:
            logger.warning(f"Ignoring retry while {self.controller.phase.value}")
            return
        try:
            await self.controller.retry()
        except InvalidTransitionError as e:
            logger.warning(f"Ignoring retry: {e}")

    async def _render_loading(self, change: StateChange) -> None:
        await self._retire_action_view()
        self._reset_messages()
        embed = discord.Embed(
            title="⏳ Loading Questions",
            description="Fetching a fresh set of trivia questions...",
            color=COLOR_INFO
        )
        await self._send(embed=embed)

    async def _render_question(self, change: StateChange) -> None:
        if self.question_view is not None:
            self.question_view.lock()
            self.question_view.stop()
            await self._edit(self.question_message, view=self.question_view)

        question = change.question
        self.question_embed = discord.Embed(
            title="❓ Trivia",
            description=screens.format_question_heading(
                change.question_number, change.question_total, question.prompt_text
            ),
            color=COLOR_INFO
        )
        self.question_view = QuestionView(self, list(question.options))
        self.question_message = await self._send(embed=self.question_embed, view=self.question_view)

        if self.status_message is None:
            self.status_message = await self._send(content=self._status_text(change))

    async def _render_answer(self, change: StateChange) -> None:
        if self.question_view is None or self.question_embed is None:
            return

        result = change.answer
        self.question_view.mark_answered(result)
        self.question_embed.color = COLOR_SUCCESS if result.is_correct else COLOR_ERROR
        self.question_embed.set_footer(text=screens.format_feedback(result))
        await self._edit(self.question_message, embed=self.question_embed, view=self.question_view)

    async def _render_status(self, change: StateChange) -> None:
        await self._edit(self.status_message, content=self._status_text(change))

    async def _render_time(self, change: StateChange) -> None:
        # Throttled to stay clear of Discord edit rate limits
        if change.low_time or change.time_remaining % TIMER_REFRESH_SECONDS == 0:
            await self._render_status(change)

    async def _render_finished(self, change: StateChange) -> None:
        if self.question_view is not None:
            self.question_view.lock()
            self.question_view.stop()
            await self._edit(self.question_message, view=self.question_view)

        embed = discord.Embed(
            title="🏁 Quiz Complete!",
            description=f"Final score: **{screens.format_final_score(change.score, change.question_total)}**",
            color=COLOR_SUCCESS
        )
        if change.time_remaining == 0:
            embed.set_footer(text="Time's up!")
        await self._send_action(embed, "Restart")
        self._reset_messages()

    async def _render_error(self, change: StateChange) -> None:
        embed = discord.Embed(
            title="❌ Could Not Load Questions",
            description=screens.format_error(change.message or "Unknown error"),
            color=COLOR_ERROR
        )
        await self._send_action(embed, "Retry")
        self._reset_messages()

    async def _send_action(self, embed: discord.Embed, label: str) -> None:
        await self._retire_action_view()
        self.action_view = ActionView(self, label)
        self.action_message = await self._send(embed=embed, view=self.action_view)

    async def _retire_action_view(self) -> None:
        """Disable the Restart/Retry button of an earlier attempt."""
        if self.action_view is None:
            return
        self.action_view.lock()
        self.action_view.stop()
        await self._edit(self.action_message, view=self.action_view)
        self.action_view = None
        self.action_message = None

    def _status_text(self, change: StateChange) -> str:
        timer = screens.format_timer(change.time_remaining)
        if change.low_time:
            timer = f"⚠️ {timer}"
        return f"{screens.format_score(change.score)} | {timer}"

    def _reset_messages(self) -> None:
        self.question_message = None
        self.question_view = None
        self.question_embed = None
        self.status_message = None

    async def _defer(self, interaction: discord.Interaction) -> None:
        try:
            if not interaction.response.is_done():
                await interaction.response.defer()
        except discord.HTTPException as e:
            logger.error(f"Failed to acknowledge interaction: {e}")

    async def _send(self, **kwargs) -> Optional[discord.Message]:
        try:
            return await self.channel.send(**kwargs)
        except discord.HTTPException as e:
            logger.error(f"Failed to send quiz message: {e}")
            return None

    async def _edit(self, message: Optional[discord.Message], **kwargs) -> None:
        if message is None:
            return
        try:
            await message.edit(**kwargs)
        except discord.HTTPException as e:
            logger.error(f"Failed to edit quiz message: {e}")


class QuizBot(commands.Bot):
    """Discord bot for running trivia quizzes"""

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
        self.config_manager = ConfigManager()
        self.http_session: Optional[aiohttp.ClientSession] = None
        self.renderers: Dict[int, ChannelQuizRenderer] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            if self.app_config:
                self.config_manager.apply_config(self.app_config)

            self.http_session = aiohttp.ClientSession()
            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def close(self):
        for renderer in self.renderers.values():
            await renderer.controller.abandon()
        if self.http_session is not None and not self.http_session.closed:
            await self.http_session.close()
        await super().close()

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="trivia", description="Start a trivia quiz in this channel")
        async def trivia_command(interaction: discord.Interaction):
            await self.handle_trivia(interaction)

        @self.tree.command(name="trivia_stop", description="Abandon the trivia quiz in this channel")
        async def trivia_stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="trivia_status", description="Show trivia progress in this channel")
        async def trivia_status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    def get_renderer(self, channel: discord.abc.Messageable, channel_id: int) -> ChannelQuizRenderer:
        """Get or create the quiz renderer for a channel."""
        renderer = self.renderers.get(channel_id)
        if renderer is None:
            settings = self.config_manager.get_quiz_settings()
            source = QuestionSource(
                api_url=settings.api_url,
                amount=settings.question_amount,
                question_type=settings.question_type,
                session=self.http_session
            )
            renderer = ChannelQuizRenderer(channel, QuizController(source, settings))
            self.renderers[channel_id] = renderer
        return renderer

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        embed = discord.Embed(
            title="🎯 Trivia Quiz Help",
            description="Answer as many questions as you can before the timer runs out.",
            color=COLOR_INFO
        )
        embed.add_field(
            name="Commands",
            value=(
                "`/trivia` - Start a new quiz\n"
                "`/trivia_stop` - Abandon the current quiz\n"
                "`/trivia_status` - Show score and time left"
            ),
            inline=False
        )
        embed.add_field(name="Settings", value=self.config_manager.get_settings_summary(), inline=False)
        await self.send_response(interaction, embed=embed)

    async def handle_trivia(self, interaction: discord.Interaction):
        """Handle /trivia command"""
        renderer = self.get_renderer(interaction.channel, interaction.channel_id)

        if renderer.is_running:
            await self.send_response(interaction, content=ALREADY_RUNNING_MESSAGE, ephemeral=True)
            return

        await self.send_response(interaction, content="🎯 Starting trivia!", ephemeral=True)
        try:
            await renderer.controller.start()
        except InvalidTransitionError as e:
            # Another /trivia started the quiz while this one was being acknowledged
            logger.warning(f"Ignoring /trivia: {e}")
            await self.send_response(interaction, content=ALREADY_RUNNING_MESSAGE, ephemeral=True)

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /trivia_stop command"""
        renderer = self.renderers.get(interaction.channel_id)
        if renderer is None or not renderer.is_running:
            await self.send_response(interaction, content="ℹ️ No quiz is running in this channel.", ephemeral=True)
            return

        await renderer.controller.abandon()
        await self.send_response(interaction, content="🛑 Quiz stopped.")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /trivia_status command"""
        renderer = self.renderers.get(interaction.channel_id)
        if renderer is None:
            await self.send_response(interaction, content="ℹ️ No quiz has been played in this channel.", ephemeral=True)
            return

        engine = renderer.controller.engine
        state = engine.state
        screen = renderer.screen
        if screen.quiz:
            content = (
                f"Question {state.current_index + 1} of {len(engine.questions)} | "
                f"{screens.format_score(state.score)} | {screens.format_timer(state.time_remaining)}"
            )
        elif screen.results:
            score, total = engine.final_score()
            content = f"Last quiz: {screens.format_final_score(score, total)}"
        elif screen.error:
            content = screens.format_error(engine.error_message or "Unknown error")
        elif screen.loading:
            content = "⏳ Loading questions..."
        else:
            content = "ℹ️ No quiz is running. Use `/trivia` to start one."
        await self.send_response(interaction, content=content, ephemeral=True)

    async def send_response(self, interaction: discord.Interaction, **kwargs):
        """Send an interaction response, falling back to a followup once responded."""
        try:
            if interaction.response.is_done():
                await interaction.followup.send(**kwargs)
            else:
                await interaction.response.send_message(**kwargs)
        except discord.HTTPException as e:
            logger.error(f"Failed to send interaction response: {e}")


async def run_bot(token, config=None):
    """Run the bot with proper error handling"""
    bot = QuizBot(config)

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
