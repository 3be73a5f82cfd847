"""
Chat interface service - renders the orchestrator's view state and turns widget
events into orchestrator intents.
"""

import asyncio
from datetime import date
from typing import Any, Awaitable, Dict, List, Optional

import streamlit as st

from config.app_config import AppConfig, get_config
from infrastructure.resilience.retry_service import get_retry_service
from services.ai_service.fallback_service import EmpatheticTemplateSystem
from services.ai_service.models import MoodTrend, Sentiment
from services.ai_service.mood_aggregator import happiness_percentage, mood_label
from services.ai_service.prompt_builder import LANGUAGE_NAMES
from services.chat_service.models import Conversation, Message, UserPreferences, UserProfile
from services.chat_service.orchestrator import ConversationOrchestrator, ViewState
from services.ui_service.voice_input import VoiceInputStateMachine, VoiceState
from utils.logging_config import get_error_tracker, get_logger

SENTIMENT_COLORS: Dict[Sentiment, str] = {
    Sentiment.POSITIVE: "#4caf50",
    Sentiment.HOPEFUL: "#8bc34a",
    Sentiment.CALM: "#4db6ac",
    Sentiment.NEUTRAL: "#9e9e9e",
    Sentiment.CONFUSED: "#ffb74d",
    Sentiment.FRUSTRATED: "#ff8a65",
    Sentiment.ANXIOUS: "#ffa726",
    Sentiment.FEARFUL: "#ba68c8",
    Sentiment.OVERWHELMED: "#7986cb",
    Sentiment.NEGATIVE: "#e57373",
    Sentiment.DEPRESSED: "#5c6bc0",
    Sentiment.SUPPRESSED: "#90a4ae",
    Sentiment.URGENT: "#d32f2f",
}

SENTIMENT_EMOJIS: Dict[Sentiment, str] = {
    Sentiment.POSITIVE: "😊",
    Sentiment.HOPEFUL: "🌱",
    Sentiment.CALM: "😌",
    Sentiment.NEUTRAL: "😐",
    Sentiment.CONFUSED: "😕",
    Sentiment.FRUSTRATED: "😤",
    Sentiment.ANXIOUS: "😟",
    Sentiment.FEARFUL: "😨",
    Sentiment.OVERWHELMED: "😵",
    Sentiment.NEGATIVE: "😞",
    Sentiment.DEPRESSED: "😔",
    Sentiment.SUPPRESSED: "🤐",
    Sentiment.URGENT: "🆘",
}

TREND_LABELS = {
    MoodTrend.IMPROVING: "📈 Improving",
    MoodTrend.DECLINING: "📉 Declining",
    MoodTrend.STABLE: "➡️ Stable",
}

VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")
GENDERS = ("", "male", "female", "non-binary", "prefer-not-to-say")

CRISIS_BANNER_KEY = "crisis_banner"


def session_loop() -> asyncio.AbstractEventLoop:
    """Event loop kept for the whole browser session"""
    loop = st.session_state.get("event_loop")
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        st.session_state.event_loop = loop
    return loop


def run_intent(coroutine: Awaitable[Any]) -> Any:
    """
    Run an async intent on the session's event loop and return as soon as it
    finishes. Background work it scheduled stays on the loop and keeps making
    progress whenever the loop runs again.
    """
    return session_loop().run_until_complete(coroutine)


def finish_background_work(orchestrator: ConversationOrchestrator) -> bool:
    """
    Let background work left by earlier intents finish, once the page is drawn.

    Returns:
        True when there was pending work (the page may now be stale)
    """
    if not orchestrator.has_background_tasks:
        return False
    run_intent(orchestrator.wait_for_background_tasks())
    return True


def notify_crisis(message: str):
    """Crisis notifier: toast now, banner until dismissed"""
    st.toast(message, icon="🆘")
    st.session_state[CRISIS_BANNER_KEY] = message


def render_disclaimer(config: AppConfig) -> bool:
    """Show the disclaimer until accepted; returns True once the chat may be shown"""
    if st.session_state.get("disclaimer_accepted"):
        return True

    st.markdown(f"# {config.ui.page_icon} {config.ui.app_title}")
    st.info(config.ui.disclaimer)
    if st.button("I understand", type="primary"):
        st.session_state.disclaimer_accepted = True
        st.rerun()
    return False


class ChatInterface:
    """
    Service for chat interface components and interactions.
    Handles the sidebar, message rendering, suggestions and input widgets.
    """

    def __init__(self, orchestrator: ConversationOrchestrator, config: Optional[AppConfig] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.orchestrator = orchestrator
        self.templates = EmpatheticTemplateSystem()

    def run(self, coroutine: Awaitable[Any]) -> Any:
        return run_intent(coroutine)

    # Sidebar

    def render_sidebar(self, view: ViewState):
        with st.sidebar:
            self._render_conversation_list(view)
            st.divider()
            self._render_mood_meter(view)
            st.divider()
            self._render_settings(view.preferences, view.profile)
            st.divider()
            self._render_data_tools()
            st.divider()
            self._render_system_status()

    def _render_conversation_list(self, view: ViewState):
        st.markdown("## 💬 Conversations")
        count = len(view.conversations)
        st.caption(f"📊 {count} conversation{'s' if count != 1 else ''}")

        if st.button("➕ New Conversation", use_container_width=True, type="secondary"):
            self.orchestrator.new_conversation()
            st.rerun()

        active_id = view.active_conversation.id if view.active_conversation else None
        for conversation in view.conversations:
            select_col, delete_col = st.columns([5, 1])
            emoji = SENTIMENT_EMOJIS.get(conversation.main_sentiment, "💬")
            with select_col:
                if conversation.id == active_id:
                    st.button(f"✅ {conversation.title}", key=f"current_{conversation.id}",
                              use_container_width=True, type="primary", help="Currently active conversation")
                elif st.button(f"{emoji} {conversation.title}", key=f"select_{conversation.id}",
                               use_container_width=True):
                    self.orchestrator.select_conversation(conversation.id)
                    st.rerun()
            with delete_col:
                if st.button("🗑️", key=f"delete_{conversation.id}", help="Delete conversation"):
                    self.orchestrator.delete_conversation(conversation.id)
                    st.rerun()

    def _render_mood_meter(self, view: ViewState):
        st.markdown("### 🌤️ Mood")
        aggregator = self.orchestrator.mood_aggregator
        today = date.today()
        records = view.mood_records

        todays = aggregator.record_for(records, today)
        weekly = aggregator.weekly_average(records, today)

        if todays is None and weekly is None:
            st.caption("Mood tracking starts with your first message.")
            return

        if todays is not None:
            score = todays.average_sentiment_score
            st.metric("Today", f"{happiness_percentage(score)}% happy", help=mood_label(score).value)
            st.progress(happiness_percentage(score) / 100)
        if weekly is not None:
            st.caption(f"7-day average: {happiness_percentage(weekly)}% · {TREND_LABELS[view.mood_trend]}")

        period = st.radio("Mood journey", ["week", "month"], horizontal=True, key="mood_period")
        series = aggregator.mood_series(records, period, today)
        st.line_chart([{"day": point.label, "mood": point.value} for point in series], x="day", y="mood")

    def _render_settings(self, preferences: UserPreferences, profile: UserProfile):
        with st.expander("⚙️ Preferences"):
            with st.form("preferences_form"):
                languages = list(LANGUAGE_NAMES)
                language = st.selectbox(
                    "Language",
                    languages,
                    index=languages.index(preferences.preferred_language)
                    if preferences.preferred_language in languages else 0,
                    format_func=lambda code: LANGUAGE_NAMES[code],
                )
                auto_translate = st.checkbox("Translate my messages automatically", preferences.auto_translate_enabled)
                tts = st.checkbox("Read replies aloud", preferences.text_to_speech_enabled)
                voice = st.selectbox("Voice", VOICES, index=VOICES.index(preferences.voice)
                                     if preferences.voice in VOICES else 0)
                themes = ["system", "light", "dark"]
                theme = st.selectbox("Theme", themes, index=themes.index(preferences.theme))
                adaptive = st.checkbox("Adapt colours to my mood", preferences.adaptive_colors_enabled)
                if st.form_submit_button("Save"):
                    self.orchestrator.update_preferences({
                        "preferred_language": language,
                        "auto_translate_enabled": auto_translate,
                        "text_to_speech_enabled": tts,
                        "voice": voice,
                        "theme": theme,
                        "adaptive_colors_enabled": adaptive,
                    })
                    st.rerun()

        with st.expander("🙂 About you"):
            with st.form("profile_form"):
                name = st.text_input("Name", profile.name or "")
                age = st.number_input("Age", min_value=0, max_value=120, value=profile.age or 0,
                                      help="Leave at 0 to skip")
                gender = st.selectbox("Gender", GENDERS, index=GENDERS.index(profile.gender or ""),
                                      format_func=lambda g: g or "Not set")
                if st.form_submit_button("Save"):
                    self.orchestrator.update_profile({
                        "name": name.strip() or None,
                        "age": int(age) or None,
                        "gender": gender or None,
                    })
                    st.rerun()

    def _render_data_tools(self):
        with st.expander("📦 Your data"):
            st.download_button(
                "Export conversations",
                data=self.orchestrator.export_conversations(),
                file_name="sentiai_conversations.json",
                mime="application/json",
                use_container_width=True,
            )
            uploaded = st.file_uploader("Import conversations", type=["json"], key="import_file")
            if uploaded is not None and st.button("Replace with import", use_container_width=True):
                count = self.run(self.orchestrator.import_conversations(uploaded.getvalue().decode("utf-8")))
                if count is None:
                    st.error("That file is not a valid conversation export.")
                else:
                    st.success(f"Imported {count} conversations")
                    st.rerun()

    def _render_system_status(self):
        """Render remote model availability"""
        if self.orchestrator.remote_model is None:
            st.caption("🟠 Running with built-in replies (no API key configured)")
            return

        circuit_state = get_retry_service().get_openai_circuit_breaker().get_state()
        st.caption(self.templates.get_service_status_message(circuit_state))
        recent = get_error_tracker().get_error_summary()
        if recent.get("total_errors"):
            st.caption(f"⚠️ {recent['total_errors']} recovered errors this session")

    # Main area

    def apply_theme(self, view: ViewState):
        """Mood-adaptive accent colour"""
        conversation = view.active_conversation
        if not view.preferences.adaptive_colors_enabled or conversation is None:
            return
        color = SENTIMENT_COLORS.get(conversation.main_sentiment)
        if color:
            st.markdown(
                f"<style>.stChatMessage {{ border-left: 4px solid {color}; }}</style>",
                unsafe_allow_html=True,
            )

    def render_crisis_banner(self):
        message = st.session_state.get(CRISIS_BANNER_KEY)
        if not message:
            return
        st.error(f"🆘 {message}")
        if st.button("Dismiss", key="dismiss_crisis"):
            st.session_state.pop(CRISIS_BANNER_KEY, None)
            st.rerun()

    def render_chat_messages(self, conversation: Optional[Conversation], preferences: UserPreferences):
        """Render chat messages with sentiment badges"""
        if conversation is None:
            return
        for message in conversation.messages:
            with st.chat_message(message.role):
                st.markdown(message.content)
                if message.is_user:
                    self._render_message_badge(message)
                elif preferences.text_to_speech_enabled:
                    self._render_speech(message)

    def _render_message_badge(self, message: Message):
        parts = []
        if message.sentiment is not None:
            color = SENTIMENT_COLORS.get(message.sentiment, "#9e9e9e")
            emoji = SENTIMENT_EMOJIS.get(message.sentiment, "")
            parts.append(f"<span style='color:{color}'>{emoji} {message.sentiment.value}</span>")
        if message.translated_from:
            parts.append(f"translated from {LANGUAGE_NAMES.get(message.translated_from, message.translated_from)}")
        parts.append(message.timestamp.strftime("%H:%M"))
        st.markdown(f"<small>{' · '.join(parts)}</small>", unsafe_allow_html=True)
        if message.original_text:
            with st.expander("Original"):
                st.write(message.original_text)

    def _render_speech(self, message: Message):
        audio_cache: Dict[str, bytes] = st.session_state.setdefault("speech_audio", {})
        if message.id in audio_cache:
            st.audio(audio_cache[message.id], format="audio/mp3")
            return
        if st.button("🔊", key=f"speak_{message.id}", help="Read aloud"):
            audio = self.run(self.orchestrator.synthesize_speech(message.content))
            if audio:
                audio_cache[message.id] = audio
                st.rerun()
            else:
                st.caption("Speech is not available right now.")

    def render_suggestions(self, view: ViewState) -> Optional[str]:
        """Render suggestion chips; returns the clicked one"""
        if not view.suggestions or view.is_composing:
            return None
        st.caption("💡 You could say...")
        columns = st.columns(min(len(view.suggestions), 3))
        for index, suggestion in enumerate(view.suggestions):
            with columns[index % len(columns)]:
                if st.button(suggestion.text, key=f"suggestion_{index}", use_container_width=True):
                    return suggestion.text
        return None

    def render_voice_input(self) -> Optional[str]:
        """Record speech and return its transcript once, when available"""
        if self.orchestrator.remote_model is None or not hasattr(st, "audio_input"):
            return None

        machine: VoiceInputStateMachine = st.session_state.setdefault("voice_input", VoiceInputStateMachine())
        recording = st.audio_input("🎙️ Speak instead", key="voice_recording")

        if recording is None:
            if machine.state is not VoiceState.IDLE:
                machine.reset()
            return None

        recording_id = getattr(recording, "file_id", None) or recording.name
        if st.session_state.get("voice_handled") == recording_id:
            return None
        st.session_state.voice_handled = recording_id

        if machine.state is not VoiceState.IDLE:
            machine.reset()
        machine.start()
        machine.audio_captured()
        transcript = self.run(self.orchestrator.transcribe(recording.getvalue()))
        if transcript is None:
            machine.fail("Transcription unavailable")
        else:
            machine.transcribed(transcript)

        if machine.state is VoiceState.ERROR:
            st.warning(f"Voice input failed: {machine.error or 'unknown error'}")
            machine.reset()
            return None
        return machine.reset()

    def render_welcome_message(self, profile: UserProfile):
        greeting = f"Welcome back, {profile.name}!" if profile.name else f"Welcome to {self.config.ui.app_title}"
        st.markdown(f"# {self.config.ui.page_icon} {greeting}")
        st.caption("A calm place to talk things through.")

    def send(self, text: str):
        """Run one turn with a spinner while the reply is composed"""
        with st.spinner("Thinking..."):
            result = self.run(self.orchestrator.send_message(text))
        if result is None:
            self.logger.debug("Message was not processed as a turn")

    def render(self, view: ViewState):
        """Render the whole page for ``view`` and handle at most one new input"""
        self.apply_theme(view)
        self.render_sidebar(view)
        self.render_welcome_message(view.profile)
        self.render_crisis_banner()
        self.render_chat_messages(view.active_conversation, view.preferences)

        pending: List[str] = []
        chosen = self.render_suggestions(view)
        if chosen:
            pending.append(chosen)
        spoken = self.render_voice_input()
        if spoken:
            pending.append(spoken)
        typed = st.chat_input(self.config.ui.input_placeholder, disabled=view.is_composing)
        if typed:
            pending.append(typed)

        if pending:
            self.send(pending[0])
            st.rerun()
