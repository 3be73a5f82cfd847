import streamlit as st

from config.app_config import get_config
from infrastructure.external.langfuse_client import get_langfuse_client
from infrastructure.external.openai_client import create_openai_client
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.orchestrator import ConversationOrchestrator, create_orchestrator
from services.ui_service.chat_interface import (
    ChatInterface,
    finish_background_work,
    notify_crisis,
    render_disclaimer,
    run_intent,
)
from utils.logging_config import get_logger, initialize_logging, log_execution_time

# Initialize logging and error tracking
error_tracker = initialize_logging()
logger = get_logger(__name__)

# Get configuration
config = get_config()

st.set_page_config(page_title=config.ui.app_title, page_icon=config.ui.page_icon)


def get_orchestrator() -> ConversationOrchestrator:
    """One orchestrator per browser session, loaded from storage on first use"""
    if "orchestrator" not in st.session_state:
        langfuse = get_langfuse_client()
        repository = ConversationRepository(config.storage.db_path) if config.storage.enable_persistence else None
        orchestrator = create_orchestrator(
            config=config,
            repository=repository,
            remote_model=create_openai_client(config),
            crisis_notifier=notify_crisis,
            persona_provider=lambda: langfuse.get_prompt(config.llm.persona_prompt_name),
        )
        with log_execution_time(logger, "load_conversations"):
            run_intent(orchestrator.start())
        if orchestrator.manager.active_conversation is None:
            orchestrator.new_conversation()
        st.session_state.orchestrator = orchestrator
    return st.session_state.orchestrator


def main_app():
    """Main application content (shown once the disclaimer is accepted)"""
    # Add responsive CSS for mobile devices
    st.markdown("""
    <style>
    @media (max-width: 768px) {
        .main .block-container {
            padding-left: 1rem;
            padding-right: 1rem;
        }
        .stChatMessage {
            margin-bottom: 0.5rem;
        }
    }
    </style>
    """, unsafe_allow_html=True)

    orchestrator = get_orchestrator()
    interface = ChatInterface(orchestrator, config)
    view = run_intent(orchestrator.view_state())
    interface.render(view)

    # Titles and indexing finish after the reply is on screen; redraw to show them
    if finish_background_work(orchestrator):
        st.rerun()


if render_disclaimer(config):
    main_app()
