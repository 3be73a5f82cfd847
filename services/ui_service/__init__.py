"""
UI service - handles user interface components and interactions.

``chat_interface`` imports streamlit and is imported directly by the app.
"""

from .voice_input import VoiceInputStateMachine, VoiceState

__all__ = [
    'VoiceInputStateMachine',
    'VoiceState',
]
