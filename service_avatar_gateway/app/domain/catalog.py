"""
Static catalogs served to the front-end.
"""

import base64
from typing import Any, Dict, List

_AVATAR_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="200" height="200" viewBox="0 0 200 200">'
    '<defs><linearGradient id="grad1" x1="0%" y1="0%" x2="100%" y2="100%">'
    '<stop offset="0%" style="stop-color:#667eea"/><stop offset="100%" style="stop-color:#764ba2"/>'
    '</linearGradient></defs>'
    '<rect width="200" height="200" fill="url(#grad1)" rx="15"/>'
    '<circle cx="100" cy="75" r="25" fill="white" opacity="0.9"/>'
    '<circle cx="90" cy="70" r="3" fill="#333"/><circle cx="110" cy="70" r="3" fill="#333"/>'
    '<path d="M 85 80 Q 100 90 115 80" stroke="#333" stroke-width="2" fill="none"/>'
    '<text x="100" y="175" font-family="Arial, sans-serif" font-size="14" font-weight="bold" '
    'fill="white" text-anchor="middle">Zhang San</text>'
    '<text x="100" y="190" font-family="Arial, sans-serif" font-size="10" fill="white" '
    'text-anchor="middle" opacity="0.8">Professional Avatar</text></svg>'
)


def _svg_data_uri(svg: str) -> str:
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii")


AVATARS: List[Dict[str, Any]] = [
    {
        "id": "108",
        "name": "Zhang San (Default)",
        "description": "Default DUIX character with professional tone",
        "conversationName": "Professional Avatar Chat",
        "language": "zh",
        "modelId": "321486924406853",
        "modelName": "Professional Model",
        "ttsName": "guina",
        "ttsSpeaker": "zhifeng_emo",
        "samplePictureUrl": _svg_data_uri(_AVATAR_SVG),
        "proportion": "16:9",
        "videoWidth": 1920,
        "videoHeight": 1920,
    }
]

VOICES: List[Dict[str, str]] = [
    {"id": "guina", "name": "Guina Voice", "description": "Professional Chinese voice"},
    {"id": "zhifeng_emo", "name": "Zhifeng Emotional", "description": "Emotional Chinese voice"},
    {"id": "default", "name": "Default Voice", "description": "Default DUIX voice model"},
]

QUESTIONS: List[str] = [
    "Hello, how are you today?",
    "What's the weather like?",
    "Can you tell me a joke?",
    "What time is it?",
    "How can I help you?",
    "What's your favorite color?",
    "Tell me about yourself",
    "What can you do?",
    "How does AI work?",
    "What's new today?",
]
