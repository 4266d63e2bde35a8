"""
Local conversation descriptors.

The hosted API has no public endpoint for creating conversations, so the
gateway hands the front-end a descriptor shaped like the upstream's
``getConversationById`` document. Avatar and voice ids are carried through;
everything else is a fixed assistant persona.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

DEFAULT_MODEL_ID = "321486924406853"
DEFAULT_VOICE = "guina"

ASSISTANT_PROMPT = (
    "Task: You are a professional AI assistant with a friendly and helpful personality. "
    "You provide clear, concise answers and engage naturally with users. "
    "Requirements: 1. Be helpful and professional, 2. Keep responses under 50 words, "
    "3. Use natural conversation style, 4. Respond in the user's language."
)

# (script type, content): greeting, opener, thinking, clarification, farewell
SCRIPTS = [
    (0, "Hello"),
    (1, "Hello, I'm your AI assistant. How can I help you today?"),
    (2, "Let me think about that for a moment..."),
    (3, "I'm not sure I understand. Could you please rephrase that?"),
    (4, "Thank you for chatting with me. Have a great day!"),
]


def new_conversation_id() -> str:
    return f"hybrid_conv_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _numeric_id(conversation_id: str, default: int) -> int:
    try:
        return int(conversation_id)
    except ValueError:
        return default


def _scripts(conversation_id: str) -> List[Dict[str, Any]]:
    return [
        {
            "id": 2728 + index,
            "conversationId": conversation_id,
            "scriptType": script_type,
            "scriptContent": content,
            "ttsContent": None,
            "emotion": "0",
        }
        for index, (script_type, content) in enumerate(SCRIPTS)
    ]


def build_conversation(
    conversation_id: Optional[str] = None,
    avatar_id: Optional[str] = None,
    voice_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a conversation descriptor for the front-end SDK."""
    conversation_id = conversation_id or new_conversation_id()
    started = datetime.now(timezone.utc).strftime("%H:%M:%S")

    return {
        "id": conversation_id,
        "conversationName": f"Avatar Chat {started}",
        "language": "zh",
        "maxConversation": 2,
        "dataModelIsUsed": 1,
        "knowledgeIsUsed": 1,
        "fileIsUsed": 0,
        "thirdIsUsed": 0,
        "isFreedom": 0,
        "conversationInfoDto": {
            "id": _numeric_id(conversation_id, 109),
            "name": "Avatar Assistant",
            "gender": 1,
            "characters": "Professional AI Assistant",
            "backStory": "Hybrid DUIX Avatar Assistant",
        },
        "detailDto": {
            "id": _numeric_id(conversation_id, 95),
            "conversationId": conversation_id,
            "proportion": "16:9",
            "modelId": avatar_id or DEFAULT_MODEL_ID,
            "modelName": "Hybrid Avatar Model",
            "background": 1,
            "backgroundDto": {
                "id": 1,
                "backgroundCode": "1591003727513522176",
                "backgroundName": "professional_bg.jpg",
                "backgroundUrl": "/video-server/jpg/professional_bg.jpg",
                "proportion": "16:9",
            },
            "ttsId": "15",
            "ttsName": voice_id or DEFAULT_VOICE,
            "ttsSpeaker": "zhifeng_emo",
            "ttsSource": 20,
            "samplePictureUrl": "/model/avatar/hybrid_avatar.png",
            "videoWidth": 1920,
            "videoHeight": 1920,
            "humanProportion": "9:16",
            "humanWidth": 540,
            "humanHeight": 960,
            "humanX": 690,
            "humanY": 120,
        },
        "knowledgeDtoList": [],
        "modelDtoList": [
            {
                "id": 487,
                "conversationId": conversation_id,
                "largeModelType": 0,
                "largeName": "hybrid_assistant",
                "modelId": "1",
                "prompt": ASSISTANT_PROMPT,
                "botUrl": "",
            }
        ],
        "scriptDtoList": _scripts(conversation_id),
    }
