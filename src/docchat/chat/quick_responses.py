"""
Canned replies for small talk.

Greetings, thanks and capability questions are answered without retrieval
or a model call, but only when the whole message is small talk. Every word
must belong to a known phrase or be filler ("there", "so much"), so
"hello, what is the refund window?" and "help me find the termination
clause" still go to retrieval.
"""

from __future__ import annotations

import random
import re
from typing import List, Optional, Set, Tuple

GREETINGS = (
    "hi", "hello", "hey", "hola", "greetings",
    "good morning", "good afternoon", "good evening",
)
CAPABILITIES = (
    "what can you do", "how do you work", "who are you", "help",
    "can you help", "can you help me", "capabilities",
)
THANKS = ("thanks", "thank you", "thankyou", "appreciate it", "cheers")
WELLBEING = ("how are you", "how are you doing", "how is it going")

FILLER_WORDS = frozenset({
    "there", "so", "much", "very", "a", "lot", "again", "all", "everyone",
    "oh", "ok", "okay", "please", "today", "bot", "assistant",
})

GREETING_REPLIES = (
    "Hello! I'm your document assistant. How can I help you today?",
    "Hi there! I'm ready to help you search through your documents.",
    "Greetings! I can answer questions about your uploaded files.",
)
CAPABILITY_REPLIES = (
    "I can search through your documents and answer questions based on their "
    "content. Just upload some files and ask away!",
    "I'm specialized in document analysis. I'll help you find information in "
    "your PDFs, DOCX files, and text documents.",
)
THANKS_REPLY = "You're welcome! Is there anything else I can help you with?"
WELLBEING_REPLY = "I'm functioning well and ready to help you with your documents!"

# Longest phrases first, so "how are you doing" wins over "how are you".
_PHRASES: List[Tuple[Tuple[str, ...], str]] = sorted(
    [(tuple(p.split()), "wellbeing") for p in WELLBEING]
    + [(tuple(p.split()), "greeting") for p in GREETINGS]
    + [(tuple(p.split()), "capability") for p in CAPABILITIES]
    + [(tuple(p.split()), "thanks") for p in THANKS],
    key=lambda item: -len(item[0]),
)


def _normalize(message: str) -> str:
    return " ".join(re.sub(r"[^\w\s']", " ", message.lower()).split())


def _small_talk_kinds(text: str) -> Optional[Set[str]]:
    """
    Kinds of small talk making up the whole message, or None if any word
    is neither part of a known phrase nor filler.
    """
    words = text.split()
    kinds: Set[str] = set()
    i = 0
    while i < len(words):
        for phrase, kind in _PHRASES:
            if tuple(words[i:i + len(phrase)]) == phrase:
                kinds.add(kind)
                i += len(phrase)
                break
        else:
            if words[i] not in FILLER_WORDS:
                return None
            i += 1
    return kinds or None


def get_quick_response(message: str) -> Optional[str]:
    """
    Return a canned reply for small talk, or None if the message needs
    a real answer.
    """
    kinds = _small_talk_kinds(_normalize(message))
    if not kinds:
        return None

    # "hi, how are you" gets the more specific reply.
    if "wellbeing" in kinds:
        return WELLBEING_REPLY
    if "greeting" in kinds:
        return random.choice(GREETING_REPLIES)
    if "capability" in kinds:
        return random.choice(CAPABILITY_REPLIES)
    return THANKS_REPLY
