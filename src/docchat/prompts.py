"""
Prompt Templates

System prompts for each context source, plus builders for the user
prompt that carries the retrieved excerpts.
"""

from __future__ import annotations

from typing import Sequence

from .retrieval.models import RetrievalMatch


MEMORY_SYSTEM_PROMPT = """You are a helpful AI assistant continuing an ongoing conversation.

You are given excerpts from earlier in this conversation. Use them naturally
to stay consistent with what was already said. Do not mention that you were
given excerpts. If the excerpts are not relevant to the new message, answer
the new message directly and concisely."""


DOCUMENT_SYSTEM_PROMPT = """You are a document assistant. Answer ONLY using the document excerpts provided.

Rules:
- Base every statement on the excerpts. Do not use outside knowledge.
- If the answer is not in the excerpts, say clearly that the information
  was not found in the uploaded documents.
- When helpful, mention which file the information came from.
- Be clear and concise."""


GENERAL_SYSTEM_PROMPT = """You are a helpful AI assistant. Answer the user's question clearly and concisely.

If the user asks about documents or files, let them know they need to upload
documents first to get document-specific answers."""


def build_memory_prompt(message: str, matches: Sequence[RetrievalMatch]) -> str:
    lines = ["Relevant earlier messages:"]
    for match in matches:
        role = str(match.metadata.get("role", "user")).capitalize()
        lines.append(f"{role}: {match.text}")
    lines.append("")
    lines.append(f"Current message: {message}")
    return "\n".join(lines)


def build_document_prompt(message: str, matches: Sequence[RetrievalMatch]) -> str:
    """
    Excerpts labelled by source file, followed by the question.
    """
    blocks = []
    for i, match in enumerate(matches, start=1):
        file_name = match.metadata.get("file_name") or "unknown file"
        blocks.append(f"[Excerpt {i} from {file_name}]\n{match.text}")

    excerpts = "\n\n".join(blocks)
    return f"Document excerpts:\n\n{excerpts}\n\nQuestion: {message}"
