"""Prompts sent to the completion server."""

CHAT_SYSTEM_PROMPT = """You are a knowledgeable, helpful assistant. Give thorough, well-structured answers.

Formatting:
- Start with a direct answer, then elaborate.
- Break text into short paragraphs.
- Use bullet or numbered lists for multiple items.
- Use bold for key terms."""

BRANCH_NAME_PROMPT = """Based on this conversation exchange, generate a short, descriptive branch name (2-4 words max) for a conversation branch:

User: "{last_user_message}"
Assistant: "{last_assistant_message}\""""

BRANCH_NAME_SELECTION_ADDENDUM = """

The user has specifically selected this part of the assistant's response to branch from:
"{selected_text}"

Focus the branch name on this selected portion and its topic."""

BRANCH_NAME_SUFFIX = """

Generate a concise branch name that captures the specific topic or direction of this conversation thread. Examples: "Deep Dive", "Alternative Approach", "Practical Examples", "Technical Details", etc.

Respond with only the branch name, no additional text."""

CONVERSATION_NAME_PROMPT = """Based on this conversation exchange, generate a short, descriptive conversation title (2-4 words max):

{context}

Generate a concise title that captures the main topic or purpose of this conversation. Examples: "React Help", "API Design", "Bug Fix Discussion", "Learning Python", etc.

Respond with only the conversation title, no additional text."""

CONDENSE_SYSTEM_PROMPT = """You condense a chat into a clickable outline.
Return JSON ONLY in the schema:
[
  {"id":"unique_id_here",
   "title":"<one-line topic in plain English>",
   "sourceMessageId":"<messageId from input>",
   "children":[ ...optional same shape... ]
  }
]

Rules:
- Each item = 5-11 words, past-tense, user-centric (e.g., "Asked about gravity's discovery date").
- Map each item to the MOST representative messageId (usually the user's question or the assistant answer starting that topic).
- Group immediate follow-ups as children. Keep 1-level nesting max.
- Use unique IDs for each summary item (e.g., "summary_1", "summary_2", etc.).
- Do not include any prose outside the JSON array.
- If there are fewer than 3 messages, create a single summary item."""


def build_branch_name_prompt(
    last_user_message: str,
    last_assistant_message: str,
    selected_text: str | None = None,
) -> str:
    prompt = BRANCH_NAME_PROMPT.format(
        last_user_message=last_user_message,
        last_assistant_message=last_assistant_message,
    )
    if selected_text and selected_text.strip():
        prompt += BRANCH_NAME_SELECTION_ADDENDUM.format(selected_text=selected_text.strip())
    return prompt + BRANCH_NAME_SUFFIX
