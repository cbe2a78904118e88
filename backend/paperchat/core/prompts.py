from __future__ import annotations

from paperchat.core.models.preferences import Familiarity, Goal, Preferences

ASSISTANT_PROMPT = (
    "You are a helpful, friendly AI assistant that helps readers understand research papers.\n"
    "Provide clear, concise, and accurate responses.\n"
    "Format your responses using Markdown when appropriate.\n"
    "If you don't know the answer to something, be honest about it."
)

EXCERPT_HEADER = "The user has highlighted the following excerpt from the paper. Focus on it when answering:"

UPLOAD_INTRO = "I've uploaded a research paper. Please analyze it and help me understand its key points."

SUMMARY_FAILED_NOTICE = (
    "Sorry, I couldn't generate a summary at this time. Please try asking me questions about the paper."
)

PREFERENCES_UPDATED_NOTICE = "User preference updated"

SUMMARY_TEMPLATES: dict[tuple[Familiarity, Goal], str] = {
    (Familiarity.BEGINNER, Goal.SKIMMING): (
        "Summarize this research paper for a newcomer who only wants the gist. "
        "Give a high-level overview in plain language with no jargon: what problem it tackles, "
        "the main idea, and why it matters. Keep it to a short paragraph and three bullet points."
    ),
    (Familiarity.BEGINNER, Goal.DEEP_DIVE): (
        "Summarize this research paper for a newcomer who wants to understand it thoroughly. "
        "Walk through the motivation, method, and results step by step, defining every technical "
        "term the first time it appears and using intuitive analogies for the mathematics."
    ),
    (Familiarity.EXPERT, Goal.SKIMMING): (
        "Summarize this research paper for a domain expert who is skimming. "
        "Be terse and technical: state the contribution, the key technique, the headline results, "
        "and how it differs from prior work, in at most five bullet points."
    ),
    (Familiarity.EXPERT, Goal.DEEP_DIVE): (
        "Write a comprehensive technical summary of this research paper for a domain expert. "
        "Cover the problem formulation, assumptions, method and key equations, experimental setup, "
        "results, limitations, and open questions. Use precise terminology and LaTeX for math."
    ),
}

SUGGESTION_INSTRUCTIONS = (
    "You suggest follow-up questions a reader could ask about a research paper. "
    "Return JSON only, matching the provided schema.\n"
    "- Propose between 3 and 7 short questions (under 15 words each).\n"
    "- Tailor them to the reader's familiarity and goal.\n"
    "- Build on the recent conversation and the highlighted excerpt when present; do not repeat "
    "questions already answered."
)

TITLE_INSTRUCTIONS = (
    "Give this research paper a short chat title of 2 to 4 words. "
    "Return JSON only, matching the provided schema."
)


def build_instruction_prompt(preferences: Preferences, selected_text: str | None = None) -> str:
    """Leading instruction turn for ordinary chat requests."""
    prompt = (
        "You are an AI assistant that is helping a user understand this research paper better. "
        "The user has provided you with the following information regarding their familiarity "
        "with the topic of the paper:\n\n"
        f"{preferences.summary_line()}\n\n"
        "Use the message history if there is anything relevant there. "
        "Format your responses in markdown when applicable.\n\n"
        "Answer the user's question to the best of your ability."
    )
    if selected_text:
        prompt += f"\n\n{EXCERPT_HEADER}\n\n{selected_text}"
    return prompt


def select_summary_template(familiarity: Familiarity | str, goal: Goal | str) -> str:
    """Pick the summary instructions from the familiarity × goal matrix."""
    return SUMMARY_TEMPLATES[(Familiarity(familiarity), Goal(goal))]


def build_suggestion_input(
    preference_summary: str | None,
    history: list[tuple[str, str]],
    selected_text: str | None = None,
) -> str:
    """Compose the user-side text of a suggestion request."""
    sections = []
    if preference_summary:
        sections.append("READER:\n" + preference_summary)
    if history:
        lines = [f"{role}: {text}" for role, text in history]
        sections.append("RECENT CONVERSATION:\n" + "\n".join(lines))
    if selected_text:
        sections.append("HIGHLIGHTED EXCERPT:\n" + selected_text)
    return "\n\n".join(sections) or "Suggest questions to start exploring the paper."
