from typing import List, Optional

from archeohub.schemas import ChatOptions, Source

SYSTEM_PROMPT = (
    "You are ArcheoHub, a helpful assistant for archaeology: artifacts, "
    "excavation sites and research topics. When given web search results, "
    "use them to answer and explicitly cite which URLs you used. "
    "Keep answers concise and factual."
)

DEPTH_INSTRUCTIONS = {
    "brief": "Answer in two or three sentences.",
    "standard": "Answer in a short paragraph or a few bullet points.",
    "detailed": "Give a detailed answer with context, dates and key finds where relevant.",
}


def build_system_prompt(options: Optional[ChatOptions] = None) -> str:
    lines = [SYSTEM_PROMPT]
    if options is not None:
        if options.persona:
            lines.append(f"Persona: answer as {options.persona.strip()}.")
        if options.tone:
            lines.append(f"Tone: {options.tone.strip()}.")
        if options.depth:
            lines.append(DEPTH_INSTRUCTIONS[options.depth])
    return "\n".join(lines)


def format_sources(sources: List[Source]) -> str:
    return "\n\n".join(
        f"Result {i}:\nTitle: {s.title or ''}\nURL: {s.url}\nSnippet: {s.excerpt or ''}"
        for i, s in enumerate(sources, start=1)
    )


def build_user_prompt(question: str, sources: List[Source]) -> str:
    if not sources:
        return question
    return (
        "Use the following web search results to answer the question "
        "and cite sources from them where relevant:\n\n"
        f"{format_sources(sources)}\n\n"
        f"Question: {question}"
    )
