"""
Prompt template for grounded answers.

Context and question are inserted verbatim. The instruction block tells the
model to refuse when the context does not hold the answer.
"""

DEFAULT_PERSONA = "the AdventureWorks bicycle company"

REFUSAL_MESSAGE = "I do not have enough information to answer that question"


def build_prompt(context: str, question: str, persona: str = DEFAULT_PERSONA) -> str:
    return (
        f"You are an assistant for {persona}.\n"
        "Based ONLY on the context below, answer the user's question.\n"
        f"If the context does not contain the answer, say '{REFUSAL_MESSAGE}'.\n\n"
        f"--- Context ---\n{context}\n\n"
        f"--- User's Question ---\n{question}\n\n"
        "--- Answer ---"
    )
