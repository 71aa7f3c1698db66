def build_grading_instruction() -> str:
    """
    System prompt for grading one qualitative supplier answer.

    The model must answer with a bare JSON object; anything around it is
    discarded when the first {...} block is extracted.
    """
    return """
You are an expert RFP evaluator. Grade the supplier's response to the following
question on a scale of 0-100.

Return ONLY valid JSON with these exact keys:
{
  "rawScore": <number between 0 and 100>,
  "reasoning": "<3-5 sentences explaining the score>",
  "confidence": <number between 0 and 1>
}

SCORING GUIDANCE
- 90-100: complete, specific and fully addresses the question with evidence.
- 70-89: addresses the question well with minor gaps.
- 50-69: partially addresses the question; key details are missing.
- 1-49: vague, generic or largely off-topic.
- 0: no meaningful answer.

RULES
- Judge only what the supplier wrote; do not assume capabilities they did not state.
- Do not wrap the JSON in markdown fences and do not add any other text.
""".strip()


def build_grading_request(question_text: str, answer_text: str) -> str:
    return (
        f"Question: {question_text}\n\n"
        f"Supplier Response: {answer_text}\n\n"
        "Grade this response."
    )
