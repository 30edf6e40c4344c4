"""Prompt assembly and output parsing for meeting dialogues."""

import json
import logging
from typing import Any

from ..errors import DialogueParseError
from ..personality import PersonalityVariant
from .categories import category_display_name
from .models import Conclusion, ConversationTurn

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert in personality psychology. You write short, \
natural meetings between six versions of the same person, each shaped by \
their Big Five trait scores (1 = very low, 5 = very high).

Return ONLY valid JSON, no commentary."""

OUTPUT_FORMAT = """{
  "rounds": [
    {
      "roundNumber": 1,
      "messages": [
        {"characterId": "<role id>", "text": "<what they say>"}
      ]
    }
  ],
  "conclusion": {
    "summary": "<overall summary, about 2-3 sentences>",
    "recommendations": ["<advice>", "..."],
    "nextSteps": ["<step>", "..."]
  }
}"""


class DialoguePromptBuilder:
    """Builds the generation prompt and validates what comes back."""

    def __init__(self, rounds: int = 2) -> None:
        if rounds < 1:
            raise ValueError("rounds must be at least 1")
        self.rounds = rounds

    def _describe(self, variant: PersonalityVariant) -> str:
        t = variant.traits
        return (
            f"- {variant.id} ({variant.display_name}): {variant.description}\n"
            f"  openness:{t.openness}, conscientiousness:{t.conscientiousness}, "
            f"extraversion:{t.extraversion}, agreeableness:{t.agreeableness}, "
            f"neuroticism:{t.neuroticism}"
        )

    def build_user_prompt(
        self,
        concern: str,
        category: str,
        personalities: list[PersonalityVariant],
        similar_user_count: int = 0,
    ) -> str:
        """Render the user prompt for one meeting."""
        descriptions = "\n".join(self._describe(p) for p in personalities)
        role_ids = ", ".join(p.id for p in personalities)

        return f"""Six versions of the same person meet to discuss a concern.

[Concern]
{concern}

[Category]
{category_display_name(category)} ({category})

[Participants]
{descriptions}

[Reference data]
- People with a similar personality: {similar_user_count}

[Rules]
1. Write {self.rounds} rounds.
2. In every round each participant speaks exactly once, using only these ids: {role_ids}.
3. Each line is one to three sentences and sounds like that participant's traits.
4. The opposite and unfiltered selves challenge the present self; the ideal and elder selves help integrate the views.
5. Finish with a conclusion and a concrete action plan.

[Output format]
{OUTPUT_FORMAT}"""

    def build_messages(
        self,
        concern: str,
        category: str,
        personalities: list[PersonalityVariant],
        similar_user_count: int = 0,
    ) -> list[dict[str, Any]]:
        """Build chat messages (system + user) for the provider."""
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": self.build_user_prompt(concern, category, personalities, similar_user_count),
            },
        ]

    @staticmethod
    def _strip_fences(content: str) -> str:
        text = content.strip()
        if text.startswith("```"):
            lines = text.split("\n")[1:]
            if lines and lines[-1].strip().startswith("```"):
                lines = lines[:-1]
            text = "\n".join(lines).strip()
        return text

    @staticmethod
    def _string_list(value: Any, name: str) -> list[str]:
        if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
            raise DialogueParseError(f"'{name}' must be a list of non-empty strings")
        return [v.strip() for v in value]

    def parse_response(
        self,
        content: str,
        personalities: list[PersonalityVariant],
    ) -> tuple[list[ConversationTurn], Conclusion]:
        """Parse and validate the model's JSON output.

        Args:
            content: Raw completion text, optionally fenced in markdown.
            personalities: The participants; every one must speak.

        Returns:
            (conversation turns in speaking order, conclusion)

        Raises:
            DialogueParseError: If the output is not valid dialogue JSON.
        """
        try:
            data = json.loads(self._strip_fences(content))
        except json.JSONDecodeError as e:
            logger.warning("Dialogue output is not JSON: %s", e)
            raise DialogueParseError(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise DialogueParseError("Top level must be an object")

        rounds = data.get("rounds")
        if not isinstance(rounds, list) or not rounds:
            raise DialogueParseError("'rounds' must be a non-empty list")

        known = {p.id for p in personalities}
        turns: list[ConversationTurn] = []

        for index, round_data in enumerate(rounds, start=1):
            if not isinstance(round_data, dict) or not isinstance(round_data.get("messages"), list):
                raise DialogueParseError(f"Round {index} has no 'messages' list")
            round_number = round_data.get("roundNumber", index)
            if not isinstance(round_number, int):
                round_number = index
            for message in round_data["messages"]:
                if not isinstance(message, dict):
                    raise DialogueParseError(f"Round {index} contains a non-object message")
                role = message.get("characterId")
                text = message.get("text")
                if role not in known:
                    raise DialogueParseError(f"Unknown speaker {role!r} in round {index}")
                if not isinstance(text, str) or not text.strip():
                    raise DialogueParseError(f"Empty text for {role} in round {index}")
                turns.append(
                    ConversationTurn(
                        speaker_role=role,
                        text=text.strip(),
                        sequence_index=len(turns),
                        round_number=round_number,
                    )
                )

        missing = known - {t.speaker_role for t in turns}
        if missing:
            raise DialogueParseError(f"Participants never spoke: {sorted(missing)}")

        conclusion_data = data.get("conclusion")
        if not isinstance(conclusion_data, dict):
            raise DialogueParseError("'conclusion' must be an object")
        summary = conclusion_data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise DialogueParseError("'conclusion.summary' must be a non-empty string")

        conclusion = Conclusion(
            summary=summary.strip(),
            recommendations=self._string_list(conclusion_data.get("recommendations", []), "recommendations"),
            next_steps=self._string_list(conclusion_data.get("nextSteps", []), "nextSteps"),
        )
        return turns, conclusion
