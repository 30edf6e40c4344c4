"""Canned dialogues served when no model can produce one."""

from ..personality import PersonalityVariant
from .models import Conclusion, ConversationTurn, GeneratedDialogue

Round = dict[str, str]

TEMPLATES: dict[str, dict[str, object]] = {
    "career": {
        "rounds": [
            {
                "self": "I keep going back and forth on this. Part of me wants change, part of me wants safety.",
                "opposite": "Why wait? Every month you hesitate is a month you don't get back.",
                "ideal": "Let's write down what you value most in work before deciding anything.",
                "unfiltered": "Honestly, you already know you're bored. Stop pretending you aren't.",
                "childhood": "What job would be fun? You used to want to build things!",
                "elder": "Careers are long. One move rarely ruins a life, but regret lingers.",
            },
            {
                "self": "If I move, I need a plan for the first six months.",
                "opposite": "Plans are fine, but set a date or it never happens.",
                "ideal": "Compare where each path leaves you in five years, not just next month.",
                "unfiltered": "Ask for the raise first. If they say no, that's your answer.",
                "childhood": "Try it a little bit first, like a side project!",
                "elder": "Talk to someone who already made this switch. Their hindsight is cheap for you.",
            },
        ],
        "conclusion": Conclusion(
            summary="A career change is a big decision. Weigh the cautious and bold voices against your own values.",
            recommendations=[
                "Re-assess growth opportunities in your current role",
                "Research the culture of the places you would move to",
                "Think about the long-term path, not only the next salary",
                "Get an outside opinion from someone you trust",
            ],
            next_steps=[
                "Clarify what you actually want from work",
                "Collect concrete information about the market",
                "Set a timeline for the decision",
            ],
        ),
    },
    "romance": {
        "rounds": [
            {
                "self": "I'm not sure how they feel, and that uncertainty is exhausting.",
                "opposite": "Just tell them. Overthinking is worse than a clear answer.",
                "ideal": "Respect their pace, and be honest about your own feelings too.",
                "unfiltered": "If you have to guess this hard, something is off.",
                "childhood": "Do they make you laugh? That's the most important part!",
                "elder": "The right relationships feel calm more often than they feel thrilling.",
            },
            {
                "self": "Maybe I should spend more time with them first.",
                "opposite": "Time won't answer the question. Asking will.",
                "ideal": "Aim for a relationship where you both grow.",
                "unfiltered": "Stop waiting for a perfect moment. It doesn't exist.",
                "childhood": "Invite them somewhere fun and see what happens!",
                "elder": "Kindness and patience will outlast any grand gesture.",
            },
        ],
        "conclusion": Conclusion(
            summary="Balance feelings and judgment. Care for your own heart while considering theirs.",
            recommendations=[
                "Learn more about their values and lifestyle",
                "Find the courage to express your feelings honestly",
                "Let the relationship develop naturally",
            ],
            next_steps=[
                "Decide what kind of relationship you want",
                "Have a real conversation",
                "Share your feelings at a suitable moment",
            ],
        ),
    },
}

DEFAULT_TEMPLATE: dict[str, object] = {
    "rounds": [
        {
            "self": "This has been on my mind for a while and I don't know where to start.",
            "opposite": "Start anywhere. Movement beats worrying.",
            "ideal": "Let's separate what you can control from what you can't.",
            "unfiltered": "You're avoiding the hard part. Name it.",
            "childhood": "What would make this feel less scary? Let's do that first!",
            "elder": "Most worries shrink once you look at them in daylight.",
        },
        {
            "self": "Okay. I can take one small step this week.",
            "opposite": "Make it a real step, not just more research.",
            "ideal": "Write the step down and check in with yourself afterwards.",
            "unfiltered": "And ask for help. You don't have to do everything alone.",
            "childhood": "And reward yourself when you do it!",
            "elder": "Small steps, repeated, carry you further than you think.",
        },
    ],
    "conclusion": Conclusion(
        summary="Break the concern into small steps you control and act on the first one.",
        recommendations=[
            "Write down what exactly worries you",
            "Separate what you can and cannot control",
            "Ask someone you trust for perspective",
        ],
        next_steps=[
            "Pick one small action for this week",
            "Review how it went",
            "Adjust and take the next step",
        ],
    ),
}


def emergency_dialogue(category: str, personalities: list[PersonalityVariant]) -> GeneratedDialogue:
    """Build the canned dialogue for a category.

    Only roles present in ``personalities`` speak, in their given order.
    """
    template = TEMPLATES.get(category, DEFAULT_TEMPLATE)
    rounds: list[Round] = template["rounds"]  # type: ignore[assignment]
    canned: Conclusion = template["conclusion"]  # type: ignore[assignment]
    conclusion = Conclusion(
        summary=canned.summary,
        recommendations=list(canned.recommendations),
        next_steps=list(canned.next_steps),
    )

    turns: list[ConversationTurn] = []
    for round_number, lines in enumerate(rounds, start=1):
        for variant in personalities:
            text = lines.get(variant.id)
            if text is None:
                continue
            turns.append(
                ConversationTurn(
                    speaker_role=variant.id,
                    text=text,
                    sequence_index=len(turns),
                    round_number=round_number,
                )
            )

    return GeneratedDialogue(conversation=turns, conclusion=conclusion, emergency=True)
