"""Rule-based coaching plans derived from analysis scores.

Used by the mock provider so that development runs produce plans that react
to the analysed call: every dimension scoring below its threshold contributes
action items, learning resources and a quiz question.
"""

from __future__ import annotations

from typing import Any

from callcoach.domain.models import AnalysisResult

CALL_OPENING = "Call Opening"
ISSUE_UNDERSTANDING = "Issue Understanding"
RESOLUTION_QUALITY = "Resolution Quality"
CUSTOMER_SATISFACTION = "Customer Satisfaction"

_SCORE_THRESHOLD = 80
_CSAT_THRESHOLD = 4
_PASSING_SCORE = 80

_AREA_TEMPLATES: dict[str, dict[str, Any]] = {
    CALL_OPENING: {
        "actions": [
            "Practice professional greetings and clear introduction techniques",
            "Review company greeting standards and personalization methods",
        ],
        "articles": [
            {
                "title": "Mastering the Perfect Call Opening",
                "description": "Learn how to create memorable first impressions that set the tone for successful customer interactions",
                "url": "#",
                "category": "call opening",
                "estimatedReadTime": 6,
            }
        ],
        "question": {
            "id": "q1",
            "question": "What are the essential elements of a professional call opening?",
            "type": "multiple-choice",
            "options": [
                "Greeting, company name, agent name, offer to help",
                "Just say hello and ask what they need",
                "Company name only",
                "Ask for their account number immediately",
            ],
            "correctAnswer": "Greeting, company name, agent name, offer to help",
            "difficulty": "easy",
            "category": "call opening",
        },
    },
    ISSUE_UNDERSTANDING: {
        "actions": [
            "Develop active listening skills and clarifying question techniques",
            "Practice paraphrasing customer concerns to confirm understanding",
        ],
        "articles": [
            {
                "title": "Active Listening Techniques for Customer Service",
                "description": "Develop advanced listening skills to better understand and address customer needs",
                "url": "#",
                "category": "listening skills",
                "estimatedReadTime": 8,
            }
        ],
        "videos": [
            {
                "title": "Effective Questioning Strategies",
                "description": "Learn how to ask the right questions to quickly identify customer issues",
                "url": "#",
                "duration": 480,
                "category": "communication skills",
            }
        ],
        "question": {
            "id": "q2",
            "question": "When should you paraphrase a customer's concern?",
            "type": "multiple-choice",
            "options": [
                "Never, it wastes time",
                "Only if you didn't understand",
                "After gathering all the details to confirm understanding",
                "At the end of the call",
            ],
            "correctAnswer": "After gathering all the details to confirm understanding",
            "difficulty": "medium",
            "category": "active listening",
        },
    },
    RESOLUTION_QUALITY: {
        "actions": [
            "Study problem-solving frameworks and solution verification methods",
            "Practice explaining solutions clearly and confirming customer satisfaction",
        ],
        "articles": [
            {
                "title": "Problem-Solving Frameworks for Customer Service",
                "description": "Structured approaches to identifying, analyzing, and resolving customer issues",
                "url": "#",
                "category": "problem solving",
                "estimatedReadTime": 10,
            }
        ],
        "callExamples": [
            {
                "title": "Complex Issue Resolution Example",
                "description": "See how experienced agents handle multi-step problem resolution",
                "category": "problem resolution",
                "scores": {
                    "callOpening": 88,
                    "issueUnderstanding": 92,
                    "resolutionQuality": 95,
                },
            }
        ],
        "question": {
            "id": "q3",
            "question": "What should you do before ending a call?",
            "type": "multiple-choice",
            "options": [
                "Ask if there's anything else you can help with",
                "Confirm the solution meets their needs",
                "Provide next steps if applicable",
                "All of the above",
            ],
            "correctAnswer": "All of the above",
            "difficulty": "easy",
            "category": "call closure",
        },
    },
    CUSTOMER_SATISFACTION: {
        "actions": [
            "Focus on empathy and emotional intelligence in customer interactions",
            "Learn techniques for managing difficult conversations and expectations",
        ],
        "articles": [
            {
                "title": "Building Customer Loyalty Through Service Excellence",
                "description": "Techniques for exceeding customer expectations and creating positive experiences",
                "url": "#",
                "category": "customer satisfaction",
                "estimatedReadTime": 7,
            }
        ],
        "videos": [
            {
                "title": "Handling Upset Customers with Confidence",
                "description": "De-escalation techniques and empathy strategies for challenging conversations",
                "url": "#",
                "duration": 360,
                "category": "conflict resolution",
            }
        ],
        "question": {
            "id": "q4",
            "question": "How can you show empathy during a customer call?",
            "type": "multiple-choice",
            "options": [
                "Say 'I understand' repeatedly",
                "Acknowledge their feelings and validate their concerns",
                "Offer immediate solutions without listening",
                "Transfer them to a supervisor",
            ],
            "correctAnswer": "Acknowledge their feelings and validate their concerns",
            "difficulty": "medium",
            "category": "empathy",
        },
    },
}

_GENERAL_ACTIONS = [
    "Review this call recording to identify specific moments for improvement",
    "Practice scenarios similar to this call type with a colleague or supervisor",
]

_GENERAL_ARTICLE = {
    "title": "Customer Service Best Practices Guide",
    "description": "Comprehensive overview of customer service excellence principles",
    "url": "#",
    "category": "general",
    "estimatedReadTime": 12,
}

_GENERAL_QUESTION = {
    "id": "q5",
    "question": "What is the primary goal of every customer service interaction?",
    "type": "multiple-choice",
    "options": [
        "To end the call as quickly as possible",
        "To resolve the customer's issue and ensure satisfaction",
        "To sell additional products",
        "To gather customer information",
    ],
    "correctAnswer": "To resolve the customer's issue and ensure satisfaction",
    "difficulty": "easy",
    "category": "customer service fundamentals",
}


def split_focus_areas(analysis: AnalysisResult) -> tuple[list[str], list[str]]:
    """Return ``(low_score_areas, high_score_areas)`` in a fixed order."""

    scores = analysis.scores
    checks = [
        (CALL_OPENING, scores.call_opening.score < _SCORE_THRESHOLD),
        (ISSUE_UNDERSTANDING, scores.issue_understanding.score < _SCORE_THRESHOLD),
        (RESOLUTION_QUALITY, scores.resolution_quality.score < _SCORE_THRESHOLD),
        (CUSTOMER_SATISFACTION, scores.csat.predicted_score < _CSAT_THRESHOLD),
    ]
    low = [area for area, is_low in checks if is_low]
    high = [area for area, is_low in checks if not is_low]
    return low, high


def _format_score(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _personalized_feedback(
    analysis: AnalysisResult, low: list[str], high: list[str]
) -> dict[str, Any]:
    overall = analysis.overall_score
    score_text = _format_score(overall)

    if overall >= 85:
        summary = (
            "Excellent performance! You demonstrated strong customer service skills "
            "with minor areas for enhancement."
        )
        focus = ", ".join(low) if low else "maintaining consistency"
        detailed = (
            f"Your call achieved an overall score of {score_text}%. You excelled in "
            f"{', '.join(high)}. Continue building on these strengths while focusing on {focus}."
        )
    elif overall >= 70:
        summary = "Good performance with clear opportunities for improvement in key areas."
        detailed = (
            f"Your call scored {score_text}%. You showed competence in {', '.join(high)}. "
            f"Focus on improving {', '.join(low)} to enhance overall customer experience."
        )
    else:
        summary = (
            "This call shows potential but requires significant improvement in multiple areas."
        )
        detailed = (
            f"Your call scored {score_text}%. Priority areas for development include "
            f"{', '.join(low)}. Consider reviewing fundamental customer service techniques."
        )

    actions = [item for area in low for item in _AREA_TEMPLATES[area]["actions"]]
    return {
        "summary": summary,
        "detailedFeedback": detailed,
        "priorityAreas": low or ["Consistency", "Advanced Techniques"],
        "actionItems": actions + _GENERAL_ACTIONS,
    }


def _recommended_resources(low: list[str]) -> dict[str, list[dict[str, Any]]]:
    resources: dict[str, list[dict[str, Any]]] = {
        "articles": [],
        "videos": [],
        "callExamples": [],
    }
    for area in low:
        template = _AREA_TEMPLATES[area]
        for kind in resources:
            resources[kind].extend(dict(item) for item in template.get(kind, []))
    resources["articles"].append(dict(_GENERAL_ARTICLE))
    return resources


def _quiz(low: list[str]) -> dict[str, Any]:
    questions = [dict(_AREA_TEMPLATES[area]["question"]) for area in low]
    questions.append(dict(_GENERAL_QUESTION))
    return {
        "questions": questions,
        "passingScore": _PASSING_SCORE,
        "estimatedTime": max(len(questions) * 2, 5),
    }


def generate_detailed_coaching(analysis: AnalysisResult, provider: str) -> dict[str, Any]:
    """Build a coaching plan payload (camelCase, provider-shaped) from an analysis."""

    low, high = split_focus_areas(analysis)
    return {
        "personalizedFeedback": _personalized_feedback(analysis, low, high),
        "recommendedResources": _recommended_resources(low),
        "quiz": _quiz(low),
        "provider": provider,
    }


__all__ = ["generate_detailed_coaching", "split_focus_areas"]
