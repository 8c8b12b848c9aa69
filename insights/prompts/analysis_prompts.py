"""
Analysis Prompt Registry
========================

Jinja2 templates for the four model operations: general feedback analysis,
inquiry-response analysis, topic naming and executive summaries.
Rendered with StrictUndefined so a missing variable fails loudly instead of
sending a half-empty prompt to the provider.
"""

import logging
from typing import Dict, List, Optional

from jinja2 import DictLoader, Environment, StrictUndefined

logger = logging.getLogger(__name__)

THEMES = ("Infrastructure", "Academic", "Technology", "Facilities", "Administrative", "Social", "Other")

SYSTEM_PROMPT = """You are an expert assistant specialized in analyzing feedback submitted by members of an organization.

Your responsibilities:
- Analyze sentiment, tone, and quality metrics of feedback
- Generate concise, actionable topic names
- Create executive summaries with strategic insights
- Provide structured JSON responses

Always provide responses in valid JSON format without markdown code blocks or additional text."""

_METRIC_GUIDE = """RATING GUIDELINES:

Sentiment & Tone:
- Positive: Praise, appreciation, satisfaction
- Neutral: Factual observations, suggestions without emotion
- Negative: Complaints, criticism, dissatisfaction

Urgency (0.0-1.0):
- 0.9-1.0: Immediate safety/security concerns, system outages
- 0.7-0.8: Significant disruptions affecting many people
- 0.5-0.6: Important but not time-critical issues
- 0.0-0.4: General suggestions, minor inconveniences

Importance (0.0-1.0):
- 0.9-1.0: Affects the entire organization or critical infrastructure
- 0.7-0.8: Affects multiple departments or large groups
- 0.5-0.6: Affects a specific department or smaller groups
- 0.0-0.4: Individual concerns or minor issues

Clarity (0.0-1.0):
- 0.9-1.0: Crystal clear, specific details, actionable
- 0.7-0.8: Clear main point, some details provided
- 0.5-0.6: Understandable but vague
- 0.0-0.4: Unclear, rambling, or confusing

Quality (0.0-1.0):
- 0.9-1.0: Constructive, specific, with solutions
- 0.7-0.8: Constructive with details
- 0.5-0.6: Valid but lacks detail
- 0.0-0.4: Vague complaints without substance

Helpfulness (0.0-1.0):
- 0.9-1.0: Highly actionable, enables immediate decisions
- 0.7-0.8: Useful for planning and improvements
- 0.5-0.6: Some value but needs clarification
- 0.0-0.4: Not actionable"""

DEFAULT_TEMPLATES = {
    "general_analysis": """Analyze this feedback and provide a JSON response:

FEEDBACK:
"{{ body }}"

Provide a JSON response with this exact structure:
{
    "sentiment": "Positive|Neutral|Negative",
    "tone": "Positive|Neutral|Negative",
    "urgency": 0.0 to 1.0,
    "importance": 0.0 to 1.0,
    "clarity": 0.0 to 1.0,
    "quality": 0.0 to 1.0,
    "helpfulness": 0.0 to 1.0,
    "theme": "{{ themes | join('|') }}"
}

""" + _METRIC_GUIDE + """

EXAMPLES:

Feedback: "The WiFi in the library constantly disconnects. I can't complete my work. This has been happening for 2 weeks now."
Response: {"sentiment":"Negative","tone":"Negative","urgency":0.75,"importance":0.8,"clarity":0.9,"quality":0.8,"helpfulness":0.85,"theme":"Technology"}

Feedback: "Great job on the new cafeteria menu! More variety and healthier options. Keep it up!"
Response: {"sentiment":"Positive","tone":"Positive","urgency":0.1,"importance":0.4,"clarity":0.8,"quality":0.7,"helpfulness":0.6,"theme":"Facilities"}

Provide ONLY the JSON response for the given feedback, nothing else.""",

    "inquiry_analysis": """Analyze this response to an inquiry:

RESPONSE:
"{{ body }}"

Provide a JSON response with this exact structure:
{
    "sentiment": "Positive|Neutral|Negative",
    "tone": "Positive|Neutral|Negative",
    "urgency": 0.0 to 1.0,
    "importance": 0.0 to 1.0,
    "clarity": 0.0 to 1.0,
    "quality": 0.0 to 1.0,
    "helpfulness": 0.0 to 1.0
}

""" + _METRIC_GUIDE + """

Inquiry responses are typically more structured since they answer a specific question.

Provide ONLY the JSON response, nothing else.""",

    "topic_name": """Generate a concise topic name (3-6 words max) that categorizes this feedback:

FEEDBACK:
"{{ body }}"

GUIDELINES:
- Be specific but concise
- Use title case
- Focus on the main issue or subject
- Avoid generic terms like "Issue" or "Problem" unless necessary
- Make it searchable and groupable

EXAMPLES:

Feedback: "The WiFi in the library keeps disconnecting every few minutes."
Topic: Library WiFi Connectivity

Feedback: "Final exam schedule has too many exams on the same day."
Topic: Exam Scheduling Conflicts

Feedback: "Not enough parking spaces, especially during peak hours."
Topic: Parking Shortage

Provide ONLY the topic name (3-6 words), nothing else. No quotes, no additional text.""",

    "executive_summary": """You are analyzing {{ total }} responses {{ subject }}.

SENTIMENT DISTRIBUTION:
{% for label, count, pct in distribution -%}
- {{ label }}: {{ count }} ({{ "%.1f" | format(pct) }}%)
{% endfor %}
RESPONSES (showing first {{ bodies | length }}):
{% for body in bodies -%}
- {{ body }}
{% endfor %}
Generate an executive summary in this exact JSON format:
{
    "topics": ["topic1", "topic2", "topic3"],
    "executiveSummaryData": {
        "headlineInsight": "One compelling sentence summarizing the key finding",
        "responseMix": "Brief overview of sentiment distribution and response quality",
        "keyTakeaways": "2-3 paragraphs with detailed analysis of patterns, common themes, and notable insights",
        "risks": "What problems could arise if issues are not addressed",
        "opportunities": "What improvements or positive outcomes are possible"
    },
    "suggestedPrioritizedActions": [
        {
            "action": "Specific, actionable step",
            "impact": "HIGH|MEDIUM|LOW",
            "challenges": "Implementation obstacles to consider",
            "responseCount": number_of_responses_supporting_this,
            "supportingReasoning": "Why this action matters and evidence from responses"
        }
    ]
}

GUIDELINES:
- Identify 2-4 main topics/themes
- Headline should be data-driven and specific
- Key takeaways should be 150-250 words with concrete examples
- Suggest 3-5 prioritized actions
- Actions should be specific, measurable, and feasible
- Prioritize by impact and number of supporting responses

Provide ONLY valid JSON, no markdown formatting, no additional text.""",
}


class PromptRegistry:
    """Renders analysis prompts from the built-in templates."""

    def __init__(self, templates: Optional[Dict[str, str]] = None):
        self.env = Environment(
            loader=DictLoader(templates or DEFAULT_TEMPLATES),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=False,
        )

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def render(self, name: str, **variables) -> str:
        return self.env.get_template(name).render(**variables)

    def feedback_analysis(self, body: str, is_linked: bool) -> str:
        if is_linked:
            return self.render("inquiry_analysis", body=body)
        return self.render("general_analysis", body=body, themes=THEMES)

    def topic_name(self, body: str) -> str:
        return self.render("topic_name", body=body)

    def executive_summary(
        self,
        bodies: List[str],
        sentiment_counts: Dict[str, int],
        total: int,
        subject: str = "",
    ) -> str:
        denominator = total or 1
        distribution = [
            (label.capitalize(), count, count * 100.0 / denominator)
            for label, count in sentiment_counts.items()
        ]
        return self.render(
            "executive_summary",
            total=total,
            subject=subject,
            distribution=distribution,
            bodies=bodies,
        )


_registry: Optional[PromptRegistry] = None


def get_prompt_registry() -> PromptRegistry:
    global _registry
    if _registry is None:
        _registry = PromptRegistry()
    return _registry
